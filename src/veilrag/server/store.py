"""
In-memory storage for a reference node.

The node only ever holds its own share of each record. It evaluates the
registered difference pipeline on those shares without seeing plaintext.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from veilrag.shared.pipeline import Pipeline


@dataclass
class RegisteredQuery:
    """A stored query definition."""
    id: str
    name: str
    schema_id: str
    pipeline: Pipeline


@dataclass
class NodeStore:
    """
    Per-node database.

    Stores schemas, query definitions and records keyed by schema id.
    """
    schemas: Dict[str, dict] = field(default_factory=dict)
    queries: Dict[str, RegisteredQuery] = field(default_factory=dict)
    records: Dict[str, Dict[str, dict]] = field(default_factory=dict)
    documents: List[dict] = field(default_factory=list)

    def create_schema(self, schema_id: str, definition: dict) -> None:
        if schema_id in self.schemas:
            raise ValueError(f"Schema {schema_id} already exists")
        self.schemas[schema_id] = definition
        self.records[schema_id] = {}

    def create_query(
        self,
        query_id: str,
        name: str,
        schema_id: str,
        stages: List[dict],
        variables: Optional[Dict[str, dict]] = None,
    ) -> None:
        if query_id in self.queries:
            raise ValueError(f"Query {query_id} already exists")
        self._require_schema(schema_id)
        self.queries[query_id] = RegisteredQuery(
            id=query_id,
            name=name,
            schema_id=schema_id,
            pipeline=Pipeline.from_wire(stages, variables),
        )

    def insert(self, schema_id: str, records: List[dict]) -> Dict[str, list]:
        """
        Insert records that match the stored record shape.

        Returns:
            {"created": [ids], "errors": [{"document": ..., "error": ...}]}
        """
        table = self._require_schema(schema_id)
        created, errors = [], []
        for record in records:
            problem = _check_record(record)
            if problem is None and record["_id"] in table:
                problem = "duplicate _id"
            if problem:
                errors.append({"document": record, "error": problem})
                continue
            table[record["_id"]] = {
                "_id": record["_id"],
                "embedding": list(record["embedding"]),
                "chunk": record["chunk"],
            }
            created.append(record["_id"])
        return {"created": created, "errors": errors}

    def read(self, schema_id: str, filter_: Optional[dict] = None) -> List[dict]:
        table = self._require_schema(schema_id)
        rows = list(table.values())
        id_filter = (filter_ or {}).get("_id")
        if id_filter is None:
            return rows
        if isinstance(id_filter, dict) and "$in" in id_filter:
            wanted = set(id_filter["$in"])
            return [r for r in rows if r["_id"] in wanted]
        if isinstance(id_filter, str):
            return [r for r in rows if r["_id"] == id_filter]
        raise ValueError(f"Unsupported filter: {filter_}")

    def execute(self, query_id: str, variables: Dict[str, Any]) -> List[dict]:
        query = self.queries.get(query_id)
        if query is None:
            raise KeyError(f"Query {query_id} not found")
        rows = list(self._require_schema(query.schema_id).values())
        return query.pipeline.run(rows, variables)

    def search_documents(self, text: str, limit: int, threshold: float) -> List[dict]:
        """Word-overlap search over the node's public (not secret-shared) documents."""
        words = set(text.lower().split())
        scored = []
        for doc in self.documents:
            doc_words = set(doc["text"].lower().split())
            union = words | doc_words
            score = len(words & doc_words) / len(union) if union else 0.0
            if score >= threshold:
                scored.append({**doc, "score": score})
        scored.sort(key=lambda d: d["score"], reverse=True)
        return scored[:limit]

    def _require_schema(self, schema_id: str) -> Dict[str, dict]:
        if schema_id not in self.records:
            raise KeyError(f"Schema {schema_id} not found")
        return self.records[schema_id]


def _check_record(record: Any) -> Optional[str]:
    if not isinstance(record, dict):
        return "record must be an object"
    extra = set(record) - {"_id", "embedding", "chunk"}
    if extra:
        return f"unexpected fields: {sorted(extra)}"
    try:
        uuid.UUID(str(record.get("_id")))
    except ValueError:
        return "_id must be a uuid"
    embedding = record.get("embedding")
    if not isinstance(embedding, list) or not all(
        isinstance(v, int) and not isinstance(v, bool) for v in embedding
    ):
        return "embedding must be an array of integers"
    if not isinstance(record.get("chunk"), str):
        return "chunk must be a string"
    return None
