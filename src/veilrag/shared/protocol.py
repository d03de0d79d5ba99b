"""
Protocol definitions for client-node communication.
"""
from dataclasses import dataclass
from typing import List, Optional, Any, Dict


# Per-node HTTP endpoints
SCHEMAS_PATH = "/schemas"
QUERIES_PATH = "/queries"
EXECUTE_PATH = "/queries/execute"
DATA_CREATE_PATH = "/data/create"
DATA_READ_PATH = "/data/read"
AD_HOC_QUERY_PATH = "/query"

SCHEMA_NAME = "veilrag data"
DIFF_QUERY_NAME = (
    "Returns the difference between the stored embeddings and the query embedding"
)


@dataclass
class Node:
    """
    One party of the sharing scheme.

    After provisioning every node of a cluster holds the same schema_id and
    diff_query_id.
    """
    url: str
    node_id: Optional[str] = None
    org: Optional[str] = None
    bearer_token: Optional[str] = None
    schema_id: Optional[str] = None
    diff_query_id: Optional[str] = None

    def __post_init__(self):
        if self.url and self.url.endswith("/"):
            self.url = self.url[:-1]

    def endpoint(self, path: str) -> str:
        return f"{self.url}{path}"

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.bearer_token}",
            "Content-Type": "application/json",
        }


@dataclass
class SearchResult:
    """Result of a privacy-preserving search."""
    record_id: str
    distance: float
    rank: int
    chunk: Optional[str] = None


@dataclass
class EncryptedRecord:
    """
    A chunk and its embedding, both split into one share per node.

    embedding_shares is [dimension][party], chunk_shares is [party].
    """
    id: str
    embedding_shares: List[List[Any]]
    chunk_shares: List[Any]

    def for_party(self, party_index: int) -> dict:
        """The record as stored by node `party_index`."""
        return {
            "_id": self.id,
            "embedding": [dim[party_index] for dim in self.embedding_shares],
            "chunk": self.chunk_shares[party_index],
        }


def build_schema(schema_id: str) -> dict:
    """Create-schema payload. Identical on every node."""
    return {
        "_id": schema_id,
        "name": SCHEMA_NAME,
        "keys": ["_id"],
        "schema": {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "title": "VEILRAG RECORDS",
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "_id": {"type": "string", "format": "uuid", "coerce": True},
                    "embedding": {
                        "description": "Chunks embeddings",
                        "type": "array",
                        "items": {"type": "integer"},
                    },
                    "chunk": {
                        "type": "string",
                        "description": "Chunks of text inserted by the user",
                    },
                },
                "required": ["_id", "embedding", "chunk"],
                "additionalProperties": False,
            },
        },
    }
