"""
Client-side retrieval orchestration.

Coordinates the full flow:

Ingestion: chunk -> embed -> split into shares -> one share per node
Query:     embed -> split into shares -> diff query on every node
           -> combine differences -> rank -> fetch and combine chunks

No node ever receives a plaintext query or a plaintext stored value.
"""
import logging
import uuid
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

import httpx
import numpy as np

from veilrag.client.aggregate import (
    group_shares_by_id,
    rank_by_distance,
    reconstruct_differences,
)
from veilrag.client.auth import Authenticator
from veilrag.client.chat import build_rag_messages, chat_completion
from veilrag.client.crypto import SecretSharingCodec
from veilrag.client.executor import DiffQueryExecutor
from veilrag.client.provision import QueryProvisioner, SchemaProvisioner
from veilrag.client.transport import gather_all, open_client, post_json
from veilrag.shared.embeddings import Embedder
from veilrag.shared.errors import ConfigurationError, QuorumError
from veilrag.shared.protocol import (
    AD_HOC_QUERY_PATH,
    DATA_CREATE_PATH,
    DATA_READ_PATH,
    EncryptedRecord,
    SearchResult,
)
from veilrag.shared.utils import Timer, find_closest_chunks

if TYPE_CHECKING:
    from veilrag.config import ClusterConfig

logger = logging.getLogger(__name__)


class RetrievalClient:
    """
    Client for one secret-shared cluster.

    Holds the node registry and the sharing keys for the session.
    """

    def __init__(
        self,
        config: "ClusterConfig",
        embedder: Embedder,
        codec: Optional[SecretSharingCodec] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize retrieval client.

        Args:
            config: Cluster configuration
            embedder: Embedding provider with `embed(texts) -> (n, d)`
            codec: Sharing keys (generated for the cluster size if None)
            client: Shared HTTP client (one per call if None)
        """
        self.config = config
        self.registry = config.build_registry()
        self.embedder = embedder
        self.codec = codec or SecretSharingCodec(len(self.registry))
        if self.codec.num_nodes != len(self.registry):
            raise ConfigurationError(
                f"Codec is for {self.codec.num_nodes} nodes, cluster has {len(self.registry)}"
            )
        self.client = client
        self.timeout = config.request_timeout

        self.schemas = SchemaProvisioner(self.registry, client, self.timeout)
        self.queries = QueryProvisioner(self.registry, client, self.timeout)
        self.executor = DiffQueryExecutor(self.registry, client, self.timeout)

    # ------------------------------------------------------------------
    # Cluster access
    # ------------------------------------------------------------------

    def authenticate(self, secret_key: Optional[str] = None, ttl: Optional[int] = None) -> Dict[str, str]:
        """Issue a fresh token for every node."""
        secret_key = secret_key or self.config.secret_key
        if not secret_key:
            raise ConfigurationError("No secret key configured")
        authenticator = Authenticator(secret_key)
        if ttl is None:
            ttl = self.config.token_ttl
        return authenticator.issue_credentials(self.registry, ttl=ttl)

    async def setup(self) -> None:
        """
        Make the cluster usable: credentials, schema and diff query.

        Provisioning steps are skipped when the registry already holds the ids.
        """
        if not self.registry.has_credentials:
            self.authenticate()
        if not self.registry.schema_id:
            schema_id = await self.schemas.init_schema()
            logger.info("Provisioned schema %s", schema_id)
        if not self.registry.diff_query_id:
            query_id = await self.queries.init_diff_query()
            logger.info("Provisioned diff query %s", query_id)

    def provisioned_config(self) -> "ClusterConfig":
        """Config carrying the provisioned ids, for writing back to disk."""
        return self.config.with_registry(self.registry)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def _embed(self, texts: List[str]) -> List[List[float]]:
        return np.asarray(self.embedder.embed(texts), dtype=np.float64).tolist()

    def encrypt_records(
        self,
        chunks: Sequence[str],
        embeddings: Sequence[Sequence[float]],
    ) -> List[EncryptedRecord]:
        """Split chunks and their embeddings into per-node shares."""
        if len(chunks) != len(embeddings):
            raise ValueError(f"Got {len(chunks)} chunks but {len(embeddings)} embeddings")
        return [
            EncryptedRecord(
                id=str(uuid.uuid4()),
                embedding_shares=self.codec.encrypt_embedding(embedding),
                chunk_shares=self.codec.encrypt_chunk(chunk),
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]

    async def upload(self, records: Sequence[EncryptedRecord]) -> List[str]:
        """
        Store share i of every record on node i.

        Returns:
            Ids of the uploaded records
        """
        schema_id = self.registry.schema_id
        if not schema_id:
            raise ConfigurationError("Cluster has no schema; provision it first")

        async with open_client(self.client, self.timeout) as client:
            responses = await gather_all(
                self.registry.nodes,
                [
                    post_json(
                        client,
                        node,
                        DATA_CREATE_PATH,
                        {"schema": schema_id, "data": [r.for_party(i) for r in records]},
                        timeout=self.timeout,
                    )
                    for i, node in enumerate(self.registry)
                ],
            )

        for node, response in zip(self.registry, responses):
            errors = (response.get("data") or {}).get("errors") if isinstance(response, dict) else None
            if errors:
                raise QuorumError(
                    f"Node {node.node_id} rejected {len(errors)} records: {errors[:3]}",
                    node_id=node.node_id,
                )
        return [r.id for r in records]

    async def ingest(self, chunks: List[str]) -> List[str]:
        """Embed, split and upload chunks. Returns the new record ids."""
        if not chunks:
            return []
        records = self.encrypt_records(chunks, self._embed(chunks))
        ids = await self.upload(records)
        logger.info("Uploaded %d records to %d nodes", len(ids), len(self.registry))
        return ids

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def nearest(
        self,
        query_embedding: Sequence[float],
        top_k: int = 2,
    ) -> List[Tuple[str, float]]:
        """
        Secret-shared nearest-neighbour search.

        Returns:
            (record_id, distance) pairs, closest first
        """
        query_shares = self.codec.encrypt_embedding(query_embedding)
        difference_shares = await self.executor.execute(query_shares)
        grouped = group_shares_by_id(
            difference_shares,
            lambda share: share["difference"],
            num_parties=len(self.registry),
        )
        differences = reconstruct_differences(self.codec, grouped)
        return rank_by_distance(differences, top_k)

    async def read_chunks(self, record_ids: Sequence[str]) -> Dict[str, str]:
        """Fetch the chunk shares of `record_ids` from every node and combine them."""
        if not record_ids:
            return {}
        payload = {
            "schema": self.registry.schema_id,
            "filter": {"_id": {"$in": list(record_ids)}},
        }
        async with open_client(self.client, self.timeout) as client:
            responses = await gather_all(
                self.registry.nodes,
                [
                    post_json(client, node, DATA_READ_PATH, payload, timeout=self.timeout)
                    for node in self.registry
                ],
            )

        per_party = []
        for node, response in zip(self.registry, responses):
            data = response.get("data") if isinstance(response, dict) else None
            if data is None:
                raise QuorumError(f"Error in Response: {response}", node_id=node.node_id)
            per_party.append(data)

        grouped = group_shares_by_id(
            per_party, lambda record: record["chunk"], num_parties=len(self.registry)
        )
        return {rid: self.codec.decrypt_chunk(shares) for rid, shares in grouped.items()}

    async def query(
        self,
        text: str,
        top_k: int = 2,
        verbose: bool = False,
    ) -> Tuple[List[SearchResult], dict]:
        """
        Full retrieval for a query text.

        Args:
            text: Query text
            top_k: Number of chunks to return
            verbose: Print timing information

        Returns:
            Tuple of (search results, timing info)
        """
        timing = {}

        if verbose:
            print("Step 1: Embedding query...")
        with Timer() as t:
            query_embedding = self._embed([text])[0]
        timing["embed_ms"] = t.elapsed_ms

        if verbose:
            print("Step 2: Running secret-shared diff query...")
        with Timer() as t:
            ranked = await self.nearest(query_embedding, top_k=top_k)
        timing["search_ms"] = t.elapsed_ms
        if verbose:
            print(f"  {len(ranked)} records ranked in {t.elapsed_ms:.2f}ms")

        if verbose:
            print("Step 3: Fetching chunks...")
        with Timer() as t:
            chunks = await self.read_chunks([rid for rid, _ in ranked])
        timing["read_ms"] = t.elapsed_ms

        results = [
            SearchResult(
                record_id=rid,
                distance=distance,
                rank=rank + 1,
                chunk=chunks.get(rid),
            )
            for rank, (rid, distance) in enumerate(ranked)
        ]

        timing["total_ms"] = timing["embed_ms"] + timing["search_ms"] + timing["read_ms"]
        if verbose:
            print(f"\nTotal time: {timing['total_ms']:.2f}ms")

        return results, timing

    def query_plaintext(
        self,
        text: str,
        chunks: List[str],
        embeddings: Sequence[Sequence[float]],
        top_k: int = 2,
    ) -> List[Tuple[str, float]]:
        """Nearest chunks of a corpus that is not secret-shared."""
        return find_closest_chunks(self._embed([text])[0], chunks, embeddings, top_k)

    async def client_query(
        self,
        text: str,
        limit: int = 5,
        threshold: float = 0.7,
        include_metadata: bool = True,
    ) -> List[Any]:
        """
        Ad hoc search on every node, not secret-shared.

        Results from all nodes are merged and sorted by descending score.
        """
        if not text.strip():
            raise ValueError("Query string cannot be empty")

        async with open_client(self.client, self.timeout) as client:
            responses = await gather_all(
                self.registry.nodes,
                [
                    post_json(
                        client,
                        node,
                        AD_HOC_QUERY_PATH,
                        {
                            "query": text,
                            "limit": limit,
                            "threshold": threshold,
                            "include_metadata": include_metadata,
                            "schema_id": node.schema_id,
                        },
                        timeout=self.timeout,
                    )
                    for node in self.registry
                ],
            )
        return aggregate_scored_results(responses, limit)

    async def chat(
        self,
        question: str,
        top_k: int = 2,
        model: Optional[str] = None,
        **kwargs,
    ) -> dict:
        """Retrieve context for `question` and forward it to the chat endpoint."""
        results, _ = await self.query(question, top_k=top_k)
        messages = build_rag_messages(question, [r.chunk for r in results if r.chunk])
        return await chat_completion(
            self.config.nilai_url,
            self.config.nilai_token,
            model or self.config.nilai_model,
            messages,
            client=self.client,
            timeout=self.timeout,
            **kwargs,
        )


def aggregate_scored_results(responses: Sequence[Any], limit: int) -> List[Any]:
    """Flatten per-node result lists and keep the `limit` highest scores."""
    flat = []
    for response in responses:
        if isinstance(response, list):
            flat.extend(response)
        elif isinstance(response, dict) and isinstance(response.get("data"), list):
            flat.extend(response["data"])
        else:
            flat.append(response)
    flat.sort(key=lambda r: (r.get("score") or 0) if isinstance(r, dict) else 0, reverse=True)
    return flat[:limit]
