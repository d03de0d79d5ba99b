"""
Execution of the stored difference query on every node.

Node i only ever receives share i of each query dimension. Reconstruction
needs every node's answer, so any failure aborts the whole query.
"""
import logging
from typing import Any, List, Optional, Sequence

import httpx

from veilrag.client.nodes import NodeRegistry
from veilrag.client.transport import DEFAULT_TIMEOUT, gather_all, open_client, post_json
from veilrag.shared.errors import ConfigurationError, QuorumError
from veilrag.shared.protocol import EXECUTE_PATH, Node

logger = logging.getLogger(__name__)


def shares_by_party(query_shares: Sequence[Sequence[Any]], num_parties: int) -> List[List[Any]]:
    """
    Transpose [dimension][party] into [party][dimension].

    Raises:
        QuorumError: a dimension does not carry exactly one share per party
    """
    for dim, shares in enumerate(query_shares):
        if len(shares) != num_parties:
            raise QuorumError(
                f"Dimension {dim} has {len(shares)} shares for {num_parties} nodes"
            )
    return [[shares[party] for shares in query_shares] for party in range(num_parties)]


class DiffQueryExecutor:
    """Fans a secret-shared query out to the cluster and fans results back in."""

    def __init__(
        self,
        registry: NodeRegistry,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.registry = registry
        self.client = client
        self.timeout = timeout

    async def _execute_on(self, client: httpx.AsyncClient, node: Node, shares: List[Any]) -> Any:
        payload = {
            "id": node.diff_query_id,
            "variables": {"query_embedding": shares},
        }
        response = await post_json(
            client, node, EXECUTE_PATH, payload, timeout=self.timeout
        )
        data = response.get("data") if isinstance(response, dict) else None
        if data is None:
            raise QuorumError(f"Error in Response: {response}", node_id=node.node_id)
        return data

    async def execute(self, query_shares: Sequence[Sequence[Any]]) -> List[Any]:
        """
        Run the difference query on every node.

        Args:
            query_shares: Query embedding shares shaped [dimension][party]

        Returns:
            Per-node `data` payloads, indexed by party
        """
        if not self.registry.diff_query_id:
            raise ConfigurationError("Cluster has no diff query; provision it first")

        party_shares = shares_by_party(query_shares, len(self.registry))
        async with open_client(self.client, self.timeout) as client:
            results = await gather_all(
                self.registry.nodes,
                [
                    self._execute_on(client, node, shares)
                    for node, shares in zip(self.registry, party_shares)
                ],
            )
        logger.debug("Diff query answered by all %d nodes", len(results))
        return results
