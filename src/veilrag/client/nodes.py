"""
Ordered registry of the nodes of one cluster.

Node order is the party order: node i holds share i of every secret.
"""
from typing import Iterable, Iterator, List, Optional, Union

from veilrag.shared.errors import ConfigurationError
from veilrag.shared.protocol import Node


class NodeRegistry:
    """Holds the nodes of a cluster for the lifetime of a client session."""

    def __init__(self, nodes: Iterable[Union[Node, dict]]):
        self.nodes: List[Node] = [
            n if isinstance(n, Node) else Node(**n) for n in nodes
        ]
        self._validate()

    def _validate(self) -> None:
        if not self.nodes:
            raise ConfigurationError("A cluster needs at least one node")
        seen = set()
        for i, node in enumerate(self.nodes):
            if not node.url:
                raise ConfigurationError(f"Node {i} has no url")
            if not node.node_id:
                raise ConfigurationError(f"Node {node.url} has no node_id")
            if not node.org:
                raise ConfigurationError(f"Node {node.url} has no org")
            if node.node_id in seen:
                raise ConfigurationError(f"Duplicate node_id: {node.node_id}")
            seen.add(node.node_id)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes)

    def __getitem__(self, index: int) -> Node:
        return self.nodes[index]

    def _shared_value(self, attr: str) -> Optional[str]:
        values = {getattr(node, attr) for node in self.nodes}
        if len(values) == 1:
            return values.pop()
        return None

    @property
    def schema_id(self) -> Optional[str]:
        """The cluster-wide schema id, or None if missing or inconsistent."""
        return self._shared_value("schema_id")

    @property
    def diff_query_id(self) -> Optional[str]:
        """The cluster-wide diff query id, or None if missing or inconsistent."""
        return self._shared_value("diff_query_id")

    @property
    def is_provisioned(self) -> bool:
        return bool(self.schema_id) and bool(self.diff_query_id)

    @property
    def has_credentials(self) -> bool:
        return all(node.bearer_token for node in self.nodes)

    def __repr__(self) -> str:
        ids = ", ".join(str(n.node_id) for n in self.nodes)
        return f"NodeRegistry([{ids}])"
