"""Reference node for running a cluster locally."""
from veilrag.server.api import create_node_app, run_node
from veilrag.server.store import NodeStore

__all__ = ["create_node_app", "run_node", "NodeStore"]
