"""Client-side components for secret-shared retrieval."""
from veilrag.client.auth import Authenticator
from veilrag.client.crypto import SecretSharingCodec
from veilrag.client.executor import DiffQueryExecutor
from veilrag.client.nodes import NodeRegistry
from veilrag.client.provision import QueryProvisioner, SchemaProvisioner
from veilrag.client.search import RetrievalClient

__all__ = [
    "Authenticator",
    "SecretSharingCodec",
    "DiffQueryExecutor",
    "NodeRegistry",
    "QueryProvisioner",
    "SchemaProvisioner",
    "RetrievalClient",
]
