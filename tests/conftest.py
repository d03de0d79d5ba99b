"""Shared fixtures: in-process reference nodes reachable through httpx."""
from dataclasses import dataclass, field
from typing import Dict, List

import httpx
import numpy as np
import pytest

from veilrag.client.auth import Authenticator
from veilrag.config import ClusterConfig
from veilrag.server.api import create_node_app

SECRET_KEY = "a1" * 32
ORG = "acme"


class LookupEmbedder:
    """Deterministic embedder backed by a text -> vector table."""

    def __init__(self, table: Dict[str, List[float]]):
        self.table = table

    def embed(self, texts):
        if isinstance(texts, str):
            texts = [texts]
        return np.array([self.table[t] for t in texts], dtype=np.float64)


@dataclass
class LocalCluster:
    """N reference nodes mounted on ASGI transports."""
    config: ClusterConfig
    apps: list
    mounts: Dict[str, httpx.AsyncBaseTransport] = field(default_factory=dict)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(mounts=self.mounts)

    def store(self, index: int):
        return self.apps[index].state.store


def make_local_cluster(num_nodes: int = 3, secret_key: str = SECRET_KEY) -> LocalCluster:
    public_key = Authenticator(secret_key).public_key
    nodes, apps, mounts = [], [], {}
    for i in range(num_nodes):
        node_id = f"n{i + 1}"
        base = f"http://{node_id}.test"
        app = create_node_app(node_id, public_key, org=ORG)
        apps.append(app)
        mounts[base] = httpx.ASGITransport(app=app)
        nodes.append({"url": base + "/", "node_id": node_id, "org": ORG})
    config = ClusterConfig(nodes=nodes, secret_key=secret_key)
    return LocalCluster(config=config, apps=apps, mounts=mounts)


@pytest.fixture
def local_cluster() -> LocalCluster:
    return make_local_cluster(3)
