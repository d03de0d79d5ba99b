"""Tests for schema and diff-query provisioning."""
import asyncio
import json

import httpx
import pytest

from veilrag.client.auth import Authenticator
from veilrag.client.provision import QueryProvisioner, SchemaProvisioner
from veilrag.shared.errors import AuthExpired, ProvisioningError
from veilrag.shared.pipeline import DIFFERENCE_PIPELINE, Pipeline

from conftest import SECRET_KEY


def provision(cluster, registry):
    async def run():
        async with cluster.http_client() as client:
            schema_id = await SchemaProvisioner(registry, client).init_schema()
            query_id = await QueryProvisioner(registry, client).init_diff_query()
            return schema_id, query_id
    return asyncio.run(run())


class TestProvisioning:
    """Test provisioning against reference nodes."""

    def test_identical_ids_on_every_node(self, local_cluster):
        registry = local_cluster.config.build_registry()
        Authenticator(SECRET_KEY).issue_credentials(registry)

        schema_id, query_id = provision(local_cluster, registry)

        assert registry.schema_id == schema_id
        assert registry.diff_query_id == query_id
        for i in range(3):
            store = local_cluster.store(i)
            assert list(store.schemas) == [schema_id]
            assert list(store.queries) == [query_id]
            assert store.queries[query_id].schema_id == schema_id
            assert store.queries[query_id].pipeline == Pipeline.from_wire(
                DIFFERENCE_PIPELINE.to_wire(), DIFFERENCE_PIPELINE.variables
            )

    def test_second_run_refused(self, local_cluster):
        registry = local_cluster.config.build_registry()
        Authenticator(SECRET_KEY).issue_credentials(registry)
        provision(local_cluster, registry)

        with pytest.raises(ProvisioningError, match="already has schema"):
            provision(local_cluster, registry)
        assert len(local_cluster.store(0).schemas) == 1

    def test_query_needs_schema(self, local_cluster):
        registry = local_cluster.config.build_registry()
        with pytest.raises(ProvisioningError, match="Schema must be provisioned"):
            asyncio.run(QueryProvisioner(registry).init_diff_query())

    def test_without_credentials(self, local_cluster):
        registry = local_cluster.config.build_registry()
        with pytest.raises(AuthExpired):
            provision(local_cluster, registry)
        assert registry.schema_id is None

    def test_partial_failure(self, local_cluster):
        registry = local_cluster.config.build_registry()
        seen = []

        def handler(request):
            seen.append(request.url.host)
            assert json.loads(request.content)["keys"] == ["_id"]
            if request.url.host == "n2.test":
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json={"data": {}})

        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                await SchemaProvisioner(registry, client).init_schema()

        with pytest.raises(ProvisioningError) as excinfo:
            asyncio.run(run())

        assert excinfo.value.failed_nodes == ["n2"]
        assert sorted(seen) == ["n1.test", "n2.test", "n3.test"]
        assert all(node.schema_id is None for node in registry)
