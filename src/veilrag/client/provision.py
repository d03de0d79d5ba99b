"""
Cluster provisioning: one schema and one difference query, identical on every
node.

Neither operation is idempotent (each call mints a fresh id), so both refuse
to run against a cluster that already holds a complete id unless forced. Ids
are written to the registry only after every node acknowledged. A partial
failure leaves the acknowledged nodes provisioned; recovery is left to the
operator.
"""
import asyncio
import logging
import uuid
from typing import Optional

import httpx

from veilrag.client.nodes import NodeRegistry
from veilrag.client.transport import DEFAULT_TIMEOUT, open_client, post_json
from veilrag.shared.errors import AuthExpired, ProvisioningError
from veilrag.shared.pipeline import DIFFERENCE_PIPELINE, Pipeline
from veilrag.shared.protocol import (
    DIFF_QUERY_NAME,
    QUERIES_PATH,
    SCHEMAS_PATH,
    build_schema,
)

logger = logging.getLogger(__name__)


class _Provisioner:
    def __init__(
        self,
        registry: NodeRegistry,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.registry = registry
        self.client = client
        self.timeout = timeout

    async def _register_everywhere(self, path: str, payload: dict) -> None:
        async with open_client(self.client, self.timeout) as client:
            results = await asyncio.gather(
                *(
                    post_json(
                        client, node, path, payload,
                        error_cls=ProvisioningError, timeout=self.timeout,
                    )
                    for node in self.registry
                ),
                return_exceptions=True,
            )

        failed = []
        for node, result in zip(self.registry, results):
            if isinstance(result, AuthExpired):
                raise result
            if isinstance(result, BaseException):
                logger.error("Provisioning %s failed on %s: %s", path, node.node_id, result)
                failed.append(node.node_id)
            else:
                logger.info("Node %s acknowledged %s: %s", node.node_id, path, result)

        if failed:
            raise ProvisioningError(
                f"POST {path} failed on {len(failed)}/{len(self.registry)} nodes: "
                f"{', '.join(failed)}; the cluster is partially provisioned",
                failed_nodes=failed,
            )


class SchemaProvisioner(_Provisioner):
    """Registers the record schema on every node."""

    async def init_schema(self, force: bool = False) -> str:
        """
        Create the shared schema.

        Args:
            force: Provision even if the registry already holds a schema id

        Returns:
            The new schema id
        """
        if self.registry.schema_id and not force:
            raise ProvisioningError(
                f"Cluster already has schema {self.registry.schema_id}"
            )

        schema_id = str(uuid.uuid4())
        await self._register_everywhere(SCHEMAS_PATH, build_schema(schema_id))
        for node in self.registry:
            node.schema_id = schema_id
        return schema_id


class QueryProvisioner(_Provisioner):
    """Registers the difference pipeline on every node."""

    def __init__(self, *args, pipeline: Pipeline = DIFFERENCE_PIPELINE, **kwargs):
        super().__init__(*args, **kwargs)
        self.pipeline = pipeline

    def build_payload(self, query_id: str, schema_id: str) -> dict:
        return {
            "_id": query_id,
            "name": DIFF_QUERY_NAME,
            "schema": schema_id,
            "variables": self.pipeline.variables,
            "pipeline": self.pipeline.to_wire(),
        }

    async def init_diff_query(self, force: bool = False) -> str:
        """
        Create the shared difference query.

        Requires the schema to be provisioned first.

        Returns:
            The new query id
        """
        schema_id = self.registry.schema_id
        if not schema_id:
            raise ProvisioningError("Schema must be provisioned before the query")
        if self.registry.diff_query_id and not force:
            raise ProvisioningError(
                f"Cluster already has diff query {self.registry.diff_query_id}"
            )

        query_id = str(uuid.uuid4())
        await self._register_everywhere(QUERIES_PATH, self.build_payload(query_id, schema_id))
        for node in self.registry:
            node.diff_query_id = query_id
        return query_id
