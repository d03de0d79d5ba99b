"""
Cluster configuration.

A ClusterConfig is built once at startup (from a JSON file, the environment
or directly) and handed to the RetrievalClient. Several configs can coexist
in one process.

File layout:

    {
      "nodes": [
        {"url": "...", "node_id": "...", "org": "...",
         "schema_id": "...", "diff_query_id": "..."}
      ]
    }

schema_id and diff_query_id are written back after provisioning and mark the
cluster as provisioned.
"""
import json
import os
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from veilrag.client.nodes import NodeRegistry
from veilrag.shared.errors import ConfigurationError
from veilrag.shared.protocol import Node

CONFIG_PATH_ENV = "VEILRAG_CONFIG_PATH"
SECRET_KEY_ENV = "VEILRAG_SECRET_KEY"
NILAI_URL_ENV = "VEILRAG_NILAI_URL"
NILAI_TOKEN_ENV = "VEILRAG_NILAI_TOKEN"


class NodeConfig(BaseModel):
    """One node entry of the config file."""
    url: str
    node_id: str
    org: str
    schema_id: Optional[str] = None
    diff_query_id: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        if not v:
            raise ValueError("url must not be empty")
        return v[:-1] if v.endswith("/") else v


class ClusterConfig(BaseModel):
    """Everything a client session needs to reach one cluster."""
    nodes: List[NodeConfig]
    secret_key: Optional[str] = Field(default=None, exclude=True, repr=False)
    token_ttl: int = Field(default=3600, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    nilai_url: Optional[str] = None
    nilai_token: Optional[str] = Field(default=None, exclude=True, repr=False)
    nilai_model: str = "meta-llama/Llama-3.1-8B-Instruct"

    @field_validator("nodes")
    @classmethod
    def _at_least_one_node(cls, v: List[NodeConfig]) -> List[NodeConfig]:
        if not v:
            raise ValueError("at least one node is required")
        return v

    @classmethod
    def from_dict(cls, data: dict, **overrides) -> "ClusterConfig":
        try:
            return cls.model_validate({**data, **overrides})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid cluster configuration: {e}") from e

    @classmethod
    def from_file(cls, path: Union[str, Path], **overrides) -> "ClusterConfig":
        """Load a config file. Keyword arguments override file values."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Failed to read cluster configuration {path}: {e}") from e
        return cls.from_dict(data, **overrides)

    @classmethod
    def from_env(cls) -> "ClusterConfig":
        """Load the file named by VEILRAG_CONFIG_PATH, with secrets from the environment."""
        path = os.getenv(CONFIG_PATH_ENV)
        if not path:
            raise ConfigurationError(f"{CONFIG_PATH_ENV} is not set")
        overrides = {
            "secret_key": os.getenv(SECRET_KEY_ENV),
            "nilai_url": os.getenv(NILAI_URL_ENV),
            "nilai_token": os.getenv(NILAI_TOKEN_ENV),
        }
        return cls.from_file(path, **{k: v for k, v in overrides.items() if v})

    def to_file(self, path: Union[str, Path]) -> None:
        """Write the config, including provisioned ids, without secrets."""
        Path(path).write_text(
            json.dumps(self.model_dump(exclude_none=True), indent=2),
            encoding="utf-8",
        )

    def build_registry(self) -> NodeRegistry:
        return NodeRegistry([Node(**n.model_dump()) for n in self.nodes])

    def with_registry(self, registry: NodeRegistry) -> "ClusterConfig":
        """Copy of this config carrying the registry's provisioned ids."""
        nodes = [
            NodeConfig(
                url=node.url,
                node_id=node.node_id,
                org=node.org,
                schema_id=node.schema_id,
                diff_query_id=node.diff_query_id,
            )
            for node in registry
        ]
        return self.model_copy(update={"nodes": nodes})
