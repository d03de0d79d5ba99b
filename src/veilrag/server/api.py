"""
FastAPI reference node.

Implements the per-node HTTP API in memory so a cluster can run locally:

- POST /schemas          - Register the record schema
- POST /queries          - Register a query pipeline
- POST /queries/execute  - Run a registered query with variables
- POST /data/create      - Store this node's share of records
- POST /data/read        - Read this node's share of records
- POST /query            - Ad hoc search over public documents
- GET  /health           - Node status

Every endpoint except /health requires a bearer token addressed to this node.
"""
from typing import Any, Dict, List, Optional

import jwt
from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from veilrag.client.auth import verify_token
from veilrag.server.store import NodeStore
from veilrag.shared.errors import AuthExpired


class CreateSchemaRequest(BaseModel):
    """Request to register a schema."""
    id: str = Field(..., alias="_id")
    name: str
    keys: List[str] = Field(default_factory=lambda: ["_id"])
    schema_: Dict[str, Any] = Field(..., alias="schema")


class CreateQueryRequest(BaseModel):
    """Request to register a query pipeline."""
    id: str = Field(..., alias="_id")
    name: str
    schema_id: str = Field(..., alias="schema")
    variables: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    pipeline: List[Dict[str, Any]]


class ExecuteQueryRequest(BaseModel):
    """Request to run a registered query."""
    id: str
    variables: Dict[str, Any] = Field(default_factory=dict)


class CreateDataRequest(BaseModel):
    """Request to store records."""
    schema_id: str = Field(..., alias="schema")
    data: List[Dict[str, Any]]


class ReadDataRequest(BaseModel):
    """Request to read records."""
    schema_id: str = Field(..., alias="schema")
    filter: Dict[str, Any] = Field(default_factory=dict)


class AdHocQueryRequest(BaseModel):
    """Request for an ad hoc, non-secret-shared search."""
    query: str
    limit: int = 5
    threshold: float = 0.7
    include_metadata: bool = True
    schema_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    node_id: str
    num_schemas: int
    num_queries: int
    num_records: int


def create_node_app(
    node_id: str,
    public_key,
    org: Optional[str] = None,
    store: Optional[NodeStore] = None,
) -> FastAPI:
    """
    Create a reference node.

    Args:
        node_id: Audience this node accepts tokens for
        public_key: Key that signed the client's tokens
        org: Required token issuer (any issuer if None)
        store: Backing store (a fresh one if None)

    Returns:
        FastAPI app with the node's state on `app.state.store`
    """
    store = store if store is not None else NodeStore()
    app = FastAPI(
        title=f"veilrag node {node_id}",
        description="Reference node for secret-shared retrieval",
        version="0.1.0",
    )
    app.state.store = store
    app.state.node_id = node_id

    async def require_token(authorization: Optional[str] = Header(default=None)) -> dict:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Missing bearer token")
        token = authorization[len("Bearer "):]
        try:
            return verify_token(token, public_key, node_id=node_id, org=org)
        except AuthExpired:
            raise HTTPException(status_code=401, detail="Token expired")
        except jwt.InvalidTokenError as e:
            raise HTTPException(status_code=401, detail=f"Invalid token: {e}")

    def _run(fn, *args):
        try:
            return fn(*args)
        except KeyError as e:
            raise HTTPException(status_code=404, detail=str(e.args[0]))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            node_id=node_id,
            num_schemas=len(store.schemas),
            num_queries=len(store.queries),
            num_records=sum(len(t) for t in store.records.values()),
        )

    @app.post("/schemas", dependencies=[Depends(require_token)])
    async def create_schema(request: CreateSchemaRequest):
        """Register a schema."""
        _run(store.create_schema, request.id, request.model_dump(by_alias=True))
        return {"data": {"_id": request.id}}

    @app.post("/queries", dependencies=[Depends(require_token)])
    async def create_query(request: CreateQueryRequest):
        """Register a query pipeline."""
        _run(
            store.create_query,
            request.id,
            request.name,
            request.schema_id,
            request.pipeline,
            request.variables,
        )
        return {"data": {"_id": request.id}}

    @app.post("/queries/execute", dependencies=[Depends(require_token)])
    async def execute_query(request: ExecuteQueryRequest):
        """Run a registered query."""
        return {"data": _run(store.execute, request.id, request.variables)}

    @app.post("/data/create", dependencies=[Depends(require_token)])
    async def create_data(request: CreateDataRequest):
        """Store records."""
        return {"data": _run(store.insert, request.schema_id, request.data)}

    @app.post("/data/read", dependencies=[Depends(require_token)])
    async def read_data(request: ReadDataRequest):
        """Read records."""
        return {"data": _run(store.read, request.schema_id, request.filter)}

    @app.post("/query", dependencies=[Depends(require_token)])
    async def ad_hoc_query(request: AdHocQueryRequest):
        """Ad hoc search over public documents."""
        results = store.search_documents(request.query, request.limit, request.threshold)
        if not request.include_metadata:
            results = [{k: v for k, v in r.items() if k != "metadata"} for r in results]
        return results

    return app


def run_node(node_id: str, public_key, host: str = "127.0.0.1", port: int = 8000, **kwargs):
    """Run a reference node directly."""
    import uvicorn
    uvicorn.run(create_node_app(node_id, public_key, **kwargs), host=host, port=port)
