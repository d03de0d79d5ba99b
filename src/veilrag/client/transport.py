"""
Authenticated requests to cluster nodes.

Calls to distinct nodes are independent and are issued concurrently; results
come back in node order.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, List, Optional, Sequence, Type

import httpx

from veilrag.shared.errors import AuthExpired, QuorumError, VeilRagError
from veilrag.shared.protocol import Node

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds per request


@asynccontextmanager
async def open_client(
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
):
    """Yield the caller's client, or a new one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as new_client:
        yield new_client


async def post_json(
    client: httpx.AsyncClient,
    node: Node,
    path: str,
    payload: dict,
    error_cls: Type[VeilRagError] = QuorumError,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """
    POST `payload` to one node with its bearer token.

    `timeout` applies per request, also on clients supplied by the caller.

    Raises:
        AuthExpired: the node answered 401
        error_cls: transport failure, timeout or any other non-2xx status
    """
    url = node.endpoint(path)
    try:
        response = await client.post(
            url, headers=node.headers(), json=payload, timeout=timeout
        )
    except httpx.TimeoutException as e:
        raise error_cls(f"Timeout in POST request to {url}", node_id=node.node_id) from e
    except httpx.HTTPError as e:
        raise error_cls(f"Error in POST request to {url}: {e}", node_id=node.node_id) from e

    if response.status_code == 401:
        raise AuthExpired(
            f"Node {node.node_id} rejected credentials: {response.text}",
            node_id=node.node_id,
        )
    if not response.is_success:
        raise error_cls(
            f"Error in POST request: {response.status_code}, {response.text}",
            node_id=node.node_id,
        )
    try:
        return response.json()
    except ValueError as e:
        raise error_cls(f"Invalid JSON from {url}", node_id=node.node_id) from e


async def gather_all(
    nodes: Sequence[Node],
    requests: Sequence[Awaitable[Any]],
) -> List[Any]:
    """
    Await one request per node and return results in node order.

    Every request runs to completion. If any failed, the first failure in node
    order is raised after all failures were logged.
    """
    results = await asyncio.gather(*requests, return_exceptions=True)
    failures = [
        (node, r) for node, r in zip(nodes, results) if isinstance(r, BaseException)
    ]
    for node, error in failures:
        logger.error("Request to node %s failed: %s", node.node_id, error)
    if failures:
        raise failures[0][1]
    return list(results)
