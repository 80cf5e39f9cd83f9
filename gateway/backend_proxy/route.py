import json
import logging
from typing import Any, Optional, Type

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from gateway.backend_proxy.config import BackendConfig
from gateway.backend_proxy.forwarding import (
    CollectionProxy,
    PathSegmentProxy,
    parse_json,
)
from gateway.backend_proxy.models import (
    CollectionQuery,
    CustomVariablesQuery,
    InboundRequest,
    OutboundResponse,
    TemplatesQuery,
)
from gateway.vars import PROXY_PREFIX

router = APIRouter(prefix=PROXY_PREFIX)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

# Statuses that must not carry a response body
BODYLESS_STATUSES = {204, 304}


def get_backend_config() -> BackendConfig:
    """Read per request so configuration changes are never served stale."""
    return BackendConfig.from_env()


def get_backend_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport used for backend calls; ``None`` selects httpx's network transport."""
    return None


async def read_json_body(request: Request) -> Any:
    """
    Parse the inbound body as JSON. Bodies that are not JSON are kept as text,
    which the forwarding rules never send on.
    """
    raw = await request.body()
    if not raw:
        return None
    try:
        return parse_json(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


class RelayJSONResponse(JSONResponse):
    """Compact ASCII JSON, so lone surrogates from the backend still encode."""

    def render(self, content: Any) -> bytes:
        return json.dumps(
            content, ensure_ascii=True, allow_nan=False, separators=(",", ":")
        ).encode("ascii")


def to_response(outbound: OutboundResponse) -> Response:
    if outbound.status_code in BODYLESS_STATUSES or outbound.status_code < 200:
        return Response(status_code=outbound.status_code)
    return RelayJSONResponse(status_code=outbound.status_code, content=outbound.body)


def register_resource(
    resource: str,
    query_model: Type[CollectionQuery],
    quote_segments: bool = False,
) -> None:
    """Mount the collection and catch-all proxy routes for one backend resource."""

    async def proxy_collection(
        request: Request,
        config: BackendConfig = Depends(get_backend_config),
        transport: Optional[httpx.AsyncBaseTransport] = Depends(get_backend_transport),
    ):
        proxy = CollectionProxy(
            config, resource, transport=transport, query_model=query_model
        )
        inbound = InboundRequest(
            method=request.method,
            query=dict(request.query_params),
            body=await read_json_body(request),
        )
        return to_response(await proxy.forward(inbound))

    async def proxy_path(
        request: Request,
        params: str,
        config: BackendConfig = Depends(get_backend_config),
        transport: Optional[httpx.AsyncBaseTransport] = Depends(get_backend_transport),
    ):
        proxy = PathSegmentProxy(
            config, resource, transport=transport, quote_segments=quote_segments
        )
        inbound = InboundRequest(
            method=request.method,
            segments=params.split("/") if params else [],
            query=dict(request.query_params),
            body=await read_json_body(request),
        )
        return to_response(await proxy.forward(inbound))

    name = resource.replace("-", "_")
    router.add_api_route(
        f"/{resource}",
        proxy_collection,
        methods=PROXY_METHODS,
        name=f"{name}_collection",
    )
    router.add_api_route(
        f"/{resource}/{{params:path}}",
        proxy_path,
        methods=PROXY_METHODS,
        name=f"{name}_path",
    )
    logger.debug(f"Registered backend proxy routes for {PROXY_PREFIX}/{resource}")


register_resource("custom-variables", CustomVariablesQuery)
register_resource("templates", TemplatesQuery, quote_segments=True)
