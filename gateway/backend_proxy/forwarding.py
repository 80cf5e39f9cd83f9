"""
Forwarding of inbound requests to the backend API.

A proxy turns an ``InboundRequest`` into exactly one backend call and relays
the backend's status and JSON body unchanged. Failures of the proxy itself
(transport errors, timeouts, unparseable bodies) collapse into a single 500
envelope; error statuses reported by the backend are not failures and pass
through untouched.
"""

import json
import logging
import math
from typing import Any, Collection, Dict, Optional, Type

import httpx
from opentelemetry import trace

from gateway.backend_proxy.config import BackendConfig
from gateway.backend_proxy.models import (
    BackendTarget,
    CollectionQuery,
    InboundRequest,
    OutboundResponse,
    ProxyError,
    ProxyErrorKind,
)
from gateway.utils import encode_segment
from gateway.utils.exception_logging import log_exception_with_details
from gateway.utils.traced_requests import traced_request

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

OUTBOUND_HEADERS = {"Content-Type": "application/json"}


def has_forwardable_body(method: str, body: Any, body_methods: Collection[str]) -> bool:
    """Only non-empty JSON objects or arrays are sent, and only for the given methods."""
    return (
        method.upper() in body_methods
        and isinstance(body, (dict, list))
        and len(body) > 0
    )


def serialize_body(body: Any) -> bytes:
    # No insignificant whitespace; lone surrogates come out escaped.
    return json.dumps(
        body, separators=(",", ":"), ensure_ascii=True, allow_nan=False
    ).encode("ascii")


def _reject_constant(name: str):
    raise ValueError(f"Not a JSON value: {name}")


def _finite_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        raise ValueError(f"Number out of range: {text}")
    return value


def parse_json(content: bytes) -> Any:
    """Strict JSON parse: NaN and Infinity are rejected."""
    return json.loads(
        content, parse_constant=_reject_constant, parse_float=_finite_float
    )


class BackendProxy:
    """Base class holding the dispatch and relay logic shared by both proxies."""

    body_methods: Collection[str] = frozenset()

    def __init__(
        self,
        config: BackendConfig,
        resource: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        proxy_logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.resource = resource
        self.transport = transport
        self.logger = proxy_logger or logger

    def build_target(self, inbound: InboundRequest) -> BackendTarget:
        raise NotImplementedError

    def build_request(self, inbound: InboundRequest) -> Dict[str, Any]:
        """Keyword arguments for ``httpx.AsyncClient.request``."""
        request = {
            "method": inbound.method,
            "url": self.build_target(inbound).url,
            "headers": dict(OUTBOUND_HEADERS),
        }
        if has_forwardable_body(inbound.method, inbound.body, self.body_methods):
            request["content"] = serialize_body(inbound.body)
        return request

    async def _dispatch(self, request: Dict[str, Any]) -> OutboundResponse:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                transport=self.transport,
                follow_redirects=False,
            ) as client:
                response = await client.request(**request)
        except httpx.TimeoutException as e:
            raise ProxyError(ProxyErrorKind.BACKEND_TIMEOUT, e) from e
        except Exception as e:
            raise ProxyError(ProxyErrorKind.BACKEND_UNREACHABLE, e) from e

        try:
            data = parse_json(response.content)
        except ValueError as e:
            raise ProxyError(ProxyErrorKind.MALFORMED_BACKEND_RESPONSE, e) from e
        return OutboundResponse(status_code=response.status_code, body=data)

    async def forward(self, inbound: InboundRequest) -> OutboundResponse:
        """Forward the request once and relay the outcome. Never raises ProxyError."""
        prefix = f"[{self.resource}]"
        try:
            request = self.build_request(inbound)
        except Exception as e:
            # The backend is never contacted.
            error = ProxyError(ProxyErrorKind.BACKEND_UNREACHABLE, e)
            log_exception_with_details(
                self.logger,
                f"{prefix} Could not build backend request for {inbound.method}:",
                e,
            )
            return OutboundResponse.from_error(error)
        target_url = request["url"]

        with traced_request(
            tracer,
            "proxy_request",
            f"{prefix} Forwarding {inbound.method} -> {target_url}",
            extra_attrs={
                "proxy.resource": self.resource,
                "proxy.method": inbound.method,
                "proxy.target_url": target_url,
            },
            request_logger=self.logger,
        ) as span:
            try:
                outbound = await self._dispatch(request)
            except ProxyError as e:
                span.set_attribute("proxy.error", e.kind.value)
                log_exception_with_details(
                    self.logger,
                    f"{prefix} Backend proxy error ({e.kind.value}) for {target_url}:",
                    e.cause,
                )
                return OutboundResponse.from_error(e)

            span.set_attribute("proxy.status_code", outbound.status_code)
            if outbound.status_code >= 400:
                self.logger.warning(
                    f"{prefix} Backend answered {outbound.status_code} for "
                    f"{inbound.method} {target_url}"
                )
            return outbound


class PathSegmentProxy(BackendProxy):
    """Forwards catch-all sub-paths: ``/<resource>/x/y/z`` on the backend."""

    body_methods = frozenset({"PUT", "POST"})

    def __init__(self, *args, quote_segments: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.quote_segments = quote_segments

    def build_target(self, inbound: InboundRequest) -> BackendTarget:
        segments = inbound.segments
        if self.quote_segments:
            segments = [encode_segment(segment) for segment in segments]
        return BackendTarget(
            base_url=self.config.base_url,
            resource=self.resource,
            path="/".join(segments),
        )


class CollectionProxy(BackendProxy):
    """Forwards requests on a collection root, keeping only recognized query params."""

    body_methods = frozenset({"POST"})

    def __init__(self, *args, query_model: Type[CollectionQuery], **kwargs):
        super().__init__(*args, **kwargs)
        self.query_model = query_model

    def build_target(self, inbound: InboundRequest) -> BackendTarget:
        query = self.query_model.model_validate(dict(inbound.query))
        return BackendTarget(
            base_url=self.config.base_url,
            resource=self.resource,
            params=query.forwarded_params(),
        )
