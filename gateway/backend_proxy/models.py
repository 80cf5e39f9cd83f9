from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict

from gateway.backend_proxy.resolver import resolve_root
from gateway.utils.exception_logging import format_exception_message

INTERNAL_SERVER_ERROR = "Internal server error"


def encode_query(params: Mapping[str, str]) -> str:
    """Form-encode the way browsers build query strings: spaces as +, * kept, ~ escaped."""
    return urlencode(params, safe="*").replace("~", "%7E")


def normalize_segments(value: Union[str, Sequence[str], None]) -> list:
    """Catch-all params arrive either as one value or as an ordered list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


@dataclass(frozen=True)
class InboundRequest:
    method: str
    segments: Sequence[str] = ()
    query: Mapping[str, str] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "segments", tuple(normalize_segments(self.segments)))


@dataclass(frozen=True)
class BackendTarget:
    base_url: str
    resource: str
    path: Optional[str] = None
    params: Mapping[str, str] = field(default_factory=dict)

    @property
    def root_url(self) -> str:
        return resolve_root(self.base_url, self.resource)

    @property
    def url(self) -> str:
        url = self.root_url
        if self.path is not None:
            url = f"{url}/{self.path}"
        if self.params:
            url = f"{url}?{encode_query(self.params)}"
        return url


@dataclass
class OutboundResponse:
    status_code: int
    body: Any

    @classmethod
    def from_error(cls, error: "ProxyError") -> "OutboundResponse":
        return cls(status_code=500, body=error.to_envelope())


class ProxyErrorKind(str, Enum):
    BACKEND_UNREACHABLE = "BackendUnreachable"
    BACKEND_TIMEOUT = "BackendTimeout"
    MALFORMED_BACKEND_RESPONSE = "MalformedBackendResponse"


class ProxyError(Exception):
    """A failure of the proxy itself, as opposed to an error status from the backend.

    Every kind renders to the same envelope; the kind is kept for logs and traces.
    """

    def __init__(self, kind: ProxyErrorKind, cause: Exception):
        self.kind = kind
        self.cause = cause
        self.message = format_exception_message(cause)
        super().__init__(self.message)

    def to_envelope(self) -> Dict[str, str]:
        return {"error": INTERNAL_SERVER_ERROR, "message": self.message}


class CollectionQuery(BaseModel):
    """Recognized query parameters of a collection; field order is forwarding order."""

    model_config = ConfigDict(extra="ignore")

    def forwarded_params(self) -> Dict[str, str]:
        # Empty values are treated as not supplied.
        return {name: value for name, value in self.model_dump().items() if value}


class CustomVariablesQuery(CollectionQuery):
    search: Optional[str] = None
    category: Optional[str] = None
    isActive: Optional[str] = None


class TemplatesQuery(CollectionQuery):
    category: Optional[str] = None
    search: Optional[str] = None
