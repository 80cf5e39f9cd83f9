from dataclasses import dataclass

from gateway import vars as gateway_vars


@dataclass(frozen=True)
class BackendConfig:
    """Where and how long to forward. Built once per request and injected into proxies."""

    base_url: str
    timeout: float = 30.0

    def __post_init__(self):
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @classmethod
    def from_env(cls) -> "BackendConfig":
        return cls(
            base_url=gateway_vars.BACKEND_API_URL,
            timeout=gateway_vars.PROXY_TIMEOUT,
        )
