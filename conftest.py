import json
from typing import Callable, List, Optional

import httpx
import pytest

from gateway.backend_proxy.config import BackendConfig


class RecordingBackend:
    """httpx transport standing in for the backend API; records every call it receives."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = (
            lambda request: httpx.Response(200, json={})
        )
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def respond(self, status_code: int = 200, json_body=None, content: Optional[bytes] = None):
        if content is not None:
            self.handler = lambda request: httpx.Response(status_code, content=content)
        else:
            self.handler = lambda request: httpx.Response(status_code, json=json_body)

    def fail(self, exc_factory: Callable[[httpx.Request], Exception]):
        def _raise(request):
            raise exc_factory(request)

        self.handler = _raise

    @property
    def last_request(self) -> httpx.Request:
        assert self.requests, "backend was never called"
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last_request.content)


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def backend_config():
    return BackendConfig(base_url="http://localhost:4000", timeout=5.0)
