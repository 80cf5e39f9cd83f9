import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from gateway.backend_proxy.config import BackendConfig
from gateway.backend_proxy.models import OutboundResponse
from gateway.backend_proxy.route import (
    get_backend_config,
    get_backend_transport,
    router,
    to_response,
)


@pytest.fixture
def client(backend, backend_config):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_backend_transport] = lambda: backend.transport
    app.dependency_overrides[get_backend_config] = lambda: backend_config
    with TestClient(app) as test_client:
        yield test_client


class TestCatchAllRoutes:
    def test_get_is_forwarded_and_relayed(self, client, backend):
        backend.respond(200, {"id": 42})

        response = client.get("/api/templates/42")

        assert str(backend.last_request.url) == "http://localhost:4000/api/templates/42"
        assert response.status_code == 200
        assert response.json() == {"id": 42}

    def test_nested_custom_variable_path(self, client, backend):
        client.get("/api/custom-variables/x/y/z")

        assert backend.last_request.url.path == "/api/custom-variables/x/y/z"

    def test_put_with_body_is_forwarded(self, client, backend):
        backend.respond(200, {"updated": True})

        response = client.put("/api/custom-variables/7", json={"value": "Acme"})

        assert backend.last_request.method == "PUT"
        assert backend.last_json() == {"value": "Acme"}
        assert response.json() == {"updated": True}

    def test_empty_json_object_is_not_forwarded(self, client, backend):
        client.post("/api/templates/1/duplicate", json={})

        assert backend.last_request.method == "POST"
        assert backend.last_request.content == b""

    def test_non_json_body_is_not_forwarded(self, client, backend):
        client.post(
            "/api/templates/1",
            content=b"name=plain",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert backend.last_request.content == b""

    def test_delete_drops_body(self, client, backend):
        client.request("DELETE", "/api/templates/3", json={"force": True})

        assert backend.last_request.method == "DELETE"
        assert backend.last_request.content == b""

    def test_inbound_headers_are_not_forwarded(self, client, backend):
        client.get("/api/templates/1", headers={"Authorization": "Bearer secret"})

        assert "authorization" not in backend.last_request.headers
        assert backend.last_request.headers["content-type"] == "application/json"

    def test_backend_not_found_passes_through(self, client, backend):
        backend.respond(404, {"error": "not found"})

        response = client.get("/api/templates/999")

        assert response.status_code == 404
        assert response.json() == {"error": "not found"}

    def test_json_array_body_is_forwarded(self, client, backend):
        backend.respond(200, [{"id": 1}])

        response = client.post("/api/custom-variables/bulk", json=[{"key": "a"}])

        assert backend.last_json() == [{"key": "a"}]
        assert response.json() == [{"id": 1}]

    def test_lone_surrogate_in_body_is_forwarded_escaped(self, client, backend):
        backend.respond(200, {"ok": True})

        response = client.post(
            "/api/templates/1",
            content=b'{"name":"\\ud800"}',
            headers={"Content-Type": "application/json"},
        )

        assert backend.last_request.content == b'{"name":"\\ud800"}'
        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_lone_surrogate_in_backend_answer_is_relayed(self, client, backend):
        backend.respond(200, content=b'{"name":"\\udc00"}')

        response = client.get("/api/templates/1")

        assert response.status_code == 200
        assert response.content == b'{"name":"\\udc00"}'

    def test_nan_inbound_body_is_not_forwarded(self, client, backend):
        client.post(
            "/api/templates/1",
            content=b'{"score": NaN}',
            headers={"Content-Type": "application/json"},
        )

        assert backend.last_request.content == b""

    def test_trailing_slash_targets_root_with_separator(self, client, backend):
        client.get("/api/templates/")

        assert str(backend.last_request.url) == "http://localhost:4000/api/templates/"


class TestCollectionRoutes:
    def test_unrecognized_params_are_dropped(self, client, backend):
        client.get(
            "/api/custom-variables",
            params={"search": "a", "category": "b", "other": "x"},
        )

        assert backend.last_request.url.query == b"search=a&category=b"

    def test_is_active_is_forwarded_as_given(self, client, backend):
        client.get("/api/custom-variables", params={"isActive": "true"})

        assert str(backend.last_request.url) == (
            "http://localhost:4000/api/custom-variables?isActive=true"
        )

    def test_templates_collection_uses_its_own_params(self, client, backend):
        client.get("/api/templates", params={"search": "hi", "isActive": "true"})

        assert str(backend.last_request.url) == "http://localhost:4000/api/templates?search=hi"

    def test_post_creates_through_backend(self, client, backend):
        backend.respond(201, {"id": "new"})

        response = client.post("/api/custom-variables", json={"key": "company"})

        assert backend.last_json() == {"key": "company"}
        assert response.status_code == 201
        assert response.json() == {"id": "new"}

    def test_repeated_param_uses_last_value(self, client, backend):
        client.get("/api/custom-variables?category=a&category=b")

        assert backend.last_request.url.query == b"category=b"


class TestFailureEnvelope:
    def test_connection_refused(self, client, backend):
        backend.fail(
            lambda request: httpx.ConnectError("Connection refused", request=request)
        )

        response = client.get("/api/templates/42")

        assert response.status_code == 500
        assert response.json() == {
            "error": "Internal server error",
            "message": "Connection refused",
        }

    def test_malformed_backend_body(self, client, backend):
        backend.respond(200, content=b"not json")

        response = client.get("/api/custom-variables")

        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error"

    def test_nan_in_backend_body(self, client, backend):
        backend.respond(200, content=b'{"score": NaN}')

        response = client.get("/api/templates/1")

        assert response.status_code == 500
        assert response.headers["content-type"] == "application/json"
        assert response.json()["error"] == "Internal server error"


class TestConfiguration:
    def test_config_is_resolved_per_request(self, backend, monkeypatch):
        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[get_backend_transport] = lambda: backend.transport

        with TestClient(app) as test_client:
            monkeypatch.setattr("gateway.vars.BACKEND_API_URL", "http://first:4000")
            test_client.get("/api/templates/1")
            monkeypatch.setattr("gateway.vars.BACKEND_API_URL", "http://second:4000/api")
            test_client.get("/api/templates/1")

        assert [str(r.url) for r in backend.requests] == [
            "http://first:4000/api/templates/1",
            "http://second:4000/api/templates/1",
        ]

    def test_default_dependencies(self):
        assert get_backend_transport() is None
        assert isinstance(get_backend_config(), BackendConfig)


class TestToResponse:
    def test_json_body_is_rendered(self):
        response = to_response(OutboundResponse(status_code=200, body={"id": 1}))
        assert response.status_code == 200
        assert response.body == b'{"id":1}'

    def test_no_content_has_no_body(self):
        response = to_response(OutboundResponse(status_code=204, body=None))
        assert response.status_code == 204
        assert response.body == b""
