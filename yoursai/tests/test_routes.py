from fastapi.testclient import TestClient

from yoursai.src.core.responses import EndpointResponse, error_response, json_response
from yoursai.src.main import AppServices, create_app


class OrchestratorStub:
    def __init__(self, response: EndpointResponse):
        self.response = response
        self.calls = []

    async def handle(self, authorization, body):
        self.calls.append((authorization, body))
        return self.response


def _client(chat_response=None, ingest_response=None):
    chat = OrchestratorStub(chat_response or json_response(200, {"reply": "ok", "sessionId": "s"}))
    ingest = OrchestratorStub(ingest_response or json_response(200, {"message": "Document 'd' ingested successfully", "chunks": 1}))
    app = create_app(AppServices(chat=chat, ingest=ingest))
    return app, chat, ingest


def test_chat_route_passes_raw_body_and_header():
    app, chat, _ = _client()
    with TestClient(app) as client:
        response = client.post("/chat", content=b'{"message": "hi"}', headers={"Authorization": "Bearer a.b.c"})

    assert response.status_code == 200
    assert response.json() == {"reply": "ok", "sessionId": "s"}
    assert response.headers["access-control-allow-origin"] == "*"
    assert chat.calls == [("Bearer a.b.c", b'{"message": "hi"}')]


def test_ingest_route_returns_orchestrator_status():
    app, _, ingest = _client(ingest_response=error_response(413, "Document exceeds the maximum size of 10 bytes"))
    with TestClient(app) as client:
        response = client.post("/ingest", content=b"{}")

    assert response.status_code == 413
    assert response.json() == {"error": "Document exceeds the maximum size of 10 bytes"}
    assert ingest.calls == [(None, b"{}")]


def test_health():
    app, _, _ = _client()
    with TestClient(app) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_cors_preflight_is_answered():
    app, chat, _ = _client()
    with TestClient(app) as client:
        response = client.options("/chat", headers={"Origin": "https://example.com", "Access-Control-Request-Method": "POST", "Access-Control-Request-Headers": "authorization,content-type"})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] in ("*", "https://example.com")
    assert chat.calls == []
