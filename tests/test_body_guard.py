from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from tryon.config import UploadLimits
from tryon.middlewares.body_guard import BodyGuardMiddleware


def _app(limit):
    app = FastAPI()
    app.add_middleware(BodyGuardMiddleware, max_body_bytes=limit)

    @app.post("/api/echo")
    async def echo(request: Request):
        return {"size": len(await request.body())}

    @app.post("/other")
    async def other(request: Request):
        return {"size": len(await request.body())}

    return app


def test_body_within_limit_passes_through():
    client = TestClient(_app(100))
    response = client.post("/api/echo", content=b"x" * 100)
    assert response.status_code == 200
    assert response.json() == {"size": 100}


def test_oversized_body_is_blocked():
    client = TestClient(_app(100))
    response = client.post("/api/echo", content=b"x" * 101)
    assert response.status_code == 413
    body = response.json()
    assert body["ok"] is False
    assert body["error"] == "REQUEST_BODY_BLOCKED"
    assert body["reason"] == "oversize:101"


def test_unwatched_paths_are_ignored():
    client = TestClient(_app(10))
    assert client.post("/other", content=b"x" * 50).json() == {"size": 50}


def test_non_positive_limit_disables_guard():
    client = TestClient(_app(0))
    assert client.post("/api/echo", content=b"x" * 5000).status_code == 200


def test_default_limit_matches_upload_ceiling():
    guard = BodyGuardMiddleware(FastAPI())
    assert guard.max_body_bytes == UploadLimits().max_request_bytes
