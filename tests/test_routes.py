import pytest
from fastapi.testclient import TestClient

from conftest import FakeAnalysisService, FakeBackend, FakeStorage
from tryon.config import KB, ReplicateConfig
from tryon.dependencies import get_pipeline, get_quota_gate, get_rate_limiter
from tryon.errors import ConfigurationError
from tryon.main import app
from tryon.services.image_provider import ReplicateImageProvider
from tryon.services.pipeline import TryOnPipeline
from tryon.services.product_analyzer import MetadataAnalyzer
from tryon.services.usage import QuotaGate, RateLimiter, UsageCounter

JPEG = b"\xff" * (20 * KB)


@pytest.fixture
def backend():
    return FakeBackend("https://replicate.delivery/out.png")


@pytest.fixture
def client(backend, fake_redis):
    pipeline = TryOnPipeline(
        analyzer=MetadataAnalyzer(FakeAnalysisService()),
        provider=ReplicateImageProvider(ReplicateConfig(api_token="t"), backend=backend),
        storage=FakeStorage(),
    )
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(
        fake_redis, max_requests=2, window_seconds=60
    )
    app.dependency_overrides[get_quota_gate] = lambda: QuotaGate(
        UsageCounter(fake_redis), default_limit=600
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _files(count=1, legacy=False):
    files = [("userPhoto", ("me_upper.jpg", JPEG, "image/jpeg"))]
    if legacy:
        files.append(("productImage", ("shoe.jpg", JPEG, "image/jpeg")))
    else:
        for i in range(count):
            files.append((f"productImage{i}", (f"shoe{i}.jpg", JPEG, "image/jpeg")))
    return files


def test_root_and_health(client):
    assert client.get("/").json()["ok"] is True
    assert client.head("/").status_code == 200
    assert client.get("/health").json() == {"ok": True}


def test_try_on_success(client, backend):
    response = client.post(
        "/api/try-on",
        files=_files(count=2),
        data={"productName": "Runner X", "productImageCount": "2"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["image_url"] == "https://replicate.delivery/out.png"
    assert body["product_name"] == "Runner X"
    assert body["metadata"]["category_system"]["category_type"] == "FOOTWEAR"
    assert body["metadata"]["flags"]["analysis_confidence"] == "high"
    assert response.headers["X-RateLimit-Limit"] == "2"
    assert "Product reference images" in backend.calls[0][1]["prompt"]


def test_legacy_single_product_field(client):
    response = client.post(
        "/api/try-on", files=_files(legacy=True), data={"productName": "Runner X"}
    )
    assert response.status_code == 200


def test_missing_fields(client):
    response = client.post("/api/try-on", files=_files(count=1), data={})
    assert response.status_code == 400
    body = response.json()
    assert body["ok"] is False
    assert body["code"] == "VALIDATION_ERROR"
    assert body["error"] == "Missing required fields"
    assert "productName" in body["details"]
    assert "image_url" not in body


def test_small_photo_is_validation_error(client):
    files = [
        ("userPhoto", ("me.jpg", b"\xff" * 100, "image/jpeg")),
        ("productImage0", ("shoe.jpg", JPEG, "image/jpeg")),
    ]
    response = client.post("/api/try-on", files=files, data={"productName": "Runner X"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid user photo"
    assert "minimum 10KB" in response.json()["details"]


def test_rate_limit(client):
    data = {"productName": "Runner X"}
    for _ in range(2):
        assert client.post("/api/try-on", files=_files(), data=data).status_code == 200

    response = client.post("/api/try-on", files=_files(), data=data)
    assert response.status_code == 429
    assert response.json()["code"] == "RATE_LIMIT_EXCEEDED"
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_usage_limit(client, fake_redis):
    counter = UsageCounter(fake_redis)
    for _ in range(600):
        counter.increment("shop.example.com")

    response = client.post(
        "/api/try-on",
        files=_files(),
        data={"productName": "Runner X", "shopDomain": "shop.example.com"},
    )
    assert response.status_code == 429
    assert response.json()["code"] == "USAGE_LIMIT_EXCEEDED"


def test_generation_error_is_sanitised(client, backend):
    backend.output = RuntimeError("Invalid API token r8_abc123")
    response = client.post("/api/try-on", files=_files(), data={"productName": "Runner X"})

    assert response.status_code == 500
    body = response.json()
    assert body["code"] == "GENERATION_ERROR"
    assert "r8_abc123" not in response.text
    assert "token" not in body["error"].lower()
    assert body["request_id"]


def test_unconfigured_pipeline_returns_configuration_error(client):
    def _broken():
        raise ConfigurationError("REPLICATE_API_TOKEN is not configured")

    app.dependency_overrides[get_pipeline] = _broken
    response = client.post("/api/try-on", files=_files(), data={"productName": "Runner X"})
    assert response.status_code == 500
    assert response.json()["code"] == "CONFIGURATION_ERROR"
    assert "REPLICATE" not in response.text
