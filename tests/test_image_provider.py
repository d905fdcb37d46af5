import threading
from unittest.mock import MagicMock

import httpx
import pytest
import replicate

from conftest import FakeBackend
from tryon.config import ReplicateConfig
from tryon.errors import ConfigurationError, GenerationError, RequestTimeoutError, error_payload
from tryon.services.image_provider import ReplicateImageProvider, get_provider, normalize_output
from tryon.services.image_provider.outputs import (
    UrlAccessor,
    UrlProperty,
    UrlString,
    classify_output,
)

URL = "https://replicate.delivery/pbxt/abc/output.png"


class _Accessor:
    def url(self):
        return URL


class _Property:
    url = URL


def test_three_output_shapes_normalise_to_same_url():
    assert isinstance(classify_output(URL), UrlString)
    assert isinstance(classify_output(_Accessor()), UrlAccessor)
    assert isinstance(classify_output(_Property()), UrlProperty)
    assert normalize_output(URL) == normalize_output(_Accessor()) == normalize_output(_Property())


@pytest.mark.parametrize(
    "raw",
    [[URL], (URL,), iter([_Accessor()]), [_Property(), "ignored"]],
)
def test_sequences_use_first_item(raw):
    assert normalize_output(raw) == URL


@pytest.mark.parametrize("raw", [None, [], iter(())])
def test_empty_output_is_no_output(raw):
    with pytest.raises(GenerationError) as info:
        normalize_output(raw)
    assert info.value.code == "NO_OUTPUT"


@pytest.mark.parametrize("raw", [42, {"url": URL}, b"bytes", [[URL]]])
def test_unknown_shapes_fail_closed(raw):
    with pytest.raises(GenerationError) as info:
        normalize_output(raw)
    assert info.value.code == "UNEXPECTED_OUTPUT_FORMAT"


def test_request_shape():
    backend = FakeBackend([URL])
    provider = ReplicateImageProvider(ReplicateConfig(api_token="t"), backend=backend)

    url = provider.invoke("prompt text", "blurry", ["https://u/user.jpg", "https://u/p0.jpg"])

    assert url == URL
    model, request = backend.calls[0]
    assert model == "bytedance/seedream-4"
    assert request == {
        "size": "2K",
        "width": 2048,
        "height": 2048,
        "prompt": "prompt text",
        "max_images": 1,
        "image_input": ["https://u/user.jpg", "https://u/p0.jpg"],
        "aspect_ratio": "4:3",
        "sequential_image_generation": "disabled",
        "negative_prompt": "blurry",
    }


def test_request_omits_empty_negative_prompt():
    provider = ReplicateImageProvider(ReplicateConfig(api_token="t"), backend=FakeBackend())
    assert "negative_prompt" not in provider.build_request("p", "", [])


def test_backend_errors_are_wrapped_without_leaking_text():
    backend = FakeBackend(RuntimeError("invalid api token r8_secret"))
    provider = ReplicateImageProvider(ReplicateConfig(api_token="t"), backend=backend)

    with pytest.raises(GenerationError) as info:
        provider.invoke("p", None, [])

    status, payload = error_payload(info.value, "req-1")
    assert status == 500
    assert payload["code"] == "GENERATION_ERROR"
    assert "token" not in payload["error"].lower()
    assert "r8_secret" not in str(payload)


def test_backend_timeout_maps_to_request_timeout():
    backend = FakeBackend(httpx.ReadTimeout("slow"))
    provider = ReplicateImageProvider(ReplicateConfig(api_token="t"), backend=backend)

    with pytest.raises(RequestTimeoutError) as info:
        provider.invoke("p", None, [])
    assert error_payload(info.value)[0] == 504


def test_unconfigured_provider_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        get_provider(ReplicateConfig(api_token=None))


def test_factory_accepts_backend():
    backend = FakeBackend()
    provider = get_provider(ReplicateConfig(api_token=None), backend=backend)
    assert provider.backend is backend


class _BrokenAccessor:
    def url(self):
        raise ValueError("file output has no url")


def test_unreadable_accessor_is_a_generation_error():
    provider = ReplicateImageProvider(
        ReplicateConfig(api_token="t"), backend=FakeBackend([_BrokenAccessor()])
    )

    with pytest.raises(GenerationError) as info:
        provider.invoke("p", None, [])

    assert info.value.code == "UNEXPECTED_OUTPUT_FORMAT"
    assert error_payload(info.value)[0] == 500


class _BlockingBackend:
    def __init__(self):
        self.release = threading.Event()

    def run(self, model, input):
        self.release.wait(timeout=5)
        return URL


def test_slow_backend_is_cut_off_at_timeout():
    backend = _BlockingBackend()
    provider = ReplicateImageProvider(
        ReplicateConfig(api_token="t", timeout_seconds=0.1), backend=backend
    )
    try:
        with pytest.raises(RequestTimeoutError):
            provider.invoke("p", None, [])
    finally:
        backend.release.set()


def _client(*statuses, output=URL):
    client = MagicMock(spec=replicate.Client)
    prediction = MagicMock(id="pred-1", status=statuses[0], output=output, error=None)
    remaining = list(statuses[1:])

    def reload():
        if remaining:
            prediction.status = remaining.pop(0)

    prediction.reload.side_effect = reload
    client.models.predictions.create.return_value = prediction
    return client, prediction


def test_prediction_is_polled_until_it_succeeds():
    client, prediction = _client("starting", "processing", "succeeded", output=[URL])
    provider = ReplicateImageProvider(
        ReplicateConfig(api_token="t", poll_interval_seconds=0), backend=client
    )

    assert provider.invoke("p", None, ["https://u/user.jpg"]) == URL
    kwargs = client.models.predictions.create.call_args.kwargs
    assert kwargs["model"] == "bytedance/seedream-4"
    assert kwargs["input"]["image_input"] == ["https://u/user.jpg"]
    assert prediction.reload.call_count == 2
    prediction.cancel.assert_not_called()


def test_stuck_prediction_is_cancelled_at_timeout():
    client, prediction = _client("processing")
    provider = ReplicateImageProvider(
        ReplicateConfig(api_token="t", timeout_seconds=0.05, poll_interval_seconds=0.01),
        backend=client,
    )

    with pytest.raises(RequestTimeoutError):
        provider.invoke("p", None, [])
    prediction.cancel.assert_called_once_with()


def test_failed_prediction_is_a_generation_error():
    client, _ = _client("failed")
    client.models.predictions.create.return_value.error = "invalid api token r8_secret"
    provider = ReplicateImageProvider(ReplicateConfig(api_token="t"), backend=client)

    with pytest.raises(GenerationError) as info:
        provider.invoke("p", None, [])
    assert "r8_secret" not in str(info.value)
