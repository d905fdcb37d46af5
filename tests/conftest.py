from __future__ import annotations

import json
from typing import Any

import pytest

from tryon.config import KB
from tryon.models.upload import UploadedImage


def make_image(name: str = "photo.jpg", size: int = 20 * KB, content_type: str = "image/jpeg"):
    return UploadedImage(filename=name, content_type=content_type, data=b"\xff" * size)


GOOD_ANALYSIS: dict[str, Any] = {
    "productCategory": "Running Shoes",
    "detailedVisualDescription": (
        "Lightweight mesh running shoes in white with a neon green swoosh and a thick foam sole."
    ),
    "imageGenerationPrompt": (
        "Show the person standing confidently in the running shoes. Keep both feet in frame. "
        "Light the shoes evenly. Keep the laces tied and the colours exact."
    ),
    "cameraHint": "50mm full-body",
    "productScaleCategory": "medium",
    "productScaleRatioToHead": 1.2,
    "requiresFullBodyReconstruction": True,
    "userCharacteristics": {
        "visibility": "upper-body",
        "genderHint": "female",
        "ageRange": "20-29",
        "bodyBuild": "athletic",
        "skinTone": "medium",
        "hairColor": "brown",
        "facialHair": "none",
        "headOrientation": "frontal",
        "visibleClothing": "grey hoodie",
        "faceWidthToHeightRatio": 0.78,
    },
    "forcePoseChange": True,
    "targetFraming": "full-body",
    "backgroundInstruction": "Seamless light grey studio backdrop.",
    "positivePrompt": "sharp, detailed, natural light",
    "negativePrompt": "cropped feet, blurry",
}


class FakeAnalysisService:
    """Returns canned text and records every call."""

    def __init__(self, image_text: str | None = None, page_text: str = "{}") -> None:
        self.image_text = image_text if image_text is not None else json.dumps(GOOD_ANALYSIS)
        self.page_text = page_text
        self.image_calls: list[dict[str, Any]] = []
        self.text_calls: list[dict[str, Any]] = []

    def analyze_images(self, prompt, images, *, max_output_tokens=None):
        self.image_calls.append(
            {"prompt": prompt, "images": list(images), "max_output_tokens": max_output_tokens}
        )
        if isinstance(self.image_text, Exception):
            raise self.image_text
        return self.image_text

    def generate_text(self, prompt, *, max_output_tokens=None):
        self.text_calls.append({"prompt": prompt, "max_output_tokens": max_output_tokens})
        if isinstance(self.page_text, Exception):
            raise self.page_text
        return self.page_text


class FakeStorage:
    def __init__(self, base: str = "https://cdn.example.com") -> None:
        self.base = base
        self.objects: dict[str, tuple[bytes, str]] = {}

    def put(self, path, data, content_type):
        self.objects[path] = (data, content_type)
        return {"key": path, "url": f"{self.base}/{path}"}


class FakeBackend:
    def __init__(self, output: Any = "https://replicate.delivery/out.png") -> None:
        self.output = output
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def run(self, model, input):
        self.calls.append((model, dict(input)))
        if isinstance(self.output, Exception):
            raise self.output
        return self.output


class _FakePipeline:
    def __init__(self, store: "FakeRedis") -> None:
        self.store = store
        self.ops: list[tuple[str, tuple]] = []

    def incr(self, key):
        self.ops.append(("incr", (key,)))
        return self

    def expire(self, key, ttl):
        self.ops.append(("expire", (key, ttl)))
        return self

    def execute(self):
        results = []
        for op, args in self.ops:
            if op == "incr":
                value = int(self.store.data.get(args[0], 0)) + 1
                self.store.data[args[0]] = str(value)
                results.append(value)
            else:
                self.store.ttls[args[0]] = args[1]
                results.append(True)
        self.ops = []
        return results


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.transactions: list[bool] = []

    def pipeline(self, transaction=True):
        self.transactions.append(transaction)
        return _FakePipeline(self)

    def get(self, key):
        return self.data.get(key)


@pytest.fixture
def analysis_service():
    return FakeAnalysisService()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def fake_redis():
    return FakeRedis()
