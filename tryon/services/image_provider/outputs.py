"""Closed set of output shapes the generation backend is known to return.

Raw results are classified into one of the variants below right at the client
boundary and immediately reduced to a canonical URL string. Anything else is
rejected rather than guessed at.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Union

from tryon.errors import GenerationError


@dataclass(frozen=True)
class UrlString:
    value: str


@dataclass(frozen=True)
class UrlAccessor:
    """Object exposing a callable ``url()``."""

    source: Any


@dataclass(frozen=True)
class UrlProperty:
    """Object exposing a plain ``url`` attribute."""

    source: Any


GenerationOutput = Union[UrlString, UrlAccessor, UrlProperty]


def _first_item(raw: Any) -> Any:
    if isinstance(raw, (list, tuple)):
        if not raw:
            raise GenerationError("generation service returned no output", code="NO_OUTPUT")
        return raw[0]
    if isinstance(raw, Iterator):
        try:
            return next(raw)
        except StopIteration:
            raise GenerationError(
                "generation service returned no output", code="NO_OUTPUT"
            ) from None
    return raw


def classify_output(raw: Any) -> GenerationOutput:
    if raw is None:
        raise GenerationError("generation service returned no output", code="NO_OUTPUT")

    item = _first_item(raw)
    if isinstance(item, str):
        return UrlString(item)

    url = getattr(item, "url", None)
    if callable(url):
        return UrlAccessor(item)
    if isinstance(url, str):
        return UrlProperty(item)

    kind = type(item).__name__
    if isinstance(item, Iterable) and not isinstance(item, (bytes, bytearray)):
        kind = f"nested {kind}"
    raise GenerationError(
        f"unexpected output format from generation service: {kind}",
        code="UNEXPECTED_OUTPUT_FORMAT",
    )


def canonical_url(output: GenerationOutput) -> str:
    if isinstance(output, UrlString):
        value = output.value
    elif isinstance(output, (UrlAccessor, UrlProperty)):
        try:
            value = output.source.url() if isinstance(output, UrlAccessor) else output.source.url
        except Exception as exc:  # noqa: BLE001 - unreadable output is a generation failure
            raise GenerationError(
                f"generation output url unreadable: {type(exc).__name__}",
                code="UNEXPECTED_OUTPUT_FORMAT",
            ) from exc
    else:  # pragma: no cover - closed union
        raise GenerationError("unexpected output variant", code="UNEXPECTED_OUTPUT_FORMAT")

    if not isinstance(value, str):
        value = str(value) if value is not None else ""
    return value.strip()


def normalize_output(raw: Any) -> str:
    """Reduce any supported raw output to its URL string."""

    return canonical_url(classify_output(raw))


__all__ = [
    "GenerationOutput",
    "UrlAccessor",
    "UrlProperty",
    "UrlString",
    "canonical_url",
    "classify_output",
    "normalize_output",
]
