"""
Versioned encode/decode for adasoft modules.

A payload is a plain dict {"type": tag, "version": int, "state": {...}} that
torch.save can write and torch.load(weights_only=True) can read back. Types
register under a stable string tag at import time; decode dispatches on it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import torch

from .errors import SerializationError

_REGISTRY: dict[str, tuple[type, int]] = {}


def register(tag: str, version: int = 1) -> Callable[[type], type]:
    """
    Class decorator. The class must provide encode_state(self) -> dict and
    classmethod decode_state(cls, state, version).
    """

    def deco(cls: type) -> type:
        prev = _REGISTRY.get(tag)
        if prev is not None and prev[0].__qualname__ != cls.__qualname__:
            raise SerializationError(f"type tag {tag!r} already registered to {prev[0].__qualname__}")
        _REGISTRY[tag] = (cls, version)
        cls.SERIALIZATION_TAG = tag
        cls.SERIALIZATION_VERSION = version
        return cls

    return deco


def registered_tags() -> list[str]:
    return sorted(_REGISTRY)


def encode(obj: Any) -> dict:
    tag = getattr(type(obj), "SERIALIZATION_TAG", None)
    if tag is None or tag not in _REGISTRY:
        raise SerializationError(f"{type(obj).__qualname__} is not a registered type")
    _, version = _REGISTRY[tag]
    return {"type": tag, "version": version, "state": obj.encode_state()}


def decode(payload: dict) -> Any:
    if not isinstance(payload, dict):
        raise SerializationError(f"expected dict payload, got {type(payload)}")
    for key in ("type", "version", "state"):
        if key not in payload:
            raise SerializationError(f"payload is missing {key!r}")
    tag = payload["type"]
    if tag not in _REGISTRY:
        raise SerializationError(f"unknown type tag {tag!r}; known: {registered_tags()}")
    cls, current = _REGISTRY[tag]
    try:
        version = int(payload["version"])
    except (TypeError, ValueError) as e:
        raise SerializationError(f"{tag} payload version must be an int, got {payload['version']!r}") from e
    if version < 1 or version > current:
        raise SerializationError(f"{tag} payload version {version} not supported (current: {current})")
    return cls.decode_state(payload["state"], version)


def save(obj: Any, path: str | Path) -> None:
    torch.save(encode(obj), Path(path))


def load(path: str | Path, map_location: str | torch.device = "cpu") -> Any:
    payload = torch.load(Path(path), map_location=map_location, weights_only=True)
    return decode(payload)
