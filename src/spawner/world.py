"""World: the caller-facing handle to a spawned remote unit.

A World is what ``spawn`` returns, what ``ps`` lists and what ``kill``
accepts back. The ``details`` object is owned by the spawner named in
``spawner``: callers persist it and replay it verbatim, they never read it.

Wire format (field order is stable, so encoding is byte-identical for
identical input)::

    {"id": "...", "galaxy": "...", "addr": "host:port", "spawner": "...",
     "details": {...}}

Example:
    >>> w = World(id="run-abc", galaxy="c1", addr="203.0.113.7:8080",
    ...           spawner="ecs.fargate-v1", details={"arn": "run-abc"})
    >>> decode_world(w.to_json()) == w
    True
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from spawner.errors import DecodeError


class World(BaseModel):
    """Handle to a running unit, tagged with the spawner that produced it."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Run identifier assigned by the backend")
    galaxy: str = Field(default="", description="Execution domain the world lives in")
    addr: str = Field(default="", description="host:port, empty until reachable")
    spawner: str = Field(default="", description="Name of the producing spawner")
    details: dict[str, Any] | None = Field(
        default=None,
        description="Spawner-specific coordinates, opaque to callers",
    )

    def to_json(self) -> str:
        return self.model_dump_json()


def decode_world(data: bytes | str) -> World:
    """Decode a single World JSON object.

    Raises:
        DecodeError: If *data* is not valid JSON or not a World.
    """
    try:
        return World.model_validate_json(data)
    except PydanticValidationError as exc:
        raise DecodeError(f"decode world: {_first_error(exc)}", cause=exc) from exc


def decode_worlds(data: bytes | str) -> list[World]:
    """Decode the JSON array produced by ``encode_worlds``."""
    try:
        raw = json.loads(data)
    except ValueError as exc:
        raise DecodeError(f"decode worlds: {exc}", cause=exc) from exc
    if not isinstance(raw, list):
        raise DecodeError("decode worlds: expected a JSON array")
    try:
        return [World.model_validate(item) for item in raw]
    except PydanticValidationError as exc:
        raise DecodeError(f"decode worlds: {_first_error(exc)}", cause=exc) from exc


def encode_worlds(*worlds: World) -> str:
    """Encode worlds as one JSON array terminated by a newline."""
    return "[" + ",".join(w.to_json() for w in worlds) + "]\n"


def _first_error(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ())) or "payload"
    return f"{loc}: {first.get('msg', 'invalid')}"
