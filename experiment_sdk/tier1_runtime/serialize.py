"""
experiment_sdk.tier1_runtime.serialize
──────────────────────────────────────
JSON serialization through Pydantic, plus the cookie-value encoding used
for anything the engine stores client-side (URL-encoded JSON).

Decoding failures raise the engine's ValidationError, never Pydantic's, so
callers catch one type whether the JSON is corrupt or merely the wrong
shape.
"""
from __future__ import annotations

import json
from typing import Any, TypeVar
from urllib.parse import quote, unquote

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from experiment_sdk.tier0_core.errors import ValidationError

T = TypeVar("T")


def serialize(obj: Any, schema: Any | None = None) -> bytes:
    """
    Serialize a Pydantic model, or any value matching *schema*, to JSON bytes.
    Models are dumped by alias (camelCase on the wire).

    Usage:
        serialize(assignment)
        serialize({"exp-1": stored}, dict[str, StoredAssignment])
    """
    if isinstance(obj, BaseModel):
        return obj.model_dump_json(by_alias=True).encode()
    if schema is not None:
        return TypeAdapter(schema).dump_json(obj, by_alias=True)
    return json.dumps(obj, default=str).encode()


def deserialize(data: bytes | str, schema: type[T] | Any) -> T:
    """
    Parse JSON into *schema* (a model class or any type TypeAdapter accepts).
    Raises ValidationError on malformed JSON or a shape mismatch.
    """
    try:
        return TypeAdapter(schema).validate_json(data)
    except PydanticValidationError as exc:
        fields = {
            ".".join(str(loc) for loc in err["loc"]) or "__root__": err["msg"]
            for err in exc.errors()
        }
        raise ValidationError(
            code="malformed_payload",
            user_message="Stored data could not be read.",
            fields=fields,
        ) from exc


def to_cookie_value(obj: Any, schema: Any | None = None) -> str:
    """JSON-encode then percent-encode, so the value is a legal cookie token."""
    return quote(serialize(obj, schema).decode(), safe="")


def from_cookie_value(raw: str, schema: type[T] | Any) -> T:
    """Inverse of to_cookie_value. Raises ValidationError on anything unreadable."""
    return deserialize(unquote(raw), schema)


__all__ = ["serialize", "deserialize", "to_cookie_value", "from_cookie_value"]
