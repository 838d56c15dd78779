from __future__ import annotations

from typing import Any, Mapping, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.errors import InvalidRequest

M = TypeVar("M", bound=BaseModel)


def validated(schema: type[M], payload: M | Mapping[str, Any] | None, label: str | None = None) -> M:
    """Coerce ``payload`` into ``schema``, reporting bad input as ``InvalidRequest``."""

    if isinstance(payload, schema):
        return payload
    label = label or schema.__name__
    if not isinstance(payload, Mapping):
        raise InvalidRequest(f"Invalid {label}: expected a mapping, got {type(payload).__name__}")
    try:
        return schema.model_validate(dict(payload))
    except ValidationError as exc:
        raise InvalidRequest(
            f"Invalid {label}",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc
