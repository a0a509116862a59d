"""Structural validation with typed success/failure results.

Used at two seams: request bodies at the boundary, where a failure
becomes a terminal InputError, and model output inside the pipeline,
where a failure selects a fallback. Neither path raises from here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class Valid(Generic[ModelT]):
    parsed: ModelT
    ok: Literal[True] = True


@dataclass(frozen=True)
class Invalid:
    error: str
    issues: list[dict[str, Any]] = field(default_factory=list)
    ok: Literal[False] = False


def validate(schema: type[ModelT], raw: Any) -> Valid[ModelT] | Invalid:
    """Validate ``raw`` against a pydantic model.

    Returns:
        ``Valid`` carrying the parsed model, or ``Invalid`` carrying the
        first violation as a human-readable message plus every issue.
    """
    try:
        return Valid(parsed=schema.model_validate(raw))
    except ValidationError as exc:
        issues = exc.errors(include_url=False, include_context=False, include_input=False)
        return Invalid(error=first_error_message(exc), issues=issues)


def first_error_message(exc: ValidationError) -> str:
    """Render the first violation as ``field.path: message``."""
    errors = exc.errors(include_url=False)
    if not errors:
        return "invalid request"
    first = errors[0]
    message = str(first.get("msg", "invalid value"))
    # Model-level validators raise ValueError, which pydantic prefixes.
    message = message.removeprefix("Value error, ")
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return f"{loc}: {message}" if loc else message
