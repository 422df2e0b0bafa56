"""
core/validation.py -- Schema-checked parsing of untrusted input.

Every state-changing handler runs its payload through a named Schema before
any persistence call. A Schema wraps a Pydantic v2 model; Pydantic validates
the whole payload in one pass, so every violation in a submission is reported
together instead of one field at a time.

Two entry points:
  safe_check(raw) -> CheckResult   never raises; ok/data/issues
  check(raw)      -> model         raises core.errors.ValidationError

Issue shape (also what the API returns under error.issues):
  {"path": ["items", 0, "quantity"], "message": "...", "code": "..."}

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, audit/,
or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class CheckResult(Generic[ModelT]):
    ok: bool
    data: ModelT | None = None
    issues: list[dict] = field(default_factory=list)


def issues_from_errors(errors: list[dict]) -> list[dict]:
    """Map Pydantic error dicts to the public issue shape.

    Only loc, msg and type are carried over. Pydantic also includes the
    offending input and a docs URL; the input may be a password, so it is
    dropped here rather than filtered later.
    """
    return [
        {
            "path": list(err.get("loc", ())),
            "message": err.get("msg", "Invalid value"),
            "code": err.get("type", "value_error"),
        }
        for err in errors
    ]


class Schema(Generic[ModelT]):
    """A named input shape.

    Usage:
        result = ORDER.safe_check(body)
        if not result.ok:
            return error_response("Invalid request payload", result.issues)
        order = result.data
    """

    def __init__(self, name: str, model: type[ModelT]) -> None:
        self.name = name
        self.model = model

    def safe_check(self, raw: Any) -> CheckResult[ModelT]:
        try:
            data = self.model.model_validate(raw)
        except PydanticValidationError as exc:
            return CheckResult(ok=False, issues=issues_from_errors(exc.errors(include_url=False)))
        return CheckResult(ok=True, data=data)

    def check(self, raw: Any) -> ModelT:
        """Return the typed model or raise ValidationError with every issue."""
        result = self.safe_check(raw)
        if not result.ok:
            raise ValidationError(result.issues)
        return result.data

    def __repr__(self) -> str:
        return f"Schema({self.name!r}, {self.model.__name__})"
