"""
api/body.py -- Request body access for schema-validated handlers.

Handlers do not declare Pydantic body parameters. FastAPI would validate those
before any dependency ran, which would let a malformed payload answer before
the guard does. Instead a handler lists the guard dependency first and
json_body second; FastAPI resolves dependencies in declaration order, so
authorization always precedes parsing, and parsing precedes the schema check
inside the handler.

    def create_course(
        request: Request,
        who: AuthorizedIdentity = Depends(require_roles(Role.ADMIN, Role.WRITER)),
        body: Any = Depends(json_body),
    ): ...
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import Request

from core.errors import ValidationError
from core.validation import Schema


async def json_body(request: Request) -> Any:
    """Return the decoded JSON body. An empty body decodes to {}."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError(
            [{"path": [], "message": "Request body must be valid JSON", "code": "json_invalid"}]
        ) from None


def schema(request: Request, name: str) -> Schema:
    """Look up a named schema in the registry wired onto app.state."""
    return request.app.state.schemas[name]
