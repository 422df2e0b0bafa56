"""
api/routes/v1/courses.py -- Course catalog endpoints.

Routes:
  GET  /api/v1/courses  -- public list of live courses, newest first
  POST /api/v1/courses  -- create a course (ADMIN, WRITER)

A denied POST produces one DENIED_ACCESS audit entry naming the required
roles; an allowed POST produces one ALLOWED_ACCESS entry.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.body import json_body, schema
from api.models import CourseOut, success_response
from auth.dependencies import require_roles
from auth.models import AuthorizedIdentity
from catalog.models import Course
from catalog.store import CatalogStore
from core.roles import Role

logger = logging.getLogger("cornerstone.api")

router = APIRouter()


@router.get("/courses")
def list_courses(request: Request) -> dict:
    """Return all live courses. Public."""
    catalog: CatalogStore = request.app.state.catalog
    return success_response([CourseOut.from_course(c) for c in catalog.list_courses()])


@router.post("/courses", status_code=201)
def create_course(
    request: Request,
    who: AuthorizedIdentity = Depends(require_roles(Role.ADMIN, Role.WRITER)),
    body: Any = Depends(json_body),
) -> JSONResponse:
    """Create a course. created_by is the authorized caller."""
    data = schema(request, "course").check(body)
    catalog: CatalogStore = request.app.state.catalog
    course = catalog.create_course(
        Course(
            title=data.title,
            description=data.description,
            content=data.content,
            is_paid=data.is_paid,
            price=data.price,
            image_url=data.image_url,
            created_by=who.id,
        )
    )
    logger.info("Course %s created by identity %s", course.id, who.id)
    return JSONResponse(status_code=201, content=success_response(CourseOut.from_course(course)))
