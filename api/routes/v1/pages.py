"""
api/routes/v1/pages.py -- Page gate lookup for the front end.

  GET /api/v1/pages/access?path=/rules  -- may the current caller view this page?

Public: anonymous callers get an answer too. A page nobody holds a view/read
grant for is open to everyone; once any grant exists, only holders pass.
"""

from fastapi import APIRouter, Request

from api.models import PageAccessResponse
from auth.dependencies import page_allowed
from auth.permissions import normalize_page_path

router = APIRouter()


@router.get("/pages/access", response_model=PageAccessResponse)
def page_access(request: Request, path: str = "/") -> PageAccessResponse:
    normalized = normalize_page_path(path)
    return PageAccessResponse(path=normalized, allowed=page_allowed(request, normalized))
