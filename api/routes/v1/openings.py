"""
api/routes/v1/openings.py -- Recruitment openings board.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /openings                -- open postings, newest first (public)
  GET    /openings/tags           -- distinct tags across open postings (public)
  POST   /openings                -- post a new opening (requires auth)
  POST   /openings/{id}/close     -- close own opening; delete-grant holders close any
  DELETE /openings/{id}           -- close (self-service) or hard delete (moderator)
  PATCH  /openings/{id}           -- edit fields (departments:posts:modify)
  POST   /openings/{id}/transfer  -- reassign author (departments:posts:modify)

Authorization is decided here, not in the lifecycle manager. The route reads
the caller's departments:posts grants once (get_opening_flags) and passes
them in as booleans; OpeningLifecycle never sees a role or an admin list.

DELETE branching: a caller holding departments:posts:delete hard-deletes;
everyone else goes through the same close() as POST /close, so only the
author can remove their own posting.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from api.errors import unwrap
from api.limiter import limiter
from api.models import (
    OpeningCreateRequest,
    OpeningPatchRequest,
    OpeningRemovedResponse,
    OpeningResponse,
    TagsResponse,
    TransferRequest,
)
from auth.dependencies import OpeningFlags, get_current_identity, get_opening_flags, try_get_current_identity
from auth.models import Identity
from auth.permissions import DEPARTMENTS_POSTS, Action
from core.config import get_settings
from openings.lifecycle import OpeningLifecycle

_settings = get_settings()

router = APIRouter()


def _lifecycle(request: Request) -> OpeningLifecycle:
    return request.app.state.openings


# ---------------------------------------------------------------------------
# Reads (public)
# ---------------------------------------------------------------------------


@router.get("/openings", response_model=list[OpeningResponse])
def list_openings(request: Request, include_closed: bool = False) -> list[OpeningResponse]:
    """List openings. include_closed=true is limited to admins and moderators."""
    if include_closed:
        identity: Optional[Identity] = try_get_current_identity(request)
        if identity is None:
            raise HTTPException(
                status_code=401,
                detail={"code": "unauthorized", "message": "Discord login required."},
            )
        ledger = request.app.state.ledger
        if not (
            ledger.is_admin_console_user(identity.id)
            or ledger.has_access(identity.id, DEPARTMENTS_POSTS, Action.MODIFY)
        ):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Closed openings are visible to moderators only."},
            )
    return [OpeningResponse.from_opening(o) for o in _lifecycle(request).list(include_closed=include_closed)]


@router.get("/openings/tags", response_model=TagsResponse)
def list_tags(request: Request) -> TagsResponse:
    return TagsResponse(tags=_lifecycle(request).available_tags())


# ---------------------------------------------------------------------------
# Writes (authenticated)
# ---------------------------------------------------------------------------


@limiter.limit(_settings.openings_rate_limit)
@router.post("/openings", response_model=OpeningResponse, status_code=201)
def create_opening(
    request: Request,
    body: OpeningCreateRequest,
    identity: Identity = Depends(get_current_identity),
) -> OpeningResponse:
    """Post a new opening as the current identity."""
    result = _lifecycle(request).create(body.model_dump(), author_id=identity.id, author_name=identity.username)
    return OpeningResponse.from_opening(unwrap(result))


@router.post("/openings/{opening_id}/close", response_model=OpeningResponse)
def close_opening(
    request: Request,
    opening_id: str,
    identity: Identity = Depends(get_current_identity),
    flags: OpeningFlags = Depends(get_opening_flags),
) -> OpeningResponse:
    """Open -> Closed. 404 missing, 403 not yours, 409 already closed."""
    result = _lifecycle(request).close(opening_id, identity.id, can_close_any=flags.can_delete)
    return OpeningResponse.from_opening(unwrap(result))


@router.delete("/openings/{opening_id}", response_model=OpeningRemovedResponse)
def remove_opening(
    request: Request,
    opening_id: str,
    identity: Identity = Depends(get_current_identity),
    flags: OpeningFlags = Depends(get_opening_flags),
) -> OpeningRemovedResponse:
    """Remove an opening: hard delete for moderators, close for everyone else."""
    lifecycle = _lifecycle(request)
    if flags.can_delete:
        deleted = unwrap(lifecycle.admin_delete(opening_id, has_delete_grant=True))
        return OpeningRemovedResponse(status="deleted", opening=OpeningResponse.from_opening(deleted))
    closed = unwrap(lifecycle.close(opening_id, identity.id))
    return OpeningRemovedResponse(status="closed", opening=OpeningResponse.from_opening(closed))


@router.patch("/openings/{opening_id}", response_model=OpeningResponse)
def update_opening(
    request: Request,
    opening_id: str,
    body: OpeningPatchRequest,
    flags: OpeningFlags = Depends(get_opening_flags),
) -> OpeningResponse:
    result = _lifecycle(request).update(opening_id, body.model_dump(exclude_none=True), flags.can_modify)
    return OpeningResponse.from_opening(unwrap(result))


@router.post("/openings/{opening_id}/transfer", response_model=OpeningResponse)
def transfer_opening(
    request: Request,
    opening_id: str,
    body: TransferRequest,
    flags: OpeningFlags = Depends(get_opening_flags),
) -> OpeningResponse:
    """Reassign an opening to another identity (created as a shadow if unknown)."""
    result = _lifecycle(request).transfer_ownership(
        opening_id, body.new_owner_id, body.new_owner_name, flags.can_modify
    )
    return OpeningResponse.from_opening(unwrap(result))
