"""
api/routes/v1/admin.py -- Admin console: identities, grants, API keys, stats.

Routes:
  GET    /admin/users?q=                   -- search identities by id or name
  GET    /admin/users/{user_id}/permissions -- every grant held by one identity
  POST   /admin/permissions                -- grant (upsert) resource:action
  DELETE /admin/permissions                -- revoke resource:action
  POST   /admin/api-keys                   -- issue an API key (raw key shown once)
  GET    /admin/api-keys?user=             -- list keys owned by an identity
  DELETE /admin/api-keys/{key_id}          -- deactivate a key
  GET    /admin/pages                      -- known site pages and their gate state
  GET    /admin/stats?period=24h|7d|30d    -- request statistics

Every route requires an admin-console user: allow-listed in ADMIN_USER_IDS or
holding a live admin_dashboard / api_keys / users grant (require_admin_console).

Granting to, or issuing a key for, an identity that has never logged in
creates a shadow identity so the row has an owner. It is replaced with the
real username on that user's first login.

Revoking a grant or key that does not exist (or, for keys, that the caller
neither created nor owns) is a silent success: 204 either way.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    ApiKeyCreatedResponse,
    ApiKeyCreateRequest,
    ApiKeyResponse,
    GrantRequest,
    IdentityResponse,
    PageInfo,
    PermissionResponse,
    RevokePermissionRequest,
    StatsResponse,
)
from audit.store import StatsPeriod
from auth.dependencies import require_admin_console
from auth.models import Identity
from auth.permissions import KNOWN_PAGE_PATHS, Resource
from core.config import get_settings

_settings = get_settings()

router = APIRouter(dependencies=[Depends(require_admin_console)])


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=list[IdentityResponse])
def search_users(request: Request, q: str = "") -> list[IdentityResponse]:
    """Case-insensitive substring search on id and username; most recent first."""
    return [IdentityResponse.from_identity(i) for i in request.app.state.identities.search(q)]


@router.get("/admin/users/{user_id}/permissions", response_model=list[PermissionResponse])
def list_user_permissions(request: Request, user_id: str) -> list[PermissionResponse]:
    """All grants for user_id, expired ones included."""
    return [PermissionResponse.from_grant(g) for g in request.app.state.ledger.list_for_identity(user_id)]


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


@limiter.limit(_settings.admin_rate_limit)
@router.post("/admin/permissions", response_model=PermissionResponse, status_code=201)
def grant_permission(
    request: Request,
    body: GrantRequest,
    admin: Identity = Depends(require_admin_console),
) -> PermissionResponse:
    """Grant resource:action to user_id. Re-granting resets the expiry clock."""
    grant = request.app.state.ledger.grant(
        body.user_id,
        body.target(),
        body.action,
        granted_by=admin.id,
        expires_in_days=body.expires_in_days,
    )
    return PermissionResponse.from_grant(grant)


@limiter.limit(_settings.admin_rate_limit)
@router.delete("/admin/permissions", status_code=204)
def revoke_permission(request: Request, body: RevokePermissionRequest) -> Response:
    request.app.state.ledger.revoke(body.user_id, body.target(), body.action)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


@limiter.limit(_settings.admin_rate_limit)
@router.post("/admin/api-keys", response_model=ApiKeyCreatedResponse, status_code=201)
def create_api_key(
    request: Request,
    body: ApiKeyCreateRequest,
    admin: Identity = Depends(require_admin_console),
) -> ApiKeyCreatedResponse:
    """Issue a key owned by user_id. The raw key is in this response only."""
    issued = request.app.state.api_keys.issue(
        body.user_id,
        body.name,
        created_by=admin.id,
        expires_in_days=body.expires_in_days,
    )
    return ApiKeyCreatedResponse(
        id=issued.key_id,
        name=body.name,
        user_id=body.user_id,
        expires_at=issued.expires_at,
        key=issued.raw_key,
    )


@router.get("/admin/api-keys", response_model=list[ApiKeyResponse])
def list_api_keys(
    request: Request,
    user: str = "",
    admin: Identity = Depends(require_admin_console),
) -> list[ApiKeyResponse]:
    """Keys owned by ?user= (defaults to the caller), newest first."""
    owner_id = user.strip() or admin.id
    return [ApiKeyResponse.from_api_key(k) for k in request.app.state.api_keys.list_for(owner_id)]


@limiter.limit(_settings.admin_rate_limit)
@router.delete("/admin/api-keys/{key_id}", status_code=204)
def revoke_api_key(
    request: Request,
    key_id: str,
    admin: Identity = Depends(require_admin_console),
) -> Response:
    """Deactivate a key the caller created or owns. Other keys are left untouched."""
    request.app.state.api_keys.revoke(key_id, admin.id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Pages and stats
# ---------------------------------------------------------------------------


@router.get("/admin/pages", response_model=list[PageInfo])
def list_pages(request: Request) -> list[PageInfo]:
    ledger = request.app.state.ledger
    return [
        PageInfo(path=path, resource=Resource.page(path).key, restricted=ledger.is_page_restricted(path))
        for path in KNOWN_PAGE_PATHS
    ]


@router.get("/admin/stats", response_model=StatsResponse)
def get_stats(request: Request, period: StatsPeriod = StatsPeriod.DAY) -> StatsResponse:
    stats = request.app.state.audit.stats(period)
    return StatsResponse(
        period=stats.period,
        total_requests=stats.total_requests,
        requests_by_endpoint=stats.requests_by_endpoint,
        requests_by_user=stats.requests_by_user,
        error_rate=stats.error_rate,
        avg_response_time_ms=stats.avg_response_time_ms,
    )
