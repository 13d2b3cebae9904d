"""
API request and response models for Postboard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
openings/models.py, which own the internal domain representation. Route
handlers map between the two.

Opening request bodies are deliberately loose: field rules (lengths, category,
tag limits) are enforced by the lifecycle manager so a bad payload comes back
as a 400 validation_error with the same wording whether it arrived over HTTP
or from a script. Admin request bodies are validated here, at the boundary.

Separation of concerns: domain models = domain truth; api/ models = API contract.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import ApiKey, Identity, PermissionGrant
from auth.permissions import Action, Resource
from openings.models import Opening

_MAX_EXPIRY_DAYS = 3650

# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health.

    status is "healthy" when every component reports "ok", else "degraded".
    """

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    avatar_url: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(id=identity.id, username=identity.username, avatar_url=identity.avatar_url)


class MeResponse(IdentityResponse):
    """Response for GET /api/v1/auth/me."""

    is_admin: bool = False


# ---------------------------------------------------------------------------
# Openings
# ---------------------------------------------------------------------------


class OpeningCreateRequest(BaseModel):
    """Request body for POST /api/v1/openings.

    tags may be a list or a comma-separated string.
    """

    title: str = ""
    description: str = ""
    category: str = ""
    tags: Union[list[str], str] = Field(default_factory=list)
    contact: str = ""


class OpeningPatchRequest(BaseModel):
    """Request body for PATCH /api/v1/openings/{id}. Omitted fields are unchanged."""

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[Union[list[str], str]] = None
    contact: Optional[str] = None


class TransferRequest(BaseModel):
    """Request body for POST /api/v1/openings/{id}/transfer."""

    new_owner_id: str
    new_owner_name: str


class OpeningResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    category: str
    tags: list[str]
    contact: str
    author_id: str
    author_name: str
    state: str
    created_at: str
    updated_at: str
    closed_at: Optional[str] = None

    @classmethod
    def from_opening(cls, opening: Opening) -> "OpeningResponse":
        return cls(
            id=opening.id,
            title=opening.title,
            description=opening.description,
            category=opening.category,
            tags=list(opening.tags),
            contact=opening.contact,
            author_id=opening.author_id,
            author_name=opening.author_name,
            state=opening.state.value,
            created_at=opening.created_at,
            updated_at=opening.updated_at,
            closed_at=opening.closed_at,
        )


class OpeningRemovedResponse(BaseModel):
    """Response for DELETE /api/v1/openings/{id}.

    status is "closed" on the self-service path and "deleted" on the
    moderator path.
    """

    model_config = ConfigDict(frozen=True)

    status: str
    opening: Optional[OpeningResponse] = None


class TagsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    tags: list[str]


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


class PageAccessResponse(BaseModel):
    """Response for GET /api/v1/pages/access."""

    model_config = ConfigDict(frozen=True)

    path: str
    allowed: bool


class PageInfo(BaseModel):
    """One row of GET /api/v1/admin/pages."""

    model_config = ConfigDict(frozen=True)

    path: str
    resource: str
    restricted: bool


# ---------------------------------------------------------------------------
# Admin -- permissions
# ---------------------------------------------------------------------------


class _ResourceField(BaseModel):
    resource: str = Field(description="Resource key, e.g. 'page:/rules' or 'departments:posts'.")

    @field_validator("resource")
    @classmethod
    def normalize_resource(cls, value: str) -> str:
        """Reject resources outside the closed vocabulary; return the stored key form."""
        return Resource.parse(value).key

    def target(self) -> Resource:
        return Resource.parse(self.resource)


class GrantRequest(_ResourceField):
    """Request body for POST /api/v1/admin/permissions.

    expires_in_days omitted means a permanent grant.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(min_length=1, max_length=64)
    action: Action
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=_MAX_EXPIRY_DAYS)


class RevokePermissionRequest(_ResourceField):
    """Request body for DELETE /api/v1/admin/permissions."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(min_length=1, max_length=64)
    action: Action


class PermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    resource: str
    action: str
    granted_at: str
    expires_at: Optional[str] = None
    granted_by: Optional[str] = None

    @classmethod
    def from_grant(cls, grant: PermissionGrant) -> "PermissionResponse":
        return cls(
            user_id=grant.user_id,
            resource=grant.resource,
            action=grant.action,
            granted_at=grant.granted_at,
            expires_at=grant.expires_at,
            granted_by=grant.granted_by,
        )


# ---------------------------------------------------------------------------
# Admin -- API keys
# ---------------------------------------------------------------------------


class ApiKeyCreateRequest(BaseModel):
    """Request body for POST /api/v1/admin/api-keys."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=100)
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=_MAX_EXPIRY_DAYS)


class ApiKeyResponse(BaseModel):
    """API key metadata. The raw key and its hash are never included."""

    model_config = ConfigDict(frozen=True)

    id: str
    key_type: str
    name: str
    user_id: Optional[str] = None
    created_by: str
    created_at: Optional[str] = None
    expires_at: Optional[str] = None
    last_used_at: Optional[str] = None
    is_active: bool

    @classmethod
    def from_api_key(cls, key: ApiKey) -> "ApiKeyResponse":
        return cls(
            id=key.id,
            key_type=key.key_type,
            name=key.name,
            user_id=key.user_id,
            created_by=key.created_by,
            created_at=key.created_at,
            expires_at=key.expires_at,
            last_used_at=key.last_used_at,
            is_active=key.is_active,
        )


class ApiKeyCreatedResponse(BaseModel):
    """Returned once on creation. key is shown only in this response."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    user_id: str
    expires_at: Optional[str] = None
    key: str


# ---------------------------------------------------------------------------
# Admin -- stats
# ---------------------------------------------------------------------------


class StatsResponse(BaseModel):
    """Response for GET /api/v1/admin/stats."""

    model_config = ConfigDict(frozen=True)

    period: str
    total_requests: int
    requests_by_endpoint: dict[str, int]
    requests_by_user: dict[str, int]
    error_rate: float
    avg_response_time_ms: float
