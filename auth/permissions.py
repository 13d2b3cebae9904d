"""
auth/permissions.py -- Closed vocabulary for permission grants.

Grants are stored as (resource, action) strings, but every call site builds
them from these types so a grant written by the admin console and a check
made by a route can never drift apart through a typo.

Resource keys:
  page:<path>         -- page gate for a site path ("page:/rules")
  admin_dashboard     -- admin console
  api_keys            -- API key management
  users               -- identity directory
  departments:posts   -- openings moderation (modify / delete)

Action "admin" is a wildcard: holding (resource, admin) satisfies any action
check on that resource.

Layer rule: no imports from api/, openings/, or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

PAGE_PREFIX = "page:"

# Site paths offered in the admin console when granting page access.
KNOWN_PAGE_PATHS: tuple[str, ...] = ("/", "/showcases", "/departments", "/rules", "/tos", "/admin")


class Action(str, Enum):
    VIEW = "view"
    READ = "read"
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    ADMIN = "admin"


class ResourceKind(str, Enum):
    PAGE = "page"
    ADMIN_DASHBOARD = "admin_dashboard"
    API_KEYS = "api_keys"
    USERS = "users"
    DEPARTMENTS_POSTS = "departments:posts"


# Actions that make a page grant count for the page gate.
PAGE_ACTIONS: tuple[Action, ...] = (Action.VIEW, Action.READ)


def normalize_page_path(path: str | None) -> str:
    """Trim a page path; an empty path means the site root."""
    normalized = (path or "").strip()
    return normalized or "/"


@dataclass(frozen=True)
class Resource:
    """A permission target. path is set only for PAGE resources."""

    kind: ResourceKind
    path: str | None = None

    @property
    def key(self) -> str:
        """The string stored in user_permissions.resource."""
        if self.kind is ResourceKind.PAGE:
            return f"{PAGE_PREFIX}{normalize_page_path(self.path)}"
        return self.kind.value

    def __str__(self) -> str:
        return self.key

    @classmethod
    def page(cls, path: str | None) -> Resource:
        return cls(ResourceKind.PAGE, normalize_page_path(path))

    @classmethod
    def parse(cls, raw: str) -> Resource:
        """Parse a stored or submitted resource key.

        Raises ValueError for anything outside the closed set. Page paths must
        be server-local ("/..."); "page:" alone means the root page.
        """
        value = (raw or "").strip()
        if value.startswith(PAGE_PREFIX):
            path = normalize_page_path(value[len(PAGE_PREFIX) :])
            if not path.startswith("/"):
                raise ValueError(f"Page resource path must start with '/': {raw!r}")
            return cls.page(path)
        for kind in ResourceKind:
            if kind is not ResourceKind.PAGE and kind.value == value:
                return cls(kind)
        raise ValueError(f"Unknown resource: {raw!r}")


ADMIN_DASHBOARD = Resource(ResourceKind.ADMIN_DASHBOARD)
API_KEYS = Resource(ResourceKind.API_KEYS)
USERS = Resource(ResourceKind.USERS)
DEPARTMENTS_POSTS = Resource(ResourceKind.DEPARTMENTS_POSTS)

# Any one of these (non-expired) grants opens the admin console.
ADMIN_CONSOLE_GRANTS: tuple[tuple[Resource, tuple[Action, ...]], ...] = (
    (ADMIN_DASHBOARD, (Action.READ, Action.ADMIN)),
    (API_KEYS, (Action.ADMIN, Action.READ)),
    (USERS, (Action.READ, Action.ADMIN)),
)
