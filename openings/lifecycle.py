"""
openings/lifecycle.py -- Opening Lifecycle Manager.

States: Open -> Closed. Closed is terminal; nothing reopens an opening.

Authorization is passed in, not looked up. Each privileged operation takes a
boolean the caller computed from the permission ledger
(departments:posts:delete / departments:posts:modify). The manager never
inspects roles or admin lists, so the same code serves the self-service path
and the moderator path.

Every operation returns an OpeningResult. Expected outcomes -- invalid input,
missing opening, missing permission, already closed -- come back as a
Failure; only unexpected errors (database down) raise.

Order of checks, where applicable: permission, then input validation, then
the store. A rejected request therefore never issues SQL.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from core.db import Clock, to_iso, utcnow
from core.errors import already_closed, forbidden, not_found, validation_failed
from openings.models import Opening, OpeningDraft, OpeningPatch, OpeningResult
from openings.store import OpeningStore

logger = logging.getLogger("postboard.openings")

_MAX_OWNER_NAME = 255


def _describe(exc: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}" for err in exc.errors())


class OpeningLifecycle:
    """State machine and business rules for openings.

    Usage:
        lifecycle = OpeningLifecycle(OpeningStore(engine))
        result = lifecycle.create(payload, author_id="42", author_name="medic")
        lifecycle.close(result.opening.id, requester_id="42")
    """

    def __init__(self, store: OpeningStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, opening_id: str) -> OpeningResult:
        opening = self._store.get(opening_id)
        if opening is None:
            return OpeningResult(failure=not_found("Opening not found."))
        return OpeningResult(opening=opening)

    def list(self, include_closed: bool = False) -> list[Opening]:
        """Open postings newest first; include_closed adds closed ones (admin view)."""
        return self._store.list_openings(include_closed=include_closed)

    def available_tags(self) -> list[str]:
        return self._store.open_tags()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(self, payload: Mapping[str, Any], author_id: str, author_name: str) -> OpeningResult:
        """Validate payload and post it as an Open opening authored by author_id."""
        try:
            draft = OpeningDraft.model_validate(dict(payload))
        except ValidationError as exc:
            return OpeningResult(failure=validation_failed("Invalid opening payload.", detail=_describe(exc)))

        now = to_iso(self._clock())
        opening = Opening(
            id=str(uuid.uuid4()),
            title=draft.title,
            description=draft.description,
            category=draft.category.value,
            tags=draft.tags,
            contact=draft.contact,
            author_id=author_id,
            author_name=author_name,
            created_at=now,
            updated_at=now,
        )
        self._store.insert(opening)
        logger.info("Opening %s posted by %s", opening.id, author_id)
        return OpeningResult(opening=opening)

    def close(self, opening_id: str, requester_id: str, can_close_any: bool = False) -> OpeningResult:
        """Open -> Closed.

        The transition itself is a single conditional UPDATE; of several
        concurrent callers exactly one wins. Losers (and every other failed
        attempt) are classified afterwards: missing opening, then someone
        else's opening, then already closed.
        """
        now = to_iso(self._clock())
        if self._store.close_if_open(opening_id, requester_id, can_close_any, now):
            logger.info("Opening %s closed by %s", opening_id, requester_id)
            closed = self._store.get(opening_id)
            if closed is None:
                return OpeningResult(failure=not_found("Opening not found."))
            return OpeningResult(opening=closed)

        current = self._store.get(opening_id)
        if current is None:
            return OpeningResult(failure=not_found("Opening not found."))
        if current.author_id != requester_id and not can_close_any:
            return OpeningResult(failure=forbidden("You can only close openings you posted."))
        return OpeningResult(opening=current, failure=already_closed())

    def admin_delete(self, opening_id: str, has_delete_grant: bool) -> OpeningResult:
        """Hard-delete any opening, regardless of author or state."""
        if not has_delete_grant:
            return OpeningResult(failure=forbidden("Deleting openings requires departments:posts:delete."))
        existing = self._store.get(opening_id)
        if not self._store.delete(opening_id):
            return OpeningResult(failure=not_found("Opening not found."))
        logger.info("Opening %s deleted by moderator", opening_id)
        return OpeningResult(opening=existing)

    def update(self, opening_id: str, patch: Mapping[str, Any], has_modify_grant: bool) -> OpeningResult:
        """Apply a partial patch. Unspecified fields keep their stored values."""
        if not has_modify_grant:
            return OpeningResult(failure=forbidden("Editing openings requires departments:posts:modify."))
        try:
            changes = OpeningPatch.model_validate(dict(patch)).changes()
        except ValidationError as exc:
            return OpeningResult(failure=validation_failed("Invalid opening patch.", detail=_describe(exc)))

        if not self._store.update_fields(opening_id, changes, to_iso(self._clock())):
            return OpeningResult(failure=not_found("Opening not found."))
        logger.info("Opening %s updated (%s)", opening_id, ", ".join(sorted(changes)))
        return OpeningResult(opening=self._store.get(opening_id))

    def transfer_ownership(
        self,
        opening_id: str,
        new_owner_id: str,
        new_owner_name: str,
        has_modify_grant: bool,
    ) -> OpeningResult:
        """Reassign author_id / author_name, creating a shadow identity if needed."""
        if not has_modify_grant:
            return OpeningResult(failure=forbidden("Transferring openings requires departments:posts:modify."))
        owner_id = (new_owner_id or "").strip()
        owner_name = (new_owner_name or "").strip()
        if not owner_id or not owner_name:
            return OpeningResult(failure=validation_failed("New owner id and name are required."))
        if len(owner_id) > 64 or len(owner_name) > _MAX_OWNER_NAME:
            return OpeningResult(failure=validation_failed("New owner id or name is too long."))

        if not self._store.transfer(opening_id, owner_id, owner_name, to_iso(self._clock())):
            return OpeningResult(failure=not_found("Opening not found."))
        logger.info("Opening %s transferred to %s", opening_id, owner_id)
        return OpeningResult(opening=self._store.get(opening_id))
