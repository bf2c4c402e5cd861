"""Storage interface consumed by the frm engine.

Every operation is scoped by workspace ID except ``list_drafts``, which the
draft reaper uses across workspaces. Lookups that miss raise
``NotFoundError``; backend failures raise ``PersistenceError``.

``transaction()`` yields a ``StorageTransaction`` whose writes become visible
together on successful exit and are discarded if the block raises.
"""

from datetime import datetime
from typing import ContextManager, Iterable, List, Optional

from typing_extensions import Protocol, runtime_checkable

from frm.models import Form, FormSubmission, ShortCode
from frm.types import FormStatus


@runtime_checkable
class StorageTransaction(Protocol):
    """Operations available inside a transaction."""

    def get_draft(self, workspace_id: str, form_id: int) -> Form:
        ...

    def publish_draft(self, draft: Form) -> Form:
        """Create or overwrite the published row for ``draft``.

        The published identity is ``draft.parent_form_id`` when set, otherwise
        a newly allocated ID. The draft row itself is left in place.
        """
        ...

    def delete_form(self, workspace_id: str, form_id: int) -> None:
        ...


@runtime_checkable
class Storage(Protocol):
    """Transactional CRUD over forms, submissions and short codes."""

    def save_draft(self, form: Form) -> Form:
        """Insert a new draft (``form.id is None``) or update an existing draft."""
        ...

    def get_draft(self, workspace_id: str, form_id: int) -> Form:
        ...

    def get_form(self, workspace_id: str, form_id: int) -> Form:
        """Fetch a form of any status."""
        ...

    def list_forms(self, workspace_id: str, statuses: Optional[Iterable[FormStatus]] = None) -> List[Form]:
        ...

    def list_drafts(self, older_than: datetime) -> List[Form]:
        """Drafts in any workspace last updated before ``older_than``."""
        ...

    def delete_form(self, workspace_id: str, form_id: int) -> None:
        ...

    def save_submission(self, submission: FormSubmission) -> FormSubmission:
        ...

    def get_submission(self, workspace_id: str, submission_id: int) -> FormSubmission:
        ...

    def save_or_get_short_code(self, short_code: ShortCode) -> ShortCode:
        """Atomically store ``short_code``, or return the code already stored for its triple.

        Raises:
            ShortCodeCollision: If ``short_code.code`` is already taken by another triple
        """
        ...

    def resolve_short_code(self, workspace_id: str, code: str) -> ShortCode:
        ...

    def transaction(self) -> ContextManager[StorageTransaction]:
        ...


class ShortCodeCollision(Exception):
    """Raised by storage when a freshly generated code is already in use in the workspace."""


__all__ = [
    "Storage",
    "StorageTransaction",
    "ShortCodeCollision",
]
