"""Draft and publish versioning for frm forms.

A form is edited as a draft and becomes usable once published:

- ``create_draft`` starts a fresh draft, derives one from an existing form
  (keeping lineage to the published form) or clones one (dropping lineage).
- Field and settings mutations only apply to drafts.
- ``publish_draft`` writes the published row and deletes the draft in one
  storage transaction. A draft with lineage republishes over its parent's
  identity; a draft without lineage gets a new identity.

Usage:
    >>> from frm.storage import MemoryStorage
    >>> from frm.types import FormFieldType
    >>> versions = VersionManager(MemoryStorage())
    >>> draft = versions.create_draft("ws_1")
    >>> field = versions.add_field("ws_1", draft.id, FormFieldType.TEXT_SINGLE)
    >>> form = versions.publish_draft("ws_1", draft.id)
    >>> form.status.value
    'published'
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from frm.errors import ConflictOnPublishError, InvalidStateError, NotFoundError
from frm.events import EventEmitter, FormEvent
from frm.fields import apply_field_updates, new_field, reorder_fields
from frm.models import Form, FormField
from frm.storage.base import Storage
from frm.types import EventType, FormFieldType, FormStatus

logger = logging.getLogger(__name__)

DEFAULT_FORM_NAME = "New form"
DEFAULT_COPY_SUFFIX = "(COPY)"


class VersionManager:
    """Creates, edits and publishes form drafts.

    Attributes:
        storage: Storage backend all reads and writes go through
        emitter: Optional emitter notified of draft creation, publishing and deletion
        copy_name_suffix: Suffix ``copy_form`` appends to the copied name by default
    """

    def __init__(self, storage: Storage, emitter: Optional[EventEmitter] = None,
                 copy_name_suffix: str = DEFAULT_COPY_SUFFIX):
        self.storage = storage
        self.emitter = emitter
        self.copy_name_suffix = copy_name_suffix

    def _emit(self, event_type: EventType, workspace_id: str, form_id: Optional[int],
              payload: Optional[Dict[str, Any]] = None) -> None:
        if self.emitter is not None:
            self.emitter.emit(FormEvent.new(event_type, workspace_id, form_id, payload))

    # reads

    def get_form(self, workspace_id: str, form_id: int) -> Form:
        return self.storage.get_form(workspace_id, form_id)

    def get_draft(self, workspace_id: str, draft_id: int) -> Form:
        return self.storage.get_draft(workspace_id, draft_id)

    def list_forms(self, workspace_id: str, statuses: Optional[Iterable[FormStatus]] = None) -> List[Form]:
        return self.storage.list_forms(workspace_id, statuses)

    # drafts

    def create_draft(
        self,
        workspace_id: str,
        source_form_id: Optional[int] = None,
        forget_lineage: bool = False,
        name_suffix: str = "",
    ) -> Form:
        """Create a new draft.

        Without a source the draft is named "New form" and has no fields. With
        a source, name and fields are copied and ``name_suffix`` is appended to
        the name. The draft keeps lineage to the source's published identity
        unless ``forget_lineage`` is set, which makes it a clone.

        Raises:
            NotFoundError: If ``source_form_id`` does not exist in the workspace
        """
        if source_form_id is None:
            draft = self.storage.save_draft(Form(workspace_id=workspace_id, name=DEFAULT_FORM_NAME))
        else:
            source = self.storage.get_form(workspace_id, source_form_id)
            name = f"{source.name} {name_suffix}" if name_suffix else source.name
            parent_form_id = None
            if not forget_lineage:
                # a draft's own lineage already points at its published form
                parent_form_id = source.id if source.status == FormStatus.PUBLISHED else source.parent_form_id
            draft = self.storage.save_draft(Form(
                workspace_id=workspace_id,
                name=name,
                fields=source.copy().fields,
                parent_form_id=parent_form_id,
            ))

        event_type = EventType.CLONE_CREATED if forget_lineage else EventType.DRAFT_CREATED
        self._emit(event_type, workspace_id, draft.id, {"source_form_id": source_form_id})
        return draft

    def copy_form(self, workspace_id: str, form_id: int, suffix: Optional[str] = None,
                  forget_lineage: bool = False) -> Form:
        """Copy a form of any status into a new draft named ``"<name> <suffix>"``.

        ``suffix`` defaults to ``copy_name_suffix``.
        """
        return self.create_draft(
            workspace_id,
            source_form_id=form_id,
            forget_lineage=forget_lineage,
            name_suffix=self.copy_name_suffix if suffix is None else suffix,
        )

    def _load_draft(self, workspace_id: str, draft_id: int) -> Form:
        form = self.storage.get_form(workspace_id, draft_id)
        if not form.is_draft:
            raise InvalidStateError(
                f"form {draft_id} is {form.status.value}; only drafts can be modified",
                workspace_id=workspace_id,
                details={"form_id": draft_id, "status": form.status.value},
            )
        return form

    # field mutations

    def add_field(self, workspace_id: str, draft_id: int, field_type: FormFieldType) -> FormField:
        """Append a new field of ``field_type`` to the draft and return it."""
        draft = self._load_draft(workspace_id, draft_id)
        created = new_field(FormFieldType(field_type), draft.fields)
        draft.fields[created.key] = created
        self.storage.save_draft(draft)
        return created

    def update_fields(self, workspace_id: str, draft_id: int,
                      values: Mapping[str, Sequence[str]]) -> Form:
        """Replace the draft's fields from a full builder update request.

        See ``frm.fields.apply_field_updates`` for how keys are interpreted.
        """
        draft = self._load_draft(workspace_id, draft_id)
        draft.fields = apply_field_updates(draft.fields, values)
        return self.storage.save_draft(draft)

    def delete_field(self, workspace_id: str, draft_id: int, field_id: str) -> Form:
        draft = self._load_draft(workspace_id, draft_id)
        key = str(field_id)
        if key not in draft.fields:
            raise InvalidStateError(
                f"field '{key}' is not on form {draft_id}",
                workspace_id=workspace_id,
                details={"form_id": draft_id, "field_id": key},
            )
        del draft.fields[key]
        return self.storage.save_draft(draft)

    def reorder_fields(self, workspace_id: str, draft_id: int,
                       ordered_field_ids: Sequence[str]) -> Form:
        """Set each listed field's order to its index in ``ordered_field_ids``."""
        draft = self._load_draft(workspace_id, draft_id)
        draft.fields = reorder_fields(draft.fields, ordered_field_ids)
        return self.storage.save_draft(draft)

    def update_settings(self, workspace_id: str, draft_id: int, name: str) -> Form:
        """Rename the draft; an empty name resets it to "New form"."""
        draft = self._load_draft(workspace_id, draft_id)
        draft.name = name or DEFAULT_FORM_NAME
        return self.storage.save_draft(draft)

    # publishing

    def publish_draft(self, workspace_id: str, draft_id: int) -> Form:
        """Publish a draft, atomically replacing the draft row with a published row.

        Raises:
            NotFoundError: If no draft with ``draft_id`` exists in the workspace
            ConflictOnPublishError: If the published row cannot be written or
                the transaction cannot commit; the draft is left untouched
        """
        try:
            with self.storage.transaction() as tx:
                draft = tx.get_draft(workspace_id, draft_id)
                published = tx.publish_draft(draft)
                tx.delete_form(workspace_id, draft.id)
        except (NotFoundError, ConflictOnPublishError):
            raise
        except Exception as e:
            logger.error("unable to publish draft %s in workspace %s: %s", draft_id, workspace_id, e)
            raise ConflictOnPublishError(
                f"unable to publish draft {draft_id}: {e}",
                workspace_id=workspace_id,
                details={"draft_id": draft_id},
            ) from e

        logger.info("published draft %s as form %s in workspace %s", draft_id, published.id, workspace_id)
        self._emit(EventType.FORM_PUBLISHED, workspace_id, published.id, {"draft_id": draft_id})
        return published

    def delete_form(self, workspace_id: str, form_id: int) -> None:
        self.storage.delete_form(workspace_id, form_id)
        self._emit(EventType.FORM_DELETED, workspace_id, form_id)


__all__ = [
    "DEFAULT_COPY_SUFFIX",
    "DEFAULT_FORM_NAME",
    "VersionManager",
]
