"""In-process storage backend.

Records are held as plain dicts in their persisted JSON shape, so every read
returns a fresh object and callers can never mutate stored state by accident.
A single re-entrant lock serializes access; ``transaction()`` holds it for the
whole block and restores a snapshot if the block raises.
"""

import copy
import itertools
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from frm.errors import NotFoundError, PersistenceError
from frm.models import Form, FormSubmission, ShortCode, parse_ts, touch, utcnow
from frm.storage.base import ShortCodeCollision
from frm.types import FormStatus


class MemoryStorage:
    """Thread-safe in-memory implementation of ``Storage``.

    Examples:
        >>> storage = MemoryStorage()
        >>> draft = storage.save_draft(Form(workspace_id="ws", name="New form"))
        >>> storage.get_draft("ws", draft.id).name
        'New form'
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._forms: Dict[int, Dict[str, Any]] = {}
        self._submissions: Dict[int, Dict[str, Any]] = {}
        self._short_codes: Dict[Tuple[str, str], Dict[str, Any]] = {}  # (workspace, code) -> record
        self._form_ids = itertools.count(1)
        self._submission_ids = itertools.count(1)

    # forms

    def save_draft(self, form: Form) -> Form:
        with self._lock:
            if form.id is None:
                saved = touch(replace(form, id=next(self._form_ids), status=FormStatus.DRAFT))
            else:
                existing = self._get(form.workspace_id, form.id, FormStatus.DRAFT)
                saved = touch(replace(
                    form,
                    status=FormStatus.DRAFT,
                    parent_form_id=existing.parent_form_id,
                    created_at=existing.created_at,
                ))
            self._forms[saved.id] = saved.to_dict()
            return saved

    def get_draft(self, workspace_id: str, form_id: int) -> Form:
        with self._lock:
            return self._get(workspace_id, form_id, FormStatus.DRAFT)

    def get_form(self, workspace_id: str, form_id: int) -> Form:
        with self._lock:
            return self._get(workspace_id, form_id)

    def list_forms(self, workspace_id: str, statuses: Optional[Iterable[FormStatus]] = None) -> List[Form]:
        wanted = {FormStatus(s) for s in statuses} if statuses else None
        with self._lock:
            forms = [
                Form.from_dict(record)
                for record in self._forms.values()
                if record["workspace_id"] == workspace_id
                and (wanted is None or FormStatus(record["status"]) in wanted)
            ]
        return sorted(forms, key=lambda f: f.id)

    def list_drafts(self, older_than: datetime) -> List[Form]:
        with self._lock:
            return [
                Form.from_dict(record)
                for record in self._forms.values()
                if record["status"] == FormStatus.DRAFT.value
                and parse_ts(record["updated_at"]) < older_than
            ]

    def delete_form(self, workspace_id: str, form_id: int) -> None:
        with self._lock:
            self._get(workspace_id, form_id)
            del self._forms[form_id]

    def publish_draft(self, draft: Form) -> Form:
        with self._lock:
            now = utcnow()
            if draft.parent_form_id is not None:
                published_id = draft.parent_form_id
            else:
                published_id = next(self._form_ids)
            existing = self._forms.get(published_id)
            if existing is not None and existing["workspace_id"] != draft.workspace_id:
                raise PersistenceError(
                    f"form {published_id} belongs to another workspace",
                    workspace_id=draft.workspace_id,
                )
            published = Form(
                id=published_id,
                parent_form_id=None,
                workspace_id=draft.workspace_id,
                name=draft.name,
                fields=copy.deepcopy(draft.fields),
                status=FormStatus.PUBLISHED,
                created_at=parse_ts(existing["created_at"]) if existing else now,
                updated_at=now,
            )
            self._forms[published_id] = published.to_dict()
            return published

    @contextmanager
    def transaction(self) -> Iterator["MemoryStorage"]:
        with self._lock:
            snapshot = (
                copy.deepcopy(self._forms),
                copy.deepcopy(self._submissions),
                copy.deepcopy(self._short_codes),
            )
            try:
                yield self
            except BaseException:
                self._forms, self._submissions, self._short_codes = snapshot
                raise

    def _get(self, workspace_id: str, form_id: int, status: Optional[FormStatus] = None) -> Form:
        record = self._forms.get(form_id)
        if (
            record is None
            or record["workspace_id"] != workspace_id
            or (status is not None and record["status"] != status.value)
        ):
            entity = "draft" if status == FormStatus.DRAFT else "form"
            raise NotFoundError(entity, form_id, workspace_id)
        return Form.from_dict(record)

    # submissions

    def save_submission(self, submission: FormSubmission) -> FormSubmission:
        with self._lock:
            now = utcnow()
            saved = replace(
                submission,
                id=submission.id if submission.id is not None else next(self._submission_ids),
                created_at=submission.created_at or now,
                updated_at=now,
            )
            self._submissions[saved.id] = saved.to_dict()
            return saved

    def get_submission(self, workspace_id: str, submission_id: int) -> FormSubmission:
        with self._lock:
            record = self._submissions.get(submission_id)
            if record is None or record["workspace_id"] != workspace_id:
                raise NotFoundError("submission", submission_id, workspace_id)
            return FormSubmission.from_dict(record)

    # short codes

    def save_or_get_short_code(self, short_code: ShortCode) -> ShortCode:
        with self._lock:
            for record in self._short_codes.values():
                if (
                    record["workspace_id"] == short_code.workspace_id
                    and record["form_id"] == short_code.form_id
                    and record["subject_id"] == short_code.subject_id
                ):
                    return ShortCode.from_dict(record)
            key = (short_code.workspace_id, short_code.code)
            if key in self._short_codes:
                raise ShortCodeCollision(short_code.code)
            self._short_codes[key] = short_code.to_dict()
            return short_code

    def resolve_short_code(self, workspace_id: str, code: str) -> ShortCode:
        with self._lock:
            record = self._short_codes.get((workspace_id, code))
            if record is None:
                raise NotFoundError("short code", code, workspace_id)
            return ShortCode.from_dict(record)


__all__ = ["MemoryStorage"]
