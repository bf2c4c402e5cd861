"""Submission collection for published forms.

``collect`` validates submitted values against a published form, persists a
``FormSubmission`` snapshotting each answered field, and hands the saved
record to the application's receiver callback. Validation failures are
returned as data so the caller can re-render the form with per-field
messages; nothing is persisted in that case.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from frm.errors import NotFoundError, ValidationErrors
from frm.events import EventEmitter, FormEvent
from frm.models import Form, FormFieldSubmission, FormSubmission
from frm.storage.base import Storage
from frm.types import EventType, FormStatus, SubmissionStatus
from frm.validation import SubmissionValidator, SubmittedValues, normalize_values

logger = logging.getLogger(__name__)

SHORT_CODE_KEY = "short_code"
SUBMISSION_ID_KEY = "submission_id"
RESERVED_KEYS = (SHORT_CODE_KEY, SUBMISSION_ID_KEY)

Receiver = Callable[[FormSubmission], None]


@dataclass
class CollectResult:
    """Outcome of ``SubmissionCollector.collect``.

    Exactly one of ``errors`` (non-empty) and ``submission`` is meaningful.
    """

    errors: ValidationErrors
    submission: Optional[FormSubmission] = None

    @property
    def ok(self) -> bool:
        return self.submission is not None


class SubmissionCollector:
    """Validates and stores submissions, then notifies the receiver.

    Examples:
        >>> from frm.storage import MemoryStorage
        >>> from frm.types import FormFieldType
        >>> from frm.versions import VersionManager
        >>> storage = MemoryStorage()
        >>> versions = VersionManager(storage)
        >>> draft = versions.create_draft("ws")
        >>> field = versions.add_field("ws", draft.id, FormFieldType.TEXT_SINGLE)
        >>> form = versions.publish_draft("ws", draft.id)
        >>> result = SubmissionCollector(storage).collect("ws", {field.key: ["hello"]}, form_id=form.id)
        >>> result.ok
        True
    """

    def __init__(
        self,
        storage: Storage,
        validator: Optional[SubmissionValidator] = None,
        receiver: Optional[Receiver] = None,
        emitter: Optional[EventEmitter] = None,
    ):
        self.storage = storage
        self.validator = validator or SubmissionValidator()
        self.receiver = receiver
        self.emitter = emitter

    def collect(
        self,
        workspace_id: str,
        values: SubmittedValues,
        form_id: Optional[int] = None,
        short_code: Optional[str] = None,
    ) -> CollectResult:
        """Validate and persist a submission.

        Args:
            workspace_id: Workspace the form belongs to
            values: Submitted values keyed by field ID; may include a
                ``short_code`` key, which is used when ``short_code`` is not given
            form_id: Target form; resolved from the short code when omitted
            short_code: Code attributing the submission to a subject

        Raises:
            NotFoundError: If no published form can be resolved
        """
        submitted = normalize_values(values)
        if short_code is None:
            short_code = next(iter(submitted.get(SHORT_CODE_KEY, [])), None) or None
        for key in RESERVED_KEYS:
            submitted.pop(key, None)

        subject_id = None
        if short_code:
            try:
                code = self.storage.resolve_short_code(workspace_id, short_code)
            except NotFoundError:
                logger.info("short code %s not found in workspace %s; collecting anonymously",
                            short_code, workspace_id)
            else:
                if form_id is None:
                    form_id = code.form_id
                if code.form_id == form_id:
                    subject_id = code.subject_id
                else:
                    logger.warning("short code %s belongs to form %s, not form %s; ignoring it",
                                   short_code, code.form_id, form_id)

        if form_id is None:
            raise NotFoundError("form", short_code or "<none>", workspace_id)

        form = self._load_published(workspace_id, form_id)

        errors = self.validator.validate(form, submitted)
        if errors.any():
            return CollectResult(errors=errors)

        submission = self.storage.save_submission(FormSubmission(
            form_id=form.id,
            workspace_id=workspace_id,
            fields=self._snapshot_fields(form, submitted),
            status=SubmissionStatus.PARTIAL,
            subject_id=subject_id,
        ))
        logger.info("collected submission %s for form %s in workspace %s",
                    submission.id, form.id, workspace_id)

        if self.emitter is not None:
            self.emitter.emit(FormEvent.new(
                EventType.SUBMISSION_RECEIVED,
                workspace_id,
                form.id,
                {"submission_id": submission.id, "subject_id": subject_id},
            ))
        self._notify(submission)
        return CollectResult(errors=errors, submission=submission)

    def get_submission(self, workspace_id: str, submission_id: int) -> FormSubmission:
        return self.storage.get_submission(workspace_id, submission_id)

    def _load_published(self, workspace_id: str, form_id: int) -> Form:
        form = self.storage.get_form(workspace_id, form_id)
        if form.status != FormStatus.PUBLISHED:
            raise NotFoundError("published form", form_id, workspace_id)
        return form

    def _snapshot_fields(self, form: Form, submitted: Dict[str, List[str]]) -> Dict[str, FormFieldSubmission]:
        snapshots: Dict[str, FormFieldSubmission] = {}
        for key, value in submitted.items():
            form_field = form.fields.get(key)
            if form_field is None:
                logger.warning("form %s has no field %s; skipping submitted value", form.id, key)
                continue
            snapshots[key] = FormFieldSubmission.snapshot(form_field, value)
        return snapshots

    def _notify(self, submission: FormSubmission) -> None:
        if self.receiver is None:
            return
        try:
            self.receiver(submission)
        except Exception:
            logger.exception("receiver failed for submission %s", submission.id)


__all__ = [
    "RESERVED_KEYS",
    "CollectResult",
    "SubmissionCollector",
]
