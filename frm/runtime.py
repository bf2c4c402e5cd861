"""FormEngine: the service object wiring frm's components together.

The engine owns a storage handle and hands it to each component, so callers
construct one engine at startup and pass it wherever forms are built,
published or collected.

Usage:
    >>> from frm.storage import MemoryStorage
    >>> from frm.types import FormFieldType
    >>> engine = FormEngine(MemoryStorage())
    >>> draft = engine.versions.create_draft("ws_1")
    >>> field = engine.versions.add_field("ws_1", draft.id, FormFieldType.TEXT_SINGLE)
    >>> form = engine.versions.publish_draft("ws_1", draft.id)
    >>> code = engine.short_codes.create_or_get("ws_1", form.id, "customer_42")
    >>> result = engine.collector.collect("ws_1", {field.key: "hi"}, short_code=code.code)
    >>> result.submission.subject_id
    'customer_42'
"""

import logging
from typing import Iterable, List, Optional

from frm.collector import Receiver, SubmissionCollector
from frm.config import FrmSettings
from frm.events import EventEmitter
from frm.models import Form
from frm.reaper import DraftReaper, ErrorCallback
from frm.shortcodes import ShortCodeRegistry
from frm.storage import SQLiteStorage
from frm.storage.base import Storage
from frm.types import FormStatus
from frm.validation import SubmissionValidator
from frm.versions import VersionManager

logger = logging.getLogger(__name__)


class FormEngine:
    """Entry point for form building, publishing and collection.

    Attributes:
        storage: Storage backend shared by all components
        settings: Engine settings
        emitter: Event emitter receiving lifecycle events
        versions: Draft and publish operations
        short_codes: Subject attribution codes
        collector: Submission validation and persistence
    """

    def __init__(
        self,
        storage: Storage,
        settings: Optional[FrmSettings] = None,
        receiver: Optional[Receiver] = None,
        emitter: Optional[EventEmitter] = None,
    ):
        self.storage = storage
        self.settings = settings or FrmSettings()
        self.emitter = emitter or EventEmitter()
        self.versions = VersionManager(
            storage,
            emitter=self.emitter,
            copy_name_suffix=self.settings.copy_name_suffix,
        )
        self.short_codes = ShortCodeRegistry(storage, length=self.settings.short_code_length)
        self.collector = SubmissionCollector(
            storage,
            validator=SubmissionValidator(),
            receiver=receiver,
            emitter=self.emitter,
        )

    @classmethod
    def from_settings(cls, settings: Optional[FrmSettings] = None,
                      receiver: Optional[Receiver] = None) -> "FormEngine":
        """Build an engine backed by the SQLite database named in ``settings``."""
        settings = settings or FrmSettings()
        storage = SQLiteStorage(settings.database_path, timeout=settings.storage_timeout)
        logger.info("frm engine using sqlite database %s", settings.database_path)
        return cls(storage, settings=settings, receiver=receiver)

    def draft_reaper(self, on_error: Optional[ErrorCallback] = None) -> DraftReaper:
        """Create a reaper configured from settings; call ``start()`` on it to run it."""
        return DraftReaper(
            self.storage,
            max_age=self.settings.draft_max_age,
            interval=self.settings.reaper_interval,
            emitter=self.emitter,
            on_error=on_error,
        )

    def get_form(self, workspace_id: str, form_id: int) -> Form:
        return self.versions.get_form(workspace_id, form_id)

    def list_forms(self, workspace_id: str, statuses: Optional[Iterable[FormStatus]] = None) -> List[Form]:
        return self.versions.list_forms(workspace_id, statuses)

    def delete_form(self, workspace_id: str, form_id: int) -> None:
        self.versions.delete_form(workspace_id, form_id)


__all__ = ["FormEngine"]
