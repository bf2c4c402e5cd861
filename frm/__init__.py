"""frm: form lifecycle and rules engine.

frm lets an application define structured forms and collect submissions:
- Drafts that are edited freely and published onto a stable form identity
- Conditional field logic that shows or requires fields based on other answers
- Per-field validation errors suitable for re-rendering a form
- Short codes attributing otherwise anonymous submissions to a subject
- A background reaper removing abandoned drafts

Basic usage:
    >>> from frm import FormEngine
    >>> from frm.storage import MemoryStorage
    >>> engine = FormEngine(MemoryStorage())
    >>> draft = engine.versions.create_draft("ws_1")
    >>> print(draft.status.value)
    draft
"""

__version__ = "0.1.0"

# Version info
VERSION = (0, 1, 0)

# Core exports
from frm.config import FrmSettings
from frm.runtime import FormEngine

__all__ = [
    "__version__",
    "VERSION",
    "FormEngine",
    "FrmSettings",
]
