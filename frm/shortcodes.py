"""Short codes attributing anonymous submissions to a subject.

Each ``(workspace, form, subject)`` triple maps to exactly one code. The first
call generates and stores it; every later call returns the stored code. The
insert-or-return step is a single atomic storage operation, so concurrent
first callers converge on the same code.
"""

import logging
import secrets
import string

from frm.errors import PersistenceError
from frm.models import ShortCode
from frm.storage.base import ShortCodeCollision, Storage

logger = logging.getLogger(__name__)

SHORT_CODE_CHARSET = string.ascii_lowercase + string.ascii_uppercase + string.digits
DEFAULT_SHORT_CODE_LENGTH = 6

# attempts at finding an unused code before giving up
MAX_GENERATE_ATTEMPTS = 10


def generate_code(length: int = DEFAULT_SHORT_CODE_LENGTH) -> str:
    """Generate a code of ``length`` characters drawn uniformly from ``SHORT_CODE_CHARSET``.

    Examples:
        >>> len(generate_code())
        6
        >>> all(c in SHORT_CODE_CHARSET for c in generate_code(12))
        True
    """
    if length < 1:
        raise ValueError("short code length must be at least 1")
    return "".join(secrets.choice(SHORT_CODE_CHARSET) for _ in range(length))


class ShortCodeRegistry:
    """Idempotent short-code creation and lookup.

    Examples:
        >>> from frm.storage import MemoryStorage
        >>> from frm.versions import VersionManager
        >>> storage = MemoryStorage()
        >>> versions = VersionManager(storage)
        >>> form = versions.publish_draft("ws", versions.create_draft("ws").id)
        >>> registry = ShortCodeRegistry(storage)
        >>> first = registry.create_or_get("ws", form.id, "customer_42")
        >>> registry.create_or_get("ws", form.id, "customer_42") == first
        True
    """

    def __init__(self, storage: Storage, length: int = DEFAULT_SHORT_CODE_LENGTH):
        if length < 1:
            raise ValueError("short code length must be at least 1")
        self.storage = storage
        self.length = length

    def create_or_get(self, workspace_id: str, form_id: int, subject_id: str) -> ShortCode:
        """Return the code for the triple, creating it on first use.

        Raises:
            NotFoundError: If ``form_id`` does not exist in the workspace
            PersistenceError: If no unused code could be generated
        """
        self.storage.get_form(workspace_id, form_id)

        for _ in range(MAX_GENERATE_ATTEMPTS):
            candidate = ShortCode(
                code=generate_code(self.length),
                workspace_id=workspace_id,
                form_id=form_id,
                subject_id=subject_id,
            )
            try:
                return self.storage.save_or_get_short_code(candidate)
            except ShortCodeCollision:
                logger.debug("short code %s already taken in workspace %s", candidate.code, workspace_id)

        raise PersistenceError(
            f"unable to generate an unused short code after {MAX_GENERATE_ATTEMPTS} attempts",
            workspace_id=workspace_id,
            details={"form_id": form_id, "subject_id": subject_id},
        )

    def resolve(self, workspace_id: str, code: str) -> ShortCode:
        """Look up a code.

        Raises:
            NotFoundError: If the code does not exist in the workspace
        """
        return self.storage.resolve_short_code(workspace_id, code)


__all__ = [
    "SHORT_CODE_CHARSET",
    "DEFAULT_SHORT_CODE_LENGTH",
    "generate_code",
    "ShortCodeRegistry",
]
