"""SQLite storage backend.

Each call opens its own connection to ``database`` (a file path), so the
backend holds no shared connection state and may be used from any thread.
Connections wait up to ``timeout`` seconds on a locked database before the
call fails with ``PersistenceError``.

Publishing runs inside ``BEGIN IMMEDIATE`` so concurrent publishes of the
same draft serialize: the second one finds the draft gone. Short codes are
written with ``INSERT ... ON CONFLICT DO NOTHING`` and read back in the same
transaction, so concurrent first-time callers converge on one code.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Union

from frm.errors import NotFoundError, PersistenceError
from frm.models import Form, FormSubmission, ShortCode, utcnow
from frm.storage.base import ShortCodeCollision
from frm.types import FormStatus

SCHEMA = """
CREATE TABLE IF NOT EXISTS forms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    form_id INTEGER,
    workspace_id TEXT NOT NULL,
    name TEXT NOT NULL,
    fields TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('draft', 'published')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS forms_workspace_status ON forms (workspace_id, status);

CREATE TABLE IF NOT EXISTS form_submissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    form_id INTEGER NOT NULL,
    workspace_id TEXT NOT NULL,
    subject_id TEXT,
    status TEXT NOT NULL,
    fields TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS short_codes (
    workspace_id TEXT NOT NULL,
    code TEXT NOT NULL,
    form_id INTEGER NOT NULL,
    subject_id TEXT NOT NULL,
    PRIMARY KEY (workspace_id, code),
    UNIQUE (workspace_id, form_id, subject_id)
);
"""

FORM_COLUMNS = "id, form_id, workspace_id, name, fields, status, created_at, updated_at"
SUBMISSION_COLUMNS = "id, form_id, workspace_id, subject_id, status, fields, created_at, updated_at"


def _ts(value: datetime) -> str:
    # fixed width, so stored timestamps compare correctly as text
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _form_from_row(row: sqlite3.Row) -> Form:
    return Form.from_dict({
        "id": row["id"],
        "parent_form_id": row["form_id"],
        "workspace_id": row["workspace_id"],
        "name": row["name"],
        "fields": json.loads(row["fields"]),
        "status": row["status"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    })


def _submission_from_row(row: sqlite3.Row) -> FormSubmission:
    return FormSubmission.from_dict({
        "id": row["id"],
        "form_id": row["form_id"],
        "workspace_id": row["workspace_id"],
        "subject_id": row["subject_id"],
        "status": row["status"],
        "fields": json.loads(row["fields"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    })


def _fields_json(form: Form) -> str:
    return json.dumps({key: f.to_dict() for key, f in form.fields.items()})


@contextmanager
def _begin(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def _get_form(conn: sqlite3.Connection, workspace_id: str, form_id: int,
              status: Optional[FormStatus] = None) -> Form:
    query = f"SELECT {FORM_COLUMNS} FROM forms WHERE workspace_id = ? AND id = ?"
    params: List[Any] = [workspace_id, form_id]
    if status is not None:
        query += " AND status = ?"
        params.append(status.value)
    row = conn.execute(query, params).fetchone()
    if row is None:
        entity = "draft" if status == FormStatus.DRAFT else "form"
        raise NotFoundError(entity, form_id, workspace_id)
    return _form_from_row(row)


def _delete_form(conn: sqlite3.Connection, workspace_id: str, form_id: int) -> None:
    cursor = conn.execute(
        "DELETE FROM forms WHERE workspace_id = ? AND id = ?", (workspace_id, form_id)
    )
    if cursor.rowcount == 0:
        raise NotFoundError("form", form_id, workspace_id)


def _publish_draft(conn: sqlite3.Connection, draft: Form) -> Form:
    now = _ts(utcnow())
    fields = _fields_json(draft)
    if draft.parent_form_id is None:
        cursor = conn.execute(
            "INSERT INTO forms (form_id, workspace_id, name, fields, status, created_at, updated_at) "
            "VALUES (NULL, ?, ?, ?, 'published', ?, ?)",
            (draft.workspace_id, draft.name, fields, now, now),
        )
        published_id = cursor.lastrowid
    else:
        cursor = conn.execute(
            "INSERT INTO forms (id, form_id, workspace_id, name, fields, status, created_at, updated_at) "
            "VALUES (?, NULL, ?, ?, ?, 'published', ?, ?) "
            "ON CONFLICT (id) DO UPDATE SET "
            "form_id = NULL, name = excluded.name, fields = excluded.fields, "
            "status = 'published', updated_at = excluded.updated_at "
            "WHERE forms.workspace_id = excluded.workspace_id",
            (draft.parent_form_id, draft.workspace_id, draft.name, fields, now, now),
        )
        if cursor.rowcount == 0:
            raise PersistenceError(
                f"form {draft.parent_form_id} belongs to another workspace",
                workspace_id=draft.workspace_id,
            )
        published_id = draft.parent_form_id
    return _get_form(conn, draft.workspace_id, published_id, FormStatus.PUBLISHED)


class _SQLiteTransaction:
    """``StorageTransaction`` bound to one open SQLite transaction."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get_draft(self, workspace_id: str, form_id: int) -> Form:
        return _get_form(self._conn, workspace_id, form_id, FormStatus.DRAFT)

    def publish_draft(self, draft: Form) -> Form:
        return _publish_draft(self._conn, draft)

    def delete_form(self, workspace_id: str, form_id: int) -> None:
        _delete_form(self._conn, workspace_id, form_id)


class SQLiteStorage:
    """``Storage`` backed by a SQLite database file.

    Args:
        database: Path of the database file; created with its schema if missing
        timeout: Seconds to wait on a locked database before failing
    """

    def __init__(self, database: Union[str, Path], timeout: float = 5.0):
        self.database = str(database)
        self.timeout = timeout
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.database, timeout=self.timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise PersistenceError(f"unable to open database {self.database}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            raise PersistenceError(f"storage operation failed: {e}") from e
        finally:
            conn.close()

    # forms

    def save_draft(self, form: Form) -> Form:
        now = _ts(utcnow())
        with self._connect() as conn, _begin(conn):
            if form.id is None:
                cursor = conn.execute(
                    "INSERT INTO forms (form_id, workspace_id, name, fields, status, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, 'draft', ?, ?)",
                    (form.parent_form_id, form.workspace_id, form.name, _fields_json(form), now, now),
                )
                form_id = cursor.lastrowid
            else:
                cursor = conn.execute(
                    "UPDATE forms SET name = ?, fields = ?, updated_at = ? "
                    "WHERE workspace_id = ? AND id = ? AND status = 'draft'",
                    (form.name, _fields_json(form), now, form.workspace_id, form.id),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError("draft", form.id, form.workspace_id)
                form_id = form.id
            return _get_form(conn, form.workspace_id, form_id, FormStatus.DRAFT)

    def get_draft(self, workspace_id: str, form_id: int) -> Form:
        with self._connect() as conn:
            return _get_form(conn, workspace_id, form_id, FormStatus.DRAFT)

    def get_form(self, workspace_id: str, form_id: int) -> Form:
        with self._connect() as conn:
            return _get_form(conn, workspace_id, form_id)

    def list_forms(self, workspace_id: str, statuses: Optional[Iterable[FormStatus]] = None) -> List[Form]:
        query = f"SELECT {FORM_COLUMNS} FROM forms WHERE workspace_id = ?"
        params: List[Any] = [workspace_id]
        wanted = [FormStatus(s).value for s in statuses] if statuses else []
        if wanted:
            query += f" AND status IN ({', '.join('?' for _ in wanted)})"
            params.extend(wanted)
        query += " ORDER BY id"
        with self._connect() as conn:
            return [_form_from_row(row) for row in conn.execute(query, params).fetchall()]

    def list_drafts(self, older_than: datetime) -> List[Form]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {FORM_COLUMNS} FROM forms WHERE status = 'draft' AND updated_at < ? ORDER BY id",
                (_ts(older_than),),
            ).fetchall()
            return [_form_from_row(row) for row in rows]

    def delete_form(self, workspace_id: str, form_id: int) -> None:
        with self._connect() as conn:
            _delete_form(conn, workspace_id, form_id)

    @contextmanager
    def transaction(self) -> Iterator[_SQLiteTransaction]:
        with self._connect() as conn, _begin(conn):
            yield _SQLiteTransaction(conn)

    # submissions

    def save_submission(self, submission: FormSubmission) -> FormSubmission:
        now = _ts(utcnow())
        fields = json.dumps({key: f.to_dict() for key, f in submission.fields.items()})
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO form_submissions (form_id, workspace_id, subject_id, status, fields, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (submission.form_id, submission.workspace_id, submission.subject_id,
                 submission.status.value, fields, now, now),
            )
            row = conn.execute(
                f"SELECT {SUBMISSION_COLUMNS} FROM form_submissions WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
            return _submission_from_row(row)

    def get_submission(self, workspace_id: str, submission_id: int) -> FormSubmission:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {SUBMISSION_COLUMNS} FROM form_submissions WHERE workspace_id = ? AND id = ?",
                (workspace_id, submission_id),
            ).fetchone()
            if row is None:
                raise NotFoundError("submission", submission_id, workspace_id)
            return _submission_from_row(row)

    # short codes

    def save_or_get_short_code(self, short_code: ShortCode) -> ShortCode:
        with self._connect() as conn, _begin(conn):
            try:
                conn.execute(
                    "INSERT INTO short_codes (workspace_id, code, form_id, subject_id) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT (workspace_id, form_id, subject_id) DO NOTHING",
                    (short_code.workspace_id, short_code.code, short_code.form_id, short_code.subject_id),
                )
            except sqlite3.IntegrityError as e:
                raise ShortCodeCollision(short_code.code) from e
            row = conn.execute(
                "SELECT code, workspace_id, form_id, subject_id FROM short_codes "
                "WHERE workspace_id = ? AND form_id = ? AND subject_id = ?",
                (short_code.workspace_id, short_code.form_id, short_code.subject_id),
            ).fetchone()
            return ShortCode.from_dict(dict(row))

    def resolve_short_code(self, workspace_id: str, code: str) -> ShortCode:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT code, workspace_id, form_id, subject_id FROM short_codes "
                "WHERE workspace_id = ? AND code = ?",
                (workspace_id, code),
            ).fetchone()
            if row is None:
                raise NotFoundError("short code", code, workspace_id)
            return ShortCode.from_dict(dict(row))


__all__ = ["SQLiteStorage", "SCHEMA"]
