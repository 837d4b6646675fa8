"""SQLite paper library — persistence, duplicate checks, browsing and search."""

import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

from papermanager.models import (
    DuplicatePaperError,
    PaperMetadata,
    PaperNotFoundError,
    PaperRecord,
)

logger = logging.getLogger(__name__)

# ── Schema DDL ───────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS papers (
    id              TEXT PRIMARY KEY,
    name            TEXT,
    authors         TEXT,
    publication     TEXT,
    year            INTEGER,
    summary         TEXT,
    file_path       TEXT NOT NULL,
    read_status     INTEGER NOT NULL DEFAULT 0,
    added_at        TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_papers_file_path ON papers(file_path);
CREATE INDEX IF NOT EXISTS idx_papers_name ON papers(name);
"""

#: Search field name → column.  ``name`` is the title, as shown in the UI.
SEARCH_FIELDS = {
    "name": "name",
    "authors": "authors",
    "publication": "publication",
    "year": "year",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Library ──────────────────────────────────────────────────────────


class Library:
    """Local paper library backed by one SQLite file.

    Uniqueness of ``file_path`` is enforced by the schema.  The title check
    in ``add_paper`` is a pre-check only and can race with a concurrent
    import of a paper with the same title.
    """

    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        # Batch imports write from worker threads; the lock serializes them.
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ── Duplicate probes ─────────────────────────────────────

    def has_file_path(self, file_path: str) -> bool:
        """Return True if a paper for *file_path* is already stored."""
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM papers WHERE file_path = ? LIMIT 1", (file_path,)
            ).fetchone()
        return row is not None

    def has_title(self, title: str) -> bool:
        """Return True if a paper with exactly this title is already stored."""
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM papers WHERE name = ? LIMIT 1", (title,)
            ).fetchone()
        return row is not None

    # ── Papers ───────────────────────────────────────────────

    def add_paper(self, metadata: PaperMetadata, file_path: str) -> PaperRecord:
        """Insert a paper for *file_path* and return the stored record.

        Raises:
            DuplicatePaperError: if the file path or the (non-empty) title is
                already in the library.
        """
        if metadata.title and self.has_title(metadata.title):
            raise DuplicatePaperError(
                f'A paper with the title "{metadata.title}" is already in your library.'
            )

        record = PaperRecord(
            id=str(uuid.uuid4()),
            title=metadata.title,
            authors=metadata.authors,
            publication=metadata.publication,
            year=metadata.year,
            summary=metadata.summary,
            file_path=file_path,
            read_status=False,
            added_at=_now(),
        )
        try:
            with self._lock:
                self._conn.execute(
                    """INSERT INTO papers
                       (id, name, authors, publication, year, summary,
                        file_path, read_status, added_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)""",
                    (
                        record.id,
                        record.title,
                        record.authors,
                        record.publication,
                        record.year,
                        record.summary,
                        record.file_path,
                        record.added_at.isoformat(),
                    ),
                )
                self._conn.commit()
        except sqlite3.IntegrityError as e:
            raise DuplicatePaperError(
                "A paper with this file is already in your library."
            ) from e

        logger.info("Saved paper %s: %s", record.id, record.title or "<untitled>")
        return record

    def get_paper(self, paper_id: str) -> PaperRecord:
        """Return the paper with *paper_id*.

        Raises:
            PaperNotFoundError: if no such paper exists.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM papers WHERE id = ?", (paper_id,)
            ).fetchone()
        if row is None:
            raise PaperNotFoundError(f"Paper {paper_id} not found")
        return _to_record(row)

    def list_papers(self) -> list[PaperRecord]:
        """Return all papers, most recently added first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM papers ORDER BY added_at DESC"
            ).fetchall()
        return [_to_record(r) for r in rows]

    def search(self, text: str, field: str = "name") -> list[PaperRecord]:
        """Filter papers by one field.

        Text fields match case-insensitively anywhere in the value.  ``year``
        matches exactly and never matches non-numeric text.  Empty *text*
        returns every paper.
        """
        if field not in SEARCH_FIELDS:
            raise ValueError(f"Unknown search field: {field!r}")
        if not text:
            return self.list_papers()

        column = SEARCH_FIELDS[field]
        if field == "year":
            try:
                year = int(text)
            except ValueError:
                return []
            query, params = f"SELECT * FROM papers WHERE {column} = ?", (year,)
        else:
            escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            query = f"SELECT * FROM papers WHERE {column} LIKE ? ESCAPE '\\'"
            params = (f"%{escaped}%",)

        with self._lock:
            rows = self._conn.execute(query + " ORDER BY added_at DESC", params).fetchall()
        return [_to_record(r) for r in rows]

    def delete_paper(self, paper_id: str) -> None:
        """Remove a paper from the library (the PDF file is left untouched)."""
        with self._lock:
            cur = self._conn.execute("DELETE FROM papers WHERE id = ?", (paper_id,))
            self._conn.commit()
        if cur.rowcount == 0:
            raise PaperNotFoundError(f"Paper {paper_id} not found")
        logger.info("Deleted paper %s", paper_id)

    def set_read_status(self, paper_id: str, read: bool) -> PaperRecord:
        """Mark a paper as read or unread and return the updated record."""
        with self._lock:
            cur = self._conn.execute(
                "UPDATE papers SET read_status = ? WHERE id = ?",
                (int(read), paper_id),
            )
            self._conn.commit()
        if cur.rowcount == 0:
            raise PaperNotFoundError(f"Paper {paper_id} not found")
        return self.get_paper(paper_id)


def _to_record(row: sqlite3.Row) -> PaperRecord:
    return PaperRecord(
        id=row["id"],
        title=row["name"],
        authors=row["authors"],
        publication=row["publication"],
        year=row["year"],
        summary=row["summary"],
        file_path=row["file_path"],
        read_status=bool(row["read_status"]),
        added_at=row["added_at"],
    )
