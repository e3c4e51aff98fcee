"""
Job Store - Cross-run job de-duplication and persistence by LinkedIn id
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Set

from database import connect
from models import ScrapedPosting

logger = logging.getLogger(__name__)

# Stay well below SQLite's bound-parameter limit
ID_CHUNK_SIZE = 500


class JobStore:
    """Persists discovered postings in the jobs table."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def existing_ids(self, site_ids: Iterable[str]) -> Set[str]:
        """Return the subset of ids already stored, in one batched query per chunk."""
        ids = list(dict.fromkeys(i for i in site_ids if i))
        if not ids:
            return set()

        found: Set[str] = set()
        with connect(self.path) as conn:
            for start in range(0, len(ids), ID_CHUNK_SIZE):
                chunk = ids[start:start + ID_CHUNK_SIZE]
                placeholders = ",".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT site_id FROM jobs WHERE site_id IN ({placeholders})", chunk
                ).fetchall()
                found.update(row[0] for row in rows)
        return found

    def save(self, posting: ScrapedPosting) -> bool:
        """Insert a new job record. Returns False when the id was already stored."""
        apply_link = posting.apply_link or posting.link
        with connect(self.path) as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO jobs (site_id, title, company, link, apply_link, posted_date, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, 'new', ?)
                """,
                (
                    posting.site_id,
                    posting.title,
                    posting.company,
                    posting.link,
                    apply_link,
                    posting.posted_date,
                    datetime.now().isoformat(),
                ),
            )
            inserted = cur.rowcount == 1
        if not inserted:
            logger.debug("Job %s already saved", posting.site_id)
        return inserted

    def count(self) -> int:
        with connect(self.path) as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM jobs").fetchone()
        return int(n or 0)
