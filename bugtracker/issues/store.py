"""
Issue Store - SQLite Backend

IssueRepository implementation on top of sqlite3.
Updates are revision-checked so two writers cannot silently overwrite each
other's transitions.
"""

import sqlite3
import logging
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Dict, Any

from bugtracker.config import DEFAULT_DB_PATH
from .errors import ConcurrentModification, IssueAlreadyExists, IssueNotFound
from .models import Issue, IssueStatus, Resolution
from .repository import IssueRepository
from .values import IssueNumber

logger = logging.getLogger(__name__)


class SQLiteIssueRepository(IssueRepository):
    """
    SQLite-based issue repository.

    Features:
    - store / load / load_all per IssueRepository
    - Optimistic concurrency through a revision column
    - Related issue links kept in their own table
    - Status queries and counts (find_by_status, get_stats)

    Example:
        repository = SQLiteIssueRepository("/tmp/issues.db")

        issue = Issue(IssueNumber("BUG-1"), "Crash", ProductVersion("1.0"), now)
        repository.store(issue)

        same = repository.load(IssueNumber("BUG-1"))
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the repository.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"SQLiteIssueRepository initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS issues (
                    number TEXT PRIMARY KEY,
                    title TEXT,
                    description TEXT,
                    status TEXT NOT NULL,
                    resolution TEXT,
                    created_at TEXT NOT NULL,
                    occurred_in TEXT NOT NULL,
                    fix_version TEXT,
                    assignee TEXT,
                    wont_fix_reason TEXT,
                    revision INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS related_issues (
                    issue_number TEXT NOT NULL
                        REFERENCES issues(number) ON DELETE CASCADE,
                    target TEXT,
                    relationship_type TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_related_issue ON related_issues(issue_number)"
            )

            conn.execute("CREATE INDEX IF NOT EXISTS idx_status ON issues(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_created_at ON issues(created_at)")

    def store(self, issue: Issue) -> None:
        """
        Insert a new issue or update a loaded one.

        Raises:
            IssueAlreadyExists: new issue whose number is taken
            IssueNotFound: update of an issue that is no longer stored
            ConcurrentModification: update based on a stale revision
        """
        data = issue.to_dict()
        values = (
            data["title"],
            data["description"],
            data["status"],
            data["resolution"],
            data["created_at"],
            data["occurred_in"],
            data["fix_version"],
            data["assignee"],
            data["wont_fix_reason"],
        )

        with self._get_connection() as conn:
            if issue.revision == 0:
                try:
                    conn.execute("""
                        INSERT INTO issues (
                            title, description, status, resolution,
                            created_at, occurred_in, fix_version, assignee,
                            wont_fix_reason, number, revision
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
                    """, values + (data["number"],))
                except sqlite3.IntegrityError:
                    raise IssueAlreadyExists(issue.number) from None
            else:
                cursor = conn.execute("""
                    UPDATE issues SET
                        title = ?, description = ?, status = ?, resolution = ?,
                        created_at = ?, occurred_in = ?, fix_version = ?,
                        assignee = ?, wont_fix_reason = ?,
                        revision = revision + 1
                    WHERE number = ? AND revision = ?
                """, values + (data["number"], issue.revision))

                if cursor.rowcount == 0:
                    row = conn.execute(
                        "SELECT revision FROM issues WHERE number = ?", (data["number"],)
                    ).fetchone()
                    if row is None:
                        raise IssueNotFound(issue.number)
                    logger.warning(
                        f"Rejected stale update of issue {issue.number} "
                        f"(revision {issue.revision}, stored {row['revision']})"
                    )
                    raise ConcurrentModification(issue.number, issue.revision, row["revision"])

                conn.execute(
                    "DELETE FROM related_issues WHERE issue_number = ?", (data["number"],)
                )

            conn.executemany(
                "INSERT INTO related_issues (issue_number, target, relationship_type) VALUES (?, ?, ?)",
                [(data["number"], link["target"], link["type"]) for link in data["related_issues"]],
            )

        issue.revision += 1
        logger.debug(f"Stored issue {issue.number} at revision {issue.revision}")

    def load(self, number: IssueNumber) -> Issue:
        """
        Get issue by number.

        Raises:
            IssueNotFound: no issue with this number
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM issues WHERE number = ?", (str(number),)
            ).fetchone()
            links = conn.execute(
                "SELECT * FROM related_issues WHERE issue_number = ?", (str(number),)
            ).fetchall()

        if row is None:
            raise IssueNotFound(number)
        return self._row_to_issue(row, links)

    def load_all(self) -> List[Issue]:
        """Get all issues, most recent first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM issues ORDER BY created_at DESC"
            ).fetchall()
            link_rows = conn.execute("SELECT * FROM related_issues").fetchall()

        return self._rows_to_issues(rows, link_rows)

    def find_by_status(self, status: IssueStatus, limit: int = 50) -> List[Issue]:
        """Get issues by status, most recent first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM issues WHERE status = ? ORDER BY created_at DESC LIMIT ?",
                (status.value, limit)
            ).fetchall()
            link_rows = conn.execute("""
                SELECT related_issues.* FROM related_issues
                JOIN issues ON issues.number = related_issues.issue_number
                WHERE issues.status = ?
            """, (status.value,)).fetchall()

        return self._rows_to_issues(rows, link_rows)

    def get_stats(self) -> Dict[str, Any]:
        """Get issue statistics."""
        with self._get_connection() as conn:
            total = conn.execute("SELECT COUNT(*) AS count FROM issues").fetchone()["count"]

            status_counts = {
                row["status"]: row["count"]
                for row in conn.execute(
                    "SELECT status, COUNT(*) AS count FROM issues GROUP BY status"
                )
            }
            resolution_counts = {
                row["resolution"]: row["count"]
                for row in conn.execute("""
                    SELECT resolution, COUNT(*) AS count FROM issues
                    WHERE resolution IS NOT NULL GROUP BY resolution
                """)
            }

        return {
            "total": total,
            "by_status": status_counts,
            "by_resolution": resolution_counts,
            "fixed": resolution_counts.get(Resolution.FIXED.value, 0),
        }

    def delete(self, number: IssueNumber) -> bool:
        """
        Delete an issue and its links.

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM issues WHERE number = ?", (str(number),))
            return cursor.rowcount > 0

    def _row_to_issue(self, row: sqlite3.Row, links: List[sqlite3.Row]) -> Issue:
        """Convert database rows to Issue object."""
        data: Dict[str, Any] = dict(row)
        data["related_issues"] = [
            {"target": link["target"], "type": link["relationship_type"]}
            for link in links
        ]
        return Issue.from_dict(data)

    def _rows_to_issues(self, rows: List[sqlite3.Row], link_rows: List[sqlite3.Row]) -> List[Issue]:
        links_by_issue: Dict[str, List[sqlite3.Row]] = defaultdict(list)
        for link in link_rows:
            links_by_issue[link["issue_number"]].append(link)

        return [self._row_to_issue(row, links_by_issue[row["number"]]) for row in rows]

    def clear_all(self):
        """Clear all issues (for testing)."""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM related_issues")
            conn.execute("DELETE FROM issues")
        logger.warning("All issues cleared from database")
