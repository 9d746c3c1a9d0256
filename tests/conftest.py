"""
Shared fixtures: an in-memory SQLite issue store with the tables the
executor reads.
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from bql import Executor

SCHEMA = """
CREATE TABLE issues (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    description TEXT,
    status TEXT NOT NULL DEFAULT 'open',
    priority INTEGER NOT NULL DEFAULT 2,
    issue_type TEXT NOT NULL DEFAULT 'task',
    assignee TEXT,
    pinned INTEGER DEFAULT 0,
    is_template INTEGER DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    closed_at TEXT,
    last_activity TEXT,
    deleted_at TEXT
);

CREATE TABLE dependencies (
    issue_id TEXT NOT NULL,
    depends_on_id TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'blocks',
    PRIMARY KEY (issue_id, depends_on_id)
);

CREATE TABLE labels (
    issue_id TEXT NOT NULL,
    label TEXT NOT NULL,
    PRIMARY KEY (issue_id, label)
);

CREATE TABLE comments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id TEXT NOT NULL,
    text TEXT NOT NULL DEFAULT ''
);

CREATE TABLE blocked_issues_cache (
    issue_id TEXT PRIMARY KEY
);

CREATE VIEW ready_issues AS
SELECT i.id
FROM issues i
WHERE i.status = 'open'
  AND i.deleted_at IS NULL
  AND i.id NOT IN (SELECT issue_id FROM blocked_issues_cache);
"""

# All issues share this updated_at unless a test overrides it, so the
# default ordering falls back to id ascending
DEFAULT_TIMESTAMP = "2024-01-01 00:00:00"


def _days_ago(days: float) -> str:
    moment = datetime.now(timezone.utc) - timedelta(days=days)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


class IssueStore:
    """Thin writer over the test database."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def add_issue(self, issue_id: str, **columns) -> str:
        row = {
            "id": issue_id,
            "title": columns.pop("title", f"Issue {issue_id}"),
            "created_at": columns.pop("created_at", DEFAULT_TIMESTAMP),
            "updated_at": columns.pop("updated_at", DEFAULT_TIMESTAMP),
        }
        row.update(columns)

        names = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        self.conn.execute(f"INSERT INTO issues ({names}) VALUES ({placeholders})", list(row.values()))
        self.conn.commit()
        return issue_id

    def add_dependency(self, issue_id: str, depends_on_id: str, dep_type: str = "blocks") -> None:
        self.conn.execute(
            "INSERT INTO dependencies (issue_id, depends_on_id, type) VALUES (?, ?, ?)",
            (issue_id, depends_on_id, dep_type),
        )
        self.conn.commit()

    def add_child(self, parent_id: str, child_id: str) -> None:
        self.add_dependency(child_id, parent_id, "parent-child")

    def add_label(self, issue_id: str, *labels: str) -> None:
        self.conn.executemany(
            "INSERT INTO labels (issue_id, label) VALUES (?, ?)",
            [(issue_id, label) for label in labels],
        )
        self.conn.commit()

    def add_comments(self, issue_id: str, count: int) -> None:
        self.conn.executemany(
            "INSERT INTO comments (issue_id, text) VALUES (?, ?)",
            [(issue_id, f"comment {n}") for n in range(count)],
        )
        self.conn.commit()

    def mark_blocked(self, issue_id: str) -> None:
        self.conn.execute("INSERT INTO blocked_issues_cache (issue_id) VALUES (?)", (issue_id,))
        self.conn.commit()

    def soft_delete(self, issue_id: str) -> None:
        self.conn.execute(
            "UPDATE issues SET deleted_at = ? WHERE id = ?", (DEFAULT_TIMESTAMP, issue_id)
        )
        self.conn.commit()

    def chain(self, ids, dep_type: str = "parent-child") -> None:
        """Create issues ids[0] -> ids[1] -> ... where each is the parent of the next."""
        for issue_id in ids:
            self.add_issue(issue_id)
        for parent_id, child_id in zip(ids, ids[1:]):
            if dep_type == "parent-child":
                self.add_child(parent_id, child_id)
            else:
                self.add_dependency(child_id, parent_id, dep_type)


@pytest.fixture
def conn():
    """In-memory database with the issue schema."""
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    connection.executescript(SCHEMA)
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    return IssueStore(conn)


@pytest.fixture
def executor(conn):
    return Executor(conn)


@pytest.fixture
def days_ago():
    """UTC timestamp N days back, in SQLite's datetime() format."""
    return _days_ago


@pytest.fixture
def ids():
    """Extract ids from a list of issues."""

    def _ids(issues):
        return [issue.id for issue in issues]

    return _ids
