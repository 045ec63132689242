"""SQLite storage for goals, suggestions, tickets and settings."""

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ..scheduling import window
from ..scheduling.models import (
    Frequency,
    FrequencyKind,
    GoalCategory,
    GoalType,
    ScheduleSuggestion,
    SchedulingGoal,
    SuggestionStatus,
    TimePreference,
)
from ..tickets.models import TicketAnalysis, TicketRecord
from ..timefmt import format_instant, parse_instant, utcnow

logger = logging.getLogger(__name__)

WINDOWED_KINDS = ("tickets", "suggestions")

_GOAL_COLUMNS = (
    "id, user_id, category, category_label, description, frequency, "
    "frequency_count, duration_minutes, preferred_times, created_at, is_active"
)
_SUGGESTION_COLUMNS = (
    "id, goal_id, title, description, start_time, end_time, "
    "confidence_score, reasoning, created_at, status"
)
_TICKET_COLUMNS = "id, event_id, analysis, raw_content, created_at, event_date"


@dataclass(frozen=True)
class AcceptIntent:
    """Record of an accept in progress.

    ``state`` is 'pending' until the calendar event is created ('done') or
    creation fails ('failed').
    """

    suggestion_id: str
    state: str
    created_at: str
    updated_at: str
    event_id: str | None = None
    error: str | None = None


class SchedulerStore:
    """Persistent storage for the scheduler using SQLite.

    Goals and suggestions are upserted by id: a second write with the same
    id replaces the whole row. Timestamps are stored as canonical UTC
    strings and come back as aware datetimes.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create tables if they don't exist."""
        conn = self._get_connection()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS goals (
                id                TEXT PRIMARY KEY,
                user_id           TEXT NOT NULL,
                category          TEXT NOT NULL,
                category_label    TEXT,
                description       TEXT NOT NULL,
                frequency         TEXT NOT NULL,
                frequency_count   INTEGER,
                duration_minutes  INTEGER NOT NULL,
                preferred_times   TEXT NOT NULL DEFAULT '[]',
                created_at        TEXT NOT NULL,
                is_active         INTEGER NOT NULL DEFAULT 1
            );
            CREATE INDEX IF NOT EXISTS idx_goals_user ON goals(user_id);

            CREATE TABLE IF NOT EXISTS suggestions (
                id                TEXT PRIMARY KEY,
                goal_id           TEXT NOT NULL,
                title             TEXT NOT NULL,
                description       TEXT NOT NULL DEFAULT '',
                start_time        TEXT NOT NULL,
                end_time          TEXT NOT NULL,
                confidence_score  REAL NOT NULL,
                reasoning         TEXT NOT NULL DEFAULT '',
                created_at        TEXT NOT NULL,
                status            TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_suggestions_goal ON suggestions(goal_id);
            CREATE INDEX IF NOT EXISTS idx_suggestions_status ON suggestions(status);

            CREATE TABLE IF NOT EXISTS tickets (
                id           INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id     TEXT NOT NULL,
                analysis     TEXT NOT NULL,
                raw_content  TEXT NOT NULL,
                created_at   TEXT NOT NULL,
                event_date   TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS user_settings (
                key    TEXT PRIMARY KEY,
                value  TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS accept_intents (
                suggestion_id  TEXT PRIMARY KEY,
                state          TEXT NOT NULL,
                event_id       TEXT,
                error          TEXT,
                created_at     TEXT NOT NULL,
                updated_at     TEXT NOT NULL
            );
        """)
        conn.commit()

    # Goals

    def save_goal(self, goal: SchedulingGoal) -> SchedulingGoal:
        """Insert or fully replace a goal.

        Args:
            goal: The goal to store.

        Returns:
            The stored goal.
        """
        conn = self._get_connection()
        conn.execute(
            f"INSERT OR REPLACE INTO goals ({_GOAL_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                goal.id,
                goal.user_id,
                goal.goal_type.category.value,
                goal.goal_type.label,
                goal.description,
                goal.frequency.kind.value,
                goal.frequency.count,
                goal.duration_minutes,
                json.dumps([pref.to_dict() for pref in goal.preferred_times]),
                format_instant(goal.created_at),
                int(goal.is_active),
            ),
        )
        conn.commit()
        return goal

    def get_goal(self, goal_id: str) -> SchedulingGoal | None:
        """Get a goal by id, or None if it doesn't exist."""
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {_GOAL_COLUMNS} FROM goals WHERE id = ?", (goal_id,)
        ).fetchone()
        return self._row_to_goal(row) if row else None

    def active_goals(self, user_id: str) -> list[SchedulingGoal]:
        """Get a user's active goals. Order is not guaranteed."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT {_GOAL_COLUMNS} FROM goals WHERE user_id = ? AND is_active = 1",
            (user_id,),
        )
        return [self._row_to_goal(row) for row in cursor.fetchall()]

    def set_goal_active(self, goal_id: str, active: bool) -> bool:
        """Enable or soft-disable a goal.

        Returns:
            True if the goal exists.
        """
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE goals SET is_active = ? WHERE id = ?", (int(active), goal_id)
        )
        conn.commit()
        return cursor.rowcount > 0

    # Suggestions

    def save_suggestion(self, suggestion: ScheduleSuggestion) -> ScheduleSuggestion:
        """Insert or fully replace a suggestion."""
        conn = self._get_connection()
        self._insert_suggestion(conn, suggestion)
        conn.commit()
        return suggestion

    def save_suggestions(self, suggestions: list[ScheduleSuggestion]) -> int:
        """Store a batch of suggestions.

        Returns:
            Number of suggestions written.
        """
        conn = self._get_connection()
        for suggestion in suggestions:
            self._insert_suggestion(conn, suggestion)
        conn.commit()
        return len(suggestions)

    def get_suggestion(self, suggestion_id: str) -> ScheduleSuggestion | None:
        """Get a suggestion by id, or None if it doesn't exist."""
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {_SUGGESTION_COLUMNS} FROM suggestions WHERE id = ?",
            (suggestion_id,),
        ).fetchone()
        return self._row_to_suggestion(row) if row else None

    def update_suggestion_status(
        self, suggestion_id: str, status: SuggestionStatus
    ) -> bool:
        """Overwrite a suggestion's status (last write wins).

        Returns:
            True if the suggestion exists.
        """
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE suggestions SET status = ? WHERE id = ?",
            (status.value, suggestion_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    def pending_suggestions(self, user_id: str) -> list[ScheduleSuggestion]:
        """Get a user's pending suggestions, highest confidence first."""
        conn = self._get_connection()
        columns = ", ".join(f"s.{c.strip()}" for c in _SUGGESTION_COLUMNS.split(","))
        cursor = conn.execute(
            f"""
            SELECT {columns}
            FROM suggestions s
            JOIN goals g ON s.goal_id = g.id
            WHERE g.user_id = ? AND s.status = ?
            ORDER BY s.confidence_score DESC
            """,
            (user_id, SuggestionStatus.PENDING.value),
        )
        return [self._row_to_suggestion(row) for row in cursor.fetchall()]

    def suggestions_for_goal(self, goal_id: str) -> list[ScheduleSuggestion]:
        """Get every suggestion generated for a goal."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT {_SUGGESTION_COLUMNS} FROM suggestions WHERE goal_id = ? "
            "ORDER BY created_at",
            (goal_id,),
        )
        return [self._row_to_suggestion(row) for row in cursor.fetchall()]

    def stale_pending_suggestions(self, now: datetime) -> list[ScheduleSuggestion]:
        """Get pending suggestions whose start time has already passed."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT {_SUGGESTION_COLUMNS} FROM suggestions WHERE status = ?",
            (SuggestionStatus.PENDING.value,),
        )
        stale = []
        for row in cursor.fetchall():
            try:
                suggestion = self._row_to_suggestion(row)
            except ValueError as e:
                logger.warning(f"Skipping unreadable suggestion {row['id']}: {e}")
                continue
            if suggestion.start_time <= now:
                stale.append(suggestion)
        return stale

    # Tickets

    def store_ticket(
        self, event_id: str, analysis: TicketAnalysis, raw_content: str
    ) -> TicketRecord:
        """Store an imported ticket.

        The event date is stored as a canonical instant (taken as UTC) when
        the analysis date/time form one; otherwise the raw value is kept
        and the ticket will never be active.
        """
        raw_event_date = f"{analysis.event_date}T{analysis.event_time}:00"
        try:
            event_date = format_instant(parse_instant(raw_event_date + "Z"))
        except ValueError:
            logger.warning(f"Ticket {event_id} has no valid event time: {raw_event_date}")
            event_date = raw_event_date

        created_at = format_instant(utcnow())
        conn = self._get_connection()
        cursor = conn.execute(
            "INSERT INTO tickets (event_id, analysis, raw_content, created_at, event_date) "
            "VALUES (?, ?, ?, ?, ?)",
            (event_id, analysis.to_json(), raw_content, created_at, event_date),
        )
        conn.commit()
        return TicketRecord(
            id=cursor.lastrowid,
            event_id=event_id,
            analysis=analysis.to_json(),
            raw_content=raw_content,
            created_at=created_at,
            event_date=event_date,
        )

    def get_ticket_by_event_id(self, event_id: str) -> TicketRecord | None:
        """Get the ticket linked to a calendar event."""
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {_TICKET_COLUMNS} FROM tickets WHERE event_id = ?", (event_id,)
        ).fetchone()
        return self._row_to_ticket(row) if row else None

    # Time-windowed query

    def active_time_windowed_records(
        self, kind: str, now: datetime | None = None
    ) -> list[TicketRecord] | list[ScheduleSuggestion]:
        """Get records whose nominal time is within the active window.

        Args:
            kind: "tickets" (nominal time: event date) or "suggestions"
                (nominal time: start time).
            now: Reference instant, defaults to the current time.

        Returns:
            Active records, highest priority first. Rows whose time doesn't
            parse are skipped.

        Raises:
            ValueError: If kind is unknown.
        """
        if kind not in WINDOWED_KINDS:
            raise ValueError(f"Unknown record kind: {kind}")
        now = now or utcnow()
        conn = self._get_connection()

        if kind == "tickets":
            rows = conn.execute(f"SELECT {_TICKET_COLUMNS} FROM tickets").fetchall()
            records: list[Any] = [
                self._row_to_ticket(row)
                for row in rows
                if window.is_active(row["event_date"], now)
            ]
            records.sort(key=lambda t: window.priority(t.event_date, now), reverse=True)
            return records

        rows = conn.execute(f"SELECT {_SUGGESTION_COLUMNS} FROM suggestions").fetchall()
        records = []
        for row in rows:
            if not window.is_active(row["start_time"], now):
                continue
            try:
                records.append(self._row_to_suggestion(row))
            except ValueError as e:
                logger.warning(f"Skipping unreadable suggestion {row['id']}: {e}")
        records.sort(key=lambda s: window.priority(s.start_time, now), reverse=True)
        return records

    # Settings

    def set_setting(self, key: str, value: str) -> None:
        conn = self._get_connection()
        conn.execute(
            "INSERT OR REPLACE INTO user_settings (key, value) VALUES (?, ?)",
            (key, value),
        )
        conn.commit()

    def get_setting(self, key: str) -> str | None:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT value FROM user_settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    # Accept intents

    def begin_accept_intent(self, suggestion_id: str) -> AcceptIntent:
        """Record that an accept is about to create a calendar event."""
        now = format_instant(utcnow())
        conn = self._get_connection()
        conn.execute(
            "INSERT OR REPLACE INTO accept_intents "
            "(suggestion_id, state, event_id, error, created_at, updated_at) "
            "VALUES (?, 'pending', NULL, NULL, ?, ?)",
            (suggestion_id, now, now),
        )
        conn.commit()
        return AcceptIntent(
            suggestion_id=suggestion_id, state="pending", created_at=now, updated_at=now
        )

    def finish_accept_intent(self, suggestion_id: str, event_id: str) -> None:
        """Mark an intent done with the created event id."""
        self._update_intent(suggestion_id, "done", event_id=event_id, error=None)

    def fail_accept_intent(self, suggestion_id: str, error: str) -> None:
        """Mark an intent failed so reconciliation can retry it."""
        self._update_intent(suggestion_id, "failed", event_id=None, error=error)

    def get_accept_intent(self, suggestion_id: str) -> AcceptIntent | None:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT suggestion_id, state, event_id, error, created_at, updated_at "
            "FROM accept_intents WHERE suggestion_id = ?",
            (suggestion_id,),
        ).fetchone()
        return AcceptIntent(**dict(row)) if row else None

    def unfinished_accept_intents(self) -> list[AcceptIntent]:
        """Get intents that never reached 'done'."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT suggestion_id, state, event_id, error, created_at, updated_at "
            "FROM accept_intents WHERE state != 'done' ORDER BY created_at"
        )
        return [AcceptIntent(**dict(row)) for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _update_intent(
        self, suggestion_id: str, state: str, *, event_id: str | None, error: str | None
    ) -> None:
        conn = self._get_connection()
        conn.execute(
            "UPDATE accept_intents SET state = ?, event_id = ?, error = ?, updated_at = ? "
            "WHERE suggestion_id = ?",
            (state, event_id, error, format_instant(utcnow()), suggestion_id),
        )
        conn.commit()

    def _insert_suggestion(
        self, conn: sqlite3.Connection, suggestion: ScheduleSuggestion
    ) -> None:
        conn.execute(
            f"INSERT OR REPLACE INTO suggestions ({_SUGGESTION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                suggestion.id,
                suggestion.goal_id,
                suggestion.title,
                suggestion.description,
                format_instant(suggestion.start_time),
                format_instant(suggestion.end_time),
                suggestion.confidence_score,
                suggestion.reasoning,
                format_instant(suggestion.created_at),
                suggestion.status.value,
            ),
        )

    def _row_to_goal(self, row: sqlite3.Row) -> SchedulingGoal:
        """Convert a database row to a SchedulingGoal."""
        category = GoalCategory(row["category"])
        kind = FrequencyKind(row["frequency"])
        preferences = json.loads(row["preferred_times"] or "[]")
        return SchedulingGoal(
            id=row["id"],
            user_id=row["user_id"],
            goal_type=GoalType(category, row["category_label"]),
            description=row["description"],
            frequency=Frequency(kind, row["frequency_count"]),
            duration_minutes=row["duration_minutes"],
            preferred_times=tuple(TimePreference.from_dict(p) for p in preferences),
            created_at=parse_instant(row["created_at"]),
            is_active=bool(row["is_active"]),
        )

    def _row_to_suggestion(self, row: sqlite3.Row) -> ScheduleSuggestion:
        """Convert a database row to a ScheduleSuggestion."""
        return ScheduleSuggestion(
            id=row["id"],
            goal_id=row["goal_id"],
            title=row["title"],
            description=row["description"],
            start_time=parse_instant(row["start_time"]),
            end_time=parse_instant(row["end_time"]),
            confidence_score=row["confidence_score"],
            reasoning=row["reasoning"],
            created_at=parse_instant(row["created_at"]),
            status=SuggestionStatus(row["status"]),
        )

    def _row_to_ticket(self, row: sqlite3.Row) -> TicketRecord:
        """Convert a database row to a TicketRecord."""
        return TicketRecord(
            id=row["id"],
            event_id=row["event_id"],
            analysis=row["analysis"],
            raw_content=row["raw_content"],
            created_at=row["created_at"],
            event_date=row["event_date"],
        )
