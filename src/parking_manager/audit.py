"""Append-only audit trail of user actions."""

from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from parking_manager.models import LogEntry
from parking_manager.pagination import PageParams, contains_ci, numeric_term, paginate


def record_action(db: Session, user_id: int | None, action: str) -> LogEntry:
    """Persist one audit entry in its own commit, after the primary change."""
    entry = LogEntry(user_id=user_id, action=action)
    db.add(entry)
    db.commit()
    return entry


def list_logs(db: Session, actor_id: int, params: PageParams) -> dict[str, Any]:
    stmt = select(LogEntry).options(joinedload(LogEntry.user))
    term = params.term
    if term:
        conditions = [contains_ci(LogEntry.action, term)]
        actor = numeric_term(term)
        if actor is not None:
            conditions.append(LogEntry.user_id == actor)
        stmt = stmt.where(or_(*conditions))
    stmt = stmt.order_by(LogEntry.created_at.desc(), LogEntry.id.desc())

    result = paginate(db, stmt, params, LogEntry.to_dict)
    record_action(db, actor_id, "Logs list viewed")
    return result
