# File: civiceye/services/stats.py
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from civiceye.core.errors import ValidationError
from civiceye.db.session import store_errors
from civiceye.models.interaction import IssueUpvote
from civiceye.models.issue import Issue, IssueStatus

RANGE_KEYS = ("today", "7d", "15d", "30d", "90d", "year", "all", "all_time")


def range_to_dt(range_key: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    now = now or datetime.now(timezone.utc)
    if range_key is None or range_key in ("all", "all_time"): return None
    if range_key == "today": return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if range_key == "7d": return now - timedelta(days=7)
    if range_key == "15d": return now - timedelta(days=15)
    if range_key == "30d": return now - timedelta(days=30)
    if range_key == "90d": return now - timedelta(days=90)
    if range_key == "year": return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    raise ValidationError("range", f"Invalid range '{range_key}'. Allowed: {', '.join(RANGE_KEYS)}")


class StatsAggregator:
    """Dashboard rollups. Latest committed state is good enough here."""

    def __init__(self, db: Session):
        self.db = db

    @store_errors
    def summary(self, since: Optional[datetime] = None) -> dict:
        q = select(Issue.status, func.count(Issue.id)).group_by(Issue.status)
        if since:
            q = q.where(Issue.created_at >= since)
        counts = {status: n for status, n in self.db.execute(q)}
        return {
            "total": sum(counts.values()),
            "open": counts.get(IssueStatus.OPEN, 0),
            "inProgress": counts.get(IssueStatus.IN_PROGRESS, 0),
            "resolved": counts.get(IssueStatus.RESOLVED, 0),
            "closed": counts.get(IssueStatus.CLOSED, 0),
        }

    @store_errors
    def by_category(self, since: Optional[datetime] = None) -> list[tuple[str, int]]:
        n = func.count(Issue.id)
        q = select(Issue.category, n).group_by(Issue.category)
        if since:
            q = q.where(Issue.created_at >= since)
        rows = [(category.value, count) for category, count in self.db.execute(q)]
        return sorted(rows, key=lambda r: (-r[1], r[0]))

    @store_errors
    def reporter_summary(self, user_id: int) -> dict:
        total, resolved = self.db.execute(
            select(
                func.count(Issue.id),
                func.sum(case((Issue.status == IssueStatus.RESOLVED, 1), else_=0)),
            ).where(Issue.reported_by_id == user_id)
        ).one()
        upvotes = self.db.scalar(
            select(func.count(IssueUpvote.id))
            .join(Issue, Issue.id == IssueUpvote.issue_id)
            .where(Issue.reported_by_id == user_id)
        )
        return {"totalIssues": total or 0, "resolvedIssues": resolved or 0, "totalUpvotes": upvotes or 0}
