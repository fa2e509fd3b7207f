# File: civiceye/services/filters.py
"""Named filter predicates for issue listings.

Each function returns a SQL clause over ``Issue`` or None for "no filter";
combine() ANDs whatever is left. The feed, list and my-issues views are all
built from these, and the same combined clause drives both the page slice and
its total.
"""
from typing import Iterable, Optional

from sqlalchemy import and_, exists, false, or_, select, true

from civiceye.models.issue import Issue, IssueCategory, IssuePriority, IssueStatus, IssueTag, Visibility

CLOSED_STATES = (IssueStatus.RESOLVED, IssueStatus.CLOSED)


def geo_predicate(issue_ids: Optional[Iterable[int]]):
    """Restrict to ids produced by GeoIndex.within_radius(); None means no geo filter."""
    if issue_ids is None:
        return None
    ids = sorted(issue_ids)
    if not ids:
        return false()
    return Issue.id.in_(ids)


def category_predicate(category: Optional[IssueCategory]):
    if category is None:
        return None
    return Issue.category == category


def status_predicate(status: Optional[IssueStatus]):
    if status is None:
        return None
    return Issue.status == status


def open_only_predicate(include_resolved: bool):
    if include_resolved:
        return None
    return Issue.status.not_in(CLOSED_STATES)


def priority_predicate(priority: Optional[IssuePriority]):
    if priority is None:
        return None
    return Issue.priority == priority


def visibility_predicate(public_only: bool):
    if not public_only:
        return None
    return Issue.visibility == Visibility.PUBLIC


def owner_predicate(user_id: Optional[int]):
    if user_id is None:
        return None
    return Issue.reported_by_id == user_id


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_predicate(term: Optional[str]):
    """Case-insensitive substring match on title, description or any tag."""
    if term is None or not term.strip():
        return None
    pattern = _like_pattern(term.strip())
    tag_match = exists(
        select(IssueTag.id).where(
            IssueTag.issue_id == Issue.id, IssueTag.tag.ilike(pattern, escape="\\")
        )
    )
    return or_(
        Issue.title.ilike(pattern, escape="\\"),
        Issue.description.ilike(pattern, escape="\\"),
        tag_match,
    )


def combine(*predicates):
    clauses = [p for p in predicates if p is not None]
    if not clauses:
        return true()
    return and_(*clauses)
