# File: civiceye/services/feed.py
"""Feed, listing and detail views over issues.

Every listing goes through ``_run``: the geo index narrows candidates, the
named predicates from ``filters`` are ANDed, and a single statement returns
the ordered page together with ``count(*) OVER ()`` so the slice and the total
are evaluated against the same predicate and the same snapshot. Caller-relative
fields are attached to lightweight ``FeedItem`` wrappers; stored issues are
never modified.
"""
import math
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, selectinload

from civiceye.core.errors import ForbiddenError, NotFoundError, ValidationError
from civiceye.db.session import store_errors
from civiceye.models.interaction import IssueComment, IssueUpvote
from civiceye.models.issue import Issue, IssueCategory, IssuePriority, IssueStatus
from civiceye.models.user import User
from civiceye.services import filters
from civiceye.services.geo import GeoIndex
from civiceye.services.validation import (
    GeoPoint,
    parse_center,
    parse_enum_filter,
    parse_flag,
    parse_limit,
    parse_page,
    parse_radius,
)

FEED_DEFAULT_LIMIT = 20
LIST_DEFAULT_LIMIT = 10

SORT_FIELDS = ("createdAt", "updatedAt", "title", "category", "priority", "status",
               "upvoteCount", "commentCount")


@dataclass
class FeedItem:
    issue: Issue
    upvote_count: int
    comment_count: int
    caller_has_upvoted: bool
    is_caller_issue: bool


@dataclass
class FeedInfo:
    """Parameters the feed actually applied, echoed back to the client."""
    radius_km: float
    center: Optional[GeoPoint]
    category: Optional[IssueCategory]
    include_resolved: bool


@dataclass
class FeedPage:
    items: list[FeedItem]
    page: int
    limit: int
    total: int
    info: Optional[FeedInfo] = None

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


@dataclass
class IssueDetail:
    item: FeedItem
    comments: list[IssueComment] = field(default_factory=list)
    upvotes: list[IssueUpvote] = field(default_factory=list)


@dataclass
class FeedQuery:
    page: int
    limit: int
    predicates: list
    center: Optional[GeoPoint] = None
    radius_km: Optional[float] = None
    sort_by: Optional[str] = None  # None = feed ranking
    descending: bool = True


def parse_sort(sort_by, sort_order) -> tuple[str, bool]:
    sort_by = (sort_by or "createdAt").strip()
    if sort_by not in SORT_FIELDS:
        raise ValidationError("sortBy", f"Invalid sortBy '{sort_by}'. Allowed: {', '.join(SORT_FIELDS)}")
    order = (sort_order or "desc").strip().lower()
    if order not in ("asc", "desc"):
        raise ValidationError("sortOrder", "sortOrder must be 'asc' or 'desc'")
    return sort_by, order == "desc"


def _rank(column, members):
    return case(*[(column == m, i) for i, m in enumerate(members)], else_=len(members))


class FeedAggregator:
    def __init__(self, db: Session, max_page_size: int = 100,
                 feed_radius_km: float = 50.0, list_radius_km: float = 10.0):
        self.db = db
        self.max_page_size = max_page_size
        self.feed_radius_km = feed_radius_km
        self.list_radius_km = list_radius_km
        self.geo = GeoIndex(db)

    # ---- views ----

    def feed(self, caller: User, page=None, limit=None, latitude=None, longitude=None,
             radius=None, category=None, include_resolved=None) -> FeedPage:
        info = FeedInfo(
            radius_km=parse_radius(radius, self.feed_radius_km),
            center=parse_center(latitude, longitude),
            category=parse_enum_filter("category", IssueCategory, category),
            include_resolved=parse_flag(include_resolved, field="includeResolved"),
        )
        query = FeedQuery(
            page=parse_page(page),
            limit=parse_limit(limit, FEED_DEFAULT_LIMIT, self.max_page_size),
            center=info.center,
            radius_km=info.radius_km,
            predicates=[
                filters.visibility_predicate(public_only=True),
                filters.open_only_predicate(info.include_resolved),
                filters.category_predicate(info.category),
            ],
        )
        result = self._run(caller, query)
        result.info = info
        return result

    def list_issues(self, caller: User, page=None, limit=None, category=None, status=None,
                    priority=None, latitude=None, longitude=None, radius=None, search=None,
                    sort_by=None, sort_order=None, my_issues=None) -> FeedPage:
        mine = parse_flag(my_issues, field="myIssues")
        sort_field, descending = parse_sort(sort_by, sort_order)
        query = FeedQuery(
            page=parse_page(page),
            limit=parse_limit(limit, LIST_DEFAULT_LIMIT, self.max_page_size),
            center=parse_center(latitude, longitude),
            radius_km=parse_radius(radius, self.list_radius_km),
            sort_by=sort_field,
            descending=descending,
            predicates=[
                filters.visibility_predicate(public_only=not mine),
                filters.owner_predicate(caller.id if mine else None),
                filters.category_predicate(parse_enum_filter("category", IssueCategory, category)),
                filters.status_predicate(parse_enum_filter("status", IssueStatus, status)),
                filters.priority_predicate(parse_enum_filter("priority", IssuePriority, priority)),
                filters.search_predicate(search),
            ],
        )
        return self._run(caller, query)

    def my_issues(self, caller: User, page=None, limit=None, status=None, category=None,
                  sort_by=None, sort_order=None) -> FeedPage:
        sort_field, descending = parse_sort(sort_by, sort_order)
        query = FeedQuery(
            page=parse_page(page),
            limit=parse_limit(limit, LIST_DEFAULT_LIMIT, self.max_page_size),
            sort_by=sort_field,
            descending=descending,
            predicates=[
                filters.owner_predicate(caller.id),
                filters.status_predicate(parse_enum_filter("status", IssueStatus, status)),
                filters.category_predicate(parse_enum_filter("category", IssueCategory, category)),
            ],
        )
        return self._run(caller, query)

    @store_errors
    def detail(self, issue_id: int, caller: User) -> IssueDetail:
        issue = self.db.get(Issue, issue_id)
        if issue is None:
            raise NotFoundError("Issue not found")
        if not issue.can_be_viewed_by(caller):
            raise ForbiddenError("You are not authorized to view this issue")
        comments = list(self.db.scalars(
            select(IssueComment).where(IssueComment.issue_id == issue.id).order_by(IssueComment.seq)
        ))
        upvotes = list(self.db.scalars(
            select(IssueUpvote).where(IssueUpvote.issue_id == issue.id)
            .order_by(IssueUpvote.created_at, IssueUpvote.id)
        ))
        item = FeedItem(
            issue=issue,
            upvote_count=len(upvotes),
            comment_count=len(comments),
            caller_has_upvoted=any(u.user_id == caller.id for u in upvotes),
            is_caller_issue=issue.reported_by_id == caller.id,
        )
        return IssueDetail(item=item, comments=comments, upvotes=upvotes)

    # ---- pipeline ----

    def _order_by(self, query: FeedQuery, upvote_n, comment_n) -> list:
        if query.sort_by is None:
            return [Issue.created_at.desc(), upvote_n.desc(), Issue.id.asc()]
        column = {
            "createdAt": Issue.created_at,
            "updatedAt": Issue.updated_at,
            "title": Issue.title,
            "category": Issue.category,
            "priority": _rank(Issue.priority, list(IssuePriority)),
            "status": _rank(Issue.status, list(IssueStatus)),
            "upvoteCount": upvote_n,
            "commentCount": comment_n,
        }[query.sort_by]
        return [column.desc() if query.descending else column.asc(), Issue.id.asc()]

    @store_errors
    def _run(self, caller: User, query: FeedQuery) -> FeedPage:
        predicates = list(query.predicates)
        if query.center is not None:
            nearby = self.geo.within_radius(query.center, query.radius_km)
            if not nearby:
                return FeedPage(items=[], page=query.page, limit=query.limit, total=0)
            predicates.append(filters.geo_predicate(nearby))
        where = filters.combine(*predicates)

        upvotes_sq = (
            select(IssueUpvote.issue_id, func.count().label("n"))
            .group_by(IssueUpvote.issue_id).subquery()
        )
        comments_sq = (
            select(IssueComment.issue_id, func.count().label("n"))
            .group_by(IssueComment.issue_id).subquery()
        )
        upvote_n = func.coalesce(upvotes_sq.c.n, 0)
        comment_n = func.coalesce(comments_sq.c.n, 0)

        stmt = (
            select(Issue, upvote_n.label("upvote_count"), comment_n.label("comment_count"),
                   func.count().over().label("total"))
            .outerjoin(upvotes_sq, upvotes_sq.c.issue_id == Issue.id)
            .outerjoin(comments_sq, comments_sq.c.issue_id == Issue.id)
            .where(where)
            .order_by(*self._order_by(query, upvote_n, comment_n))
            .offset((query.page - 1) * query.limit)
            .limit(query.limit)
            .options(selectinload(Issue.reporter), selectinload(Issue.assignee),
                     selectinload(Issue.images), selectinload(Issue.tags))
        )
        rows = self.db.execute(stmt).all()

        if rows:
            total = rows[0].total
        elif query.page == 1:
            total = 0
        else:
            total = self.db.scalar(select(func.count()).select_from(Issue).where(where)) or 0

        ids = [row[0].id for row in rows]
        upvoted: set[int] = set()
        if ids:
            upvoted = set(self.db.scalars(
                select(IssueUpvote.issue_id).where(
                    IssueUpvote.user_id == caller.id, IssueUpvote.issue_id.in_(ids)
                )
            ))

        items = [
            FeedItem(
                issue=row[0],
                upvote_count=row.upvote_count,
                comment_count=row.comment_count,
                caller_has_upvoted=row[0].id in upvoted,
                is_caller_issue=row[0].reported_by_id == caller.id,
            )
            for row in rows
        ]
        return FeedPage(items=items, page=query.page, limit=query.limit, total=total)
