# File: civiceye/schemas/issue.py
from datetime import datetime
from typing import List, Optional, Union

from civiceye.models.interaction import IssueComment, IssueUpvote
from civiceye.models.issue import IssueCategory, IssuePriority, IssueStatus, Visibility
from civiceye.schemas.common import CamelModel
from civiceye.services.feed import FeedInfo, FeedItem, FeedPage, IssueDetail
from civiceye.services.storage import MediaStorage


class ReporterOut(CamelModel):
    """Public projection of a user: never email, role or auth fields."""
    id: int
    name: str
    avatar: Optional[str] = None


class AssigneeOut(CamelModel):
    id: int
    name: str


class LocationOut(CamelModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class ImageOut(CamelModel):
    filename: str
    original_name: Optional[str] = None
    url: str
    content_type: str
    size: int


class IssueOut(CamelModel):
    id: int
    title: str
    description: str
    category: IssueCategory
    priority: IssuePriority
    status: IssueStatus
    visibility: Visibility
    location: LocationOut
    tags: List[str] = []
    images: List[ImageOut] = []

    reporter: ReporterOut
    assigned_to: Optional[AssigneeOut] = None

    admin_notes: Optional[str] = None
    estimated_resolution_date: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    # caller-relative, computed per request
    upvote_count: int = 0
    comment_count: int = 0
    caller_has_upvoted: bool = False
    is_caller_issue: bool = False

    @classmethod
    def _fields_from(cls, item: FeedItem, media: MediaStorage) -> dict:
        issue = item.issue
        return dict(
            id=issue.id,
            title=issue.title,
            description=issue.description,
            category=issue.category,
            priority=issue.priority,
            status=issue.status,
            visibility=issue.visibility,
            location=LocationOut(
                latitude=issue.latitude, longitude=issue.longitude, address=issue.address,
                city=issue.city, state=issue.state, pincode=issue.pincode,
            ),
            tags=issue.tag_names,
            images=[
                ImageOut(filename=img.filename, original_name=img.original_name,
                         url=media.public_url(img.filename), content_type=img.content_type,
                         size=img.size)
                for img in issue.images
            ],
            reporter=ReporterOut.model_validate(issue.reporter),
            assigned_to=AssigneeOut.model_validate(issue.assignee) if issue.assignee else None,
            admin_notes=issue.admin_notes,
            estimated_resolution_date=issue.estimated_resolution_date,
            resolved_at=issue.resolved_at,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
            upvote_count=item.upvote_count,
            comment_count=item.comment_count,
            caller_has_upvoted=item.caller_has_upvoted,
            is_caller_issue=item.is_caller_issue,
        )

    @classmethod
    def from_item(cls, item: FeedItem, media: MediaStorage) -> "IssueOut":
        return cls(**cls._fields_from(item, media))


class CommentOut(CamelModel):
    id: int
    seq: int
    user: ReporterOut
    comment: str
    commented_at: datetime

    @classmethod
    def from_comment(cls, c: IssueComment) -> "CommentOut":
        return cls(id=c.id, seq=c.seq, user=ReporterOut.model_validate(c.author),
                   comment=c.body, commented_at=c.created_at)


class UpvoterOut(CamelModel):
    user: ReporterOut
    upvoted_at: datetime

    @classmethod
    def from_upvote(cls, u: IssueUpvote) -> "UpvoterOut":
        return cls(user=ReporterOut.model_validate(u.user), upvoted_at=u.created_at)


class IssueDetailOut(IssueOut):
    comments: List[CommentOut] = []
    upvotes: List[UpvoterOut] = []

    @classmethod
    def from_detail(cls, detail: IssueDetail, media: MediaStorage) -> "IssueDetailOut":
        return cls(
            **cls._fields_from(detail.item, media),
            comments=[CommentOut.from_comment(c) for c in detail.comments],
            upvotes=[UpvoterOut.from_upvote(u) for u in detail.upvotes],
        )


class PageOut(CamelModel):
    items: List[IssueOut]
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def from_page(cls, page: FeedPage, media: MediaStorage) -> "PageOut":
        return cls(
            items=[IssueOut.from_item(i, media) for i in page.items],
            page=page.page,
            limit=page.limit,
            total=page.total,
            total_pages=page.total_pages,
            has_next_page=page.has_next_page,
            has_prev_page=page.has_prev_page,
        )


class GeoPointOut(CamelModel):
    latitude: float
    longitude: float


class FeedInfoOut(CamelModel):
    radius: float
    location: Optional[GeoPointOut] = None
    category: str
    include_resolved: bool

    @classmethod
    def from_info(cls, info: FeedInfo) -> "FeedInfoOut":
        center = info.center
        return cls(
            radius=info.radius_km,
            location=GeoPointOut(latitude=center.latitude, longitude=center.longitude) if center else None,
            category=info.category.value if info.category else "all",
            include_resolved=info.include_resolved,
        )


class FeedPageOut(PageOut):
    feed_info: FeedInfoOut

    @classmethod
    def from_feed(cls, page: FeedPage, media: MediaStorage) -> "FeedPageOut":
        base = PageOut.from_page(page, media)
        return cls(**dict(base), feed_info=FeedInfoOut.from_info(page.info))


class UpvoteOut(CamelModel):
    upvoted: bool
    upvote_count: int


# ---- request bodies; field rules live in services.validation ----

class IssueUpdateIn(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    visibility: Optional[str] = None
    tags: Optional[Union[List[str], str]] = None


class StatusIn(CamelModel):
    status: Optional[str] = None


class AssignmentIn(CamelModel):
    assigned_to: Optional[int] = None


class CommentIn(CamelModel):
    comment: Optional[str] = None

