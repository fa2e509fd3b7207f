# File: civiceye/routers/issues.py
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from civiceye.core.config import settings
from civiceye.core.ratelimit import limiter
from civiceye.core.security import get_current_user
from civiceye.deps import get_comments, get_feed, get_issue_store, get_media, get_upvotes
from civiceye.models.user import User
from civiceye.schemas.common import ok
from civiceye.schemas.issue import (
    AssignmentIn,
    CommentIn,
    CommentOut,
    FeedPageOut,
    IssueDetailOut,
    IssueOut,
    IssueUpdateIn,
    PageOut,
    StatusIn,
    UpvoteOut,
)
from civiceye.services.comments import CommentLog
from civiceye.services.feed import FeedAggregator
from civiceye.services.issue_store import IssueStore
from civiceye.services.storage import MediaStorage
from civiceye.services.upvotes import UpvoteLedger
from civiceye.services.validation import ImageUpload

router = APIRouter(prefix="/issues", tags=["issues"])


def _read_upload(upload: UploadFile, limit: int) -> ImageUpload:
    # one byte past the cap is enough for the size check to reject it
    return ImageUpload(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "",
        data=upload.file.read(limit + 1),
    )


def _issue_out(feed: FeedAggregator, media: MediaStorage, issue_id: int, user: User) -> IssueOut:
    return IssueOut.from_item(feed.detail(issue_id, user).item, media)


@router.post("", status_code=201)
@limiter.limit("10/minute")
def create_issue(
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    priority: Optional[str] = Form(None),
    visibility: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    latitude: Optional[str] = Form(None),
    longitude: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    city: Optional[str] = Form(None),
    state: Optional[str] = Form(None),
    pincode: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    images: List[UploadFile] | None = File(default=None),
    user: User = Depends(get_current_user),
    issues: IssueStore = Depends(get_issue_store),
    feed: FeedAggregator = Depends(get_feed),
    media: MediaStorage = Depends(get_media),
):
    uploads = [_read_upload(f, settings.max_file_size) for f in images or []]
    issue = issues.create(user, {
        "title": title,
        "description": description,
        "category": category,
        "priority": priority,
        "visibility": visibility,
        "location": location,
        "latitude": latitude,
        "longitude": longitude,
        "address": address,
        "city": city,
        "state": state,
        "pincode": pincode,
        "tags": tags,
    }, uploads)
    return ok(_issue_out(feed, media, issue.id, user), "Issue reported successfully")


@router.get("/feed")
def issue_feed(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    latitude: Optional[str] = Query(None),
    longitude: Optional[str] = Query(None),
    radius: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    include_resolved: Optional[str] = Query(None, alias="includeResolved"),
    user: User = Depends(get_current_user),
    feed: FeedAggregator = Depends(get_feed),
    media: MediaStorage = Depends(get_media),
):
    result = feed.feed(user, page=page, limit=limit, latitude=latitude, longitude=longitude,
                       radius=radius, category=category, include_resolved=include_resolved)
    return ok(FeedPageOut.from_feed(result, media))


@router.get("")
def list_issues(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    latitude: Optional[str] = Query(None),
    longitude: Optional[str] = Query(None),
    radius: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    my_issues: Optional[str] = Query(None, alias="myIssues"),
    user: User = Depends(get_current_user),
    feed: FeedAggregator = Depends(get_feed),
    media: MediaStorage = Depends(get_media),
):
    result = feed.list_issues(
        user, page=page, limit=limit, category=category, status=status, priority=priority,
        latitude=latitude, longitude=longitude, radius=radius, search=search,
        sort_by=sort_by, sort_order=sort_order, my_issues=my_issues,
    )
    return ok(PageOut.from_page(result, media))


@router.get("/my")
def my_issues(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    user: User = Depends(get_current_user),
    feed: FeedAggregator = Depends(get_feed),
    media: MediaStorage = Depends(get_media),
):
    result = feed.my_issues(user, page=page, limit=limit, status=status, category=category,
                            sort_by=sort_by, sort_order=sort_order)
    return ok(PageOut.from_page(result, media))


@router.get("/{issue_id}")
def get_issue(
    issue_id: int,
    user: User = Depends(get_current_user),
    feed: FeedAggregator = Depends(get_feed),
    media: MediaStorage = Depends(get_media),
):
    return ok(IssueDetailOut.from_detail(feed.detail(issue_id, user), media))


@router.put("/{issue_id}")
def update_issue(
    issue_id: int,
    payload: IssueUpdateIn,
    user: User = Depends(get_current_user),
    issues: IssueStore = Depends(get_issue_store),
    feed: FeedAggregator = Depends(get_feed),
    media: MediaStorage = Depends(get_media),
):
    issues.update(issue_id, user, payload.model_dump(exclude_unset=True))
    return ok(_issue_out(feed, media, issue_id, user), "Issue updated successfully")


@router.patch("/{issue_id}/status")
def update_status(
    issue_id: int,
    payload: StatusIn,
    user: User = Depends(get_current_user),
    issues: IssueStore = Depends(get_issue_store),
    feed: FeedAggregator = Depends(get_feed),
    media: MediaStorage = Depends(get_media),
):
    issue = issues.transition_status(issue_id, user, payload.status)
    return ok(_issue_out(feed, media, issue_id, user), f"Issue status updated to {issue.status.value}")


@router.patch("/{issue_id}/assignment")
def assign_issue(
    issue_id: int,
    payload: AssignmentIn,
    user: User = Depends(get_current_user),
    issues: IssueStore = Depends(get_issue_store),
    feed: FeedAggregator = Depends(get_feed),
    media: MediaStorage = Depends(get_media),
):
    issue = issues.assign(issue_id, user, payload.assigned_to)
    message = "Issue assigned successfully" if issue.assigned_to_id else "Issue unassigned"
    return ok(_issue_out(feed, media, issue_id, user), message)


@router.post("/{issue_id}/upvote")
def toggle_upvote(
    issue_id: int,
    user: User = Depends(get_current_user),
    issues: IssueStore = Depends(get_issue_store),
    upvotes: UpvoteLedger = Depends(get_upvotes),
):
    issues.get(issue_id, user)
    result = upvotes.toggle(issue_id, user.id)
    message = "Issue upvoted" if result.supported else "Upvote removed"
    return ok(UpvoteOut(upvoted=result.supported, upvote_count=result.count), message)


@router.post("/{issue_id}/comment", status_code=201)
def add_comment(
    issue_id: int,
    payload: CommentIn,
    user: User = Depends(get_current_user),
    issues: IssueStore = Depends(get_issue_store),
    comments: CommentLog = Depends(get_comments),
):
    issues.get(issue_id, user)
    comment = comments.append(issue_id, user.id, payload.comment)
    return ok(CommentOut.from_comment(comment), "Comment added successfully")


@router.get("/{issue_id}/comments")
def list_comments(
    issue_id: int,
    user: User = Depends(get_current_user),
    issues: IssueStore = Depends(get_issue_store),
    comments: CommentLog = Depends(get_comments),
):
    issues.get(issue_id, user)
    return ok([CommentOut.from_comment(c) for c in comments.entries(issue_id)])


@router.delete("/{issue_id}")
def delete_issue(
    issue_id: int,
    user: User = Depends(get_current_user),
    issues: IssueStore = Depends(get_issue_store),
):
    issues.delete(issue_id, user)
    return ok(message="Issue deleted successfully")
