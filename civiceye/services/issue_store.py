# File: civiceye/services/issue_store.py
import logging
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from civiceye.core.errors import ForbiddenError, NotFoundError, ValidationError
from civiceye.core.locks import KeyedLocks
from civiceye.db.session import store_errors
from civiceye.models.interaction import IssueComment, IssueUpvote
from civiceye.models.issue import Issue, IssueImage, IssueStatus, IssueTag, utcnow
from civiceye.models.user import User, UserRole
from civiceye.services.storage import MediaStorage, StoredImage
from civiceye.services.validation import (
    ImageUpload,
    parse_location,
    parse_tags,
    validate_address_fields,
    validate_category,
    validate_description,
    validate_images,
    validate_location,
    validate_priority,
    validate_status,
    validate_title,
    validate_visibility,
)

logger = logging.getLogger(__name__)

# Fields an owner or admin may change through update(); status and assignment
# have their own privileged paths. Tags are handled separately.
UPDATABLE_FIELDS = {
    "title": validate_title,
    "description": validate_description,
    "category": validate_category,
    "priority": validate_priority,
    "visibility": validate_visibility,
}

# CLOSED -> OPEN is additionally restricted to admins, see transition_status().
TRANSITIONS: dict[IssueStatus, frozenset[IssueStatus]] = {
    IssueStatus.OPEN: frozenset({IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED, IssueStatus.CLOSED}),
    IssueStatus.IN_PROGRESS: frozenset({IssueStatus.RESOLVED, IssueStatus.CLOSED}),
    IssueStatus.RESOLVED: frozenset({IssueStatus.CLOSED, IssueStatus.OPEN}),
    IssueStatus.CLOSED: frozenset({IssueStatus.OPEN}),
}


def is_transition_allowed(current: IssueStatus, new: IssueStatus, user: User) -> bool:
    if current == new:
        return True
    if new not in TRANSITIONS[current]:
        return False
    if current == IssueStatus.CLOSED:
        return user.is_admin
    return True


def lock_issue_row(db: Session, issue_id: int) -> bool:
    """Take the row lock for ``issue_id`` in the current transaction.

    Returns False when the issue does not exist. SQLite has no row locks; there
    the per-issue KeyedLocks entry held by the caller does the serialising.
    """
    row = db.execute(select(Issue.id).where(Issue.id == issue_id).with_for_update()).first()
    return row is not None


class IssueStore:
    """Canonical issue records: create, read, update, status, assignment, delete."""

    def __init__(self, db: Session, locks: KeyedLocks, media: Optional[MediaStorage] = None,
                 max_upload_files: int = 5, max_file_size: int = 10 * 1024 * 1024):
        self.db = db
        self.locks = locks
        self.media = media or MediaStorage()
        self.max_upload_files = max_upload_files
        self.max_file_size = max_file_size

    def _load(self, issue_id: int) -> Issue:
        issue = self.db.get(Issue, issue_id, populate_existing=True)
        if issue is None:
            raise NotFoundError("Issue not found")
        return issue

    def _load_locked(self, issue_id: int) -> Issue:
        if not lock_issue_row(self.db, issue_id):
            raise NotFoundError("Issue not found")
        return self._load(issue_id)

    @staticmethod
    def _require_owner_or_admin(issue: Issue, user: User, action: str) -> None:
        if not (issue.is_owned_by(user) or user.is_admin):
            raise ForbiddenError(f"You are not authorized to {action} this issue")

    @store_errors
    def create(self, reporter: User, fields: Mapping[str, Any],
               images: Sequence[ImageUpload] = ()) -> Issue:
        title = validate_title(fields.get("title"))
        description = validate_description(fields.get("description"))
        category = validate_category(fields.get("category"))
        priority = validate_priority(fields.get("priority"))
        visibility = validate_visibility(fields.get("visibility"))
        if fields.get("location") is not None:
            point = parse_location(fields["location"])
        else:
            point = validate_location(fields.get("latitude"), fields.get("longitude"))
        address = validate_address_fields(
            address=fields.get("address"),
            city=fields.get("city"),
            state=fields.get("state"),
            pincode=fields.get("pincode"),
        )
        tags = parse_tags(fields.get("tags"))
        uploads = validate_images(images, self.max_upload_files, self.max_file_size)

        stored: list[StoredImage] = []
        try:
            for upload in uploads:
                stored.append(self.media.save(upload.data, upload.content_type, upload.filename))

            issue = Issue(
                title=title,
                description=description,
                category=category,
                priority=priority,
                status=IssueStatus.OPEN,
                visibility=visibility,
                latitude=point.latitude,
                longitude=point.longitude,
                reported_by_id=reporter.id,
                **address,
            )
            issue.images = [
                IssueImage(position=i, filename=s.filename, original_name=s.original_name,
                           content_type=s.content_type, size=s.size)
                for i, s in enumerate(stored)
            ]
            issue.tags = [IssueTag(position=i, tag=t) for i, t in enumerate(tags)]
            self.db.add(issue)
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.media.release(s.filename for s in stored)
            raise

        logger.info("issue %s created by user %s (%s)", issue.id, reporter.id, category.value)
        return self._load(issue.id)

    @store_errors
    def get(self, issue_id: int, user: User) -> Issue:
        issue = self._load(issue_id)
        if not issue.can_be_viewed_by(user):
            raise ForbiddenError("You are not authorized to view this issue")
        return issue

    @store_errors
    def update(self, issue_id: int, user: User, patch: Mapping[str, Any]) -> Issue:
        # Validate the whole patch before touching the row.
        changes: dict[str, Any] = {
            name: validate(patch[name])
            for name, validate in UPDATABLE_FIELDS.items()
            if patch.get(name) is not None
        }
        new_tags = parse_tags(patch["tags"]) if patch.get("tags") is not None else None

        with self.locks.hold(issue_id):
            try:
                issue = self._load_locked(issue_id)
                self._require_owner_or_admin(issue, user, "update")
                for name, value in changes.items():
                    setattr(issue, name, value)
                if new_tags is not None:
                    issue.tags.clear()
                    self.db.flush()
                    issue.tags.extend(IssueTag(position=i, tag=t) for i, t in enumerate(new_tags))
                issue.updated_at = utcnow()
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info("issue %s updated by user %s: %s", issue_id, user.id,
                    sorted(list(changes) + (["tags"] if new_tags is not None else [])))
        return self._load(issue_id)

    @store_errors
    def transition_status(self, issue_id: int, user: User, new_status) -> Issue:
        target = validate_status(new_status)
        with self.locks.hold(issue_id):
            try:
                issue = self._load_locked(issue_id)
                if not (user.is_admin or issue.assigned_to_id == user.id):
                    raise ForbiddenError("Only admins or the assigned staff can update status")
                current = issue.status
                if not is_transition_allowed(current, target, user):
                    raise ValidationError(
                        "status", f"Cannot change status from {current.value} to {target.value}"
                    )
                if current != target:
                    issue.status = target
                    issue.resolved_at = utcnow() if target == IssueStatus.RESOLVED else None
                    issue.updated_at = utcnow()
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        if current != target:
            logger.info("issue %s status %s -> %s by user %s",
                        issue_id, current.value, target.value, user.id)
        return self._load(issue_id)

    @store_errors
    def assign(self, issue_id: int, user: User, assignee_id: Optional[int]) -> Issue:
        if user.role not in (UserRole.admin, UserRole.super_admin, UserRole.staff):
            raise ForbiddenError("You are not allowed to assign issues")
        if user.role == UserRole.staff and assignee_id != user.id:
            raise ForbiddenError("Staff can only assign issues to themselves")

        with self.locks.hold(issue_id):
            try:
                issue = self._load_locked(issue_id)
                if issue.status in (IssueStatus.RESOLVED, IssueStatus.CLOSED):
                    raise ValidationError("assignedTo", "Cannot assign or reassign a resolved or closed issue")
                if assignee_id is not None:
                    assignee = self.db.get(User, assignee_id)
                    if assignee is None or not assignee.is_active:
                        raise ValidationError("assignedTo", "User not found")
                issue.assigned_to_id = assignee_id
                issue.updated_at = utcnow()
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info("issue %s assigned to %s by user %s", issue_id, assignee_id, user.id)
        return self._load(issue_id)

    @store_errors
    def delete(self, issue_id: int, user: User) -> None:
        with self.locks.hold(issue_id):
            try:
                issue = self._load_locked(issue_id)
                self._require_owner_or_admin(issue, user, "delete")
                filenames = [img.filename for img in issue.images]
                self.db.execute(delete(IssueUpvote).where(IssueUpvote.issue_id == issue_id))
                self.db.execute(delete(IssueComment).where(IssueComment.issue_id == issue_id))
                self.db.execute(delete(IssueTag).where(IssueTag.issue_id == issue_id))
                self.db.expire(issue, ["tags"])
                self.db.delete(issue)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.media.release(filenames)
        logger.info("issue %s deleted by user %s (%d images released)", issue_id, user.id, len(filenames))
