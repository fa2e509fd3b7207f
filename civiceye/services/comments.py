# File: civiceye/services/comments.py
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from civiceye.core.errors import NotFoundError
from civiceye.core.locks import KeyedLocks
from civiceye.db.session import store_errors
from civiceye.models.interaction import IssueComment
from civiceye.services.issue_store import lock_issue_row
from civiceye.services.validation import validate_comment

logger = logging.getLogger(__name__)


class CommentLog:
    """Append-only comments, totally ordered per issue by ``seq``."""

    def __init__(self, db: Session, locks: KeyedLocks):
        self.db = db
        self.locks = locks

    @store_errors
    def append(self, issue_id: int, user_id: int, text) -> IssueComment:
        body = validate_comment(text)
        with self.locks.hold(issue_id):
            try:
                if not lock_issue_row(self.db, issue_id):
                    raise NotFoundError("Issue not found")
                last = self.db.scalar(
                    select(func.max(IssueComment.seq)).where(IssueComment.issue_id == issue_id)
                )
                comment = IssueComment(issue_id=issue_id, seq=(last or 0) + 1, user_id=user_id, body=body)
                self.db.add(comment)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        logger.info("comment %s appended to issue %s by user %s", comment.seq, issue_id, user_id)
        return self.db.get(IssueComment, comment.id)

    @store_errors
    def count(self, issue_id: int) -> int:
        return self.db.scalar(
            select(func.count()).select_from(IssueComment).where(IssueComment.issue_id == issue_id)
        ) or 0

    @store_errors
    def entries(self, issue_id: int) -> list[IssueComment]:
        return list(self.db.scalars(
            select(IssueComment).where(IssueComment.issue_id == issue_id).order_by(IssueComment.seq)
        ))
