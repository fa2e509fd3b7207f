# File: civiceye/services/upvotes.py
"""Per-issue supporter sets.

A user either supports an issue or does not; toggle() flips that membership.
The flip is one conditional delete-or-insert inside a single transaction that
holds the issue's lock, and the (issue_id, user_id) unique constraint makes a
second row for the same voter impossible even if another process races us.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from civiceye.core.errors import NotFoundError, StoreUnavailableError
from civiceye.core.locks import KeyedLocks
from civiceye.db.session import store_errors
from civiceye.models.interaction import IssueUpvote
from civiceye.services.issue_store import lock_issue_row

logger = logging.getLogger(__name__)

MAX_FLIP_ATTEMPTS = 3


@dataclass(frozen=True)
class ToggleResult:
    supported: bool
    count: int


class UpvoteLedger:
    def __init__(self, db: Session, locks: KeyedLocks):
        self.db = db
        self.locks = locks

    def _flip(self, issue_id: int, user_id: int) -> ToggleResult:
        if not lock_issue_row(self.db, issue_id):
            raise NotFoundError("Issue not found")
        removed = self.db.execute(
            delete(IssueUpvote).where(
                IssueUpvote.issue_id == issue_id, IssueUpvote.user_id == user_id
            )
        ).rowcount
        if not removed:
            self.db.add(IssueUpvote(issue_id=issue_id, user_id=user_id))
            self.db.flush()
        return ToggleResult(supported=not removed, count=self._count(issue_id))

    @store_errors
    def toggle(self, issue_id: int, user_id: int) -> ToggleResult:
        with self.locks.hold(issue_id):
            for attempt in range(1, MAX_FLIP_ATTEMPTS + 1):
                try:
                    result = self._flip(issue_id, user_id)
                    self.db.commit()
                except IntegrityError:
                    # Another process inserted the same vote, or deleted the
                    # issue, between our delete and insert. Start over.
                    self.db.rollback()
                    logger.warning("upvote flip on issue %s by user %s conflicted (attempt %d)",
                                   issue_id, user_id, attempt)
                    continue
                except Exception:
                    self.db.rollback()
                    raise
                logger.debug("issue %s upvote by user %s -> %s (%d)",
                             issue_id, user_id, result.supported, result.count)
                return result
        raise StoreUnavailableError("Could not record upvote, please retry")

    def _count(self, issue_id: int) -> int:
        return self.db.scalar(
            select(func.count()).select_from(IssueUpvote).where(IssueUpvote.issue_id == issue_id)
        ) or 0

    @store_errors
    def count(self, issue_id: int) -> int:
        return self._count(issue_id)

    @store_errors
    def contains(self, issue_id: int, user_id: int) -> bool:
        return self.db.scalar(
            select(IssueUpvote.id).where(
                IssueUpvote.issue_id == issue_id, IssueUpvote.user_id == user_id
            )
        ) is not None

