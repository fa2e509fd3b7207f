# File: civiceye/models/interaction.py
from __future__ import annotations
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from civiceye.db.base import Base
from civiceye.models.issue import utcnow
from civiceye.models.user import User


class IssueUpvote(Base):
    __tablename__ = "issue_upvotes"
    # one row per supporter; the constraint is what makes a duplicate vote impossible
    __table_args__ = (
        UniqueConstraint("issue_id", "user_id", name="uq_issue_upvote_user"),
        Index("ix_issue_upvotes_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    issue_id: Mapped[int] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped[User] = relationship(User, lazy="joined")


class IssueComment(Base):
    __tablename__ = "issue_comments"
    __table_args__ = (UniqueConstraint("issue_id", "seq", name="uq_issue_comment_seq"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    issue_id: Mapped[int] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), index=True)
    seq: Mapped[int] = mapped_column(Integer)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    body: Mapped[str] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    author: Mapped[User] = relationship(User, lazy="joined")
