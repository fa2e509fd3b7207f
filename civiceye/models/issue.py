# File: civiceye/models/issue.py
from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import List, Optional
from sqlalchemy import String, Float, Enum, Integer, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from civiceye.db.base import Base
from civiceye.models.user import User


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IssueCategory(PyEnum):
    INFRASTRUCTURE = "INFRASTRUCTURE"
    SANITATION = "SANITATION"
    TRAFFIC = "TRAFFIC"
    ENVIRONMENT = "ENVIRONMENT"
    UTILITIES = "UTILITIES"
    SAFETY = "SAFETY"
    TRANSPORT = "TRANSPORT"
    CLEANLINESS = "CLEANLINESS"
    GOVERNANCE = "GOVERNANCE"
    OTHER = "OTHER"

class IssuePriority(PyEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"

class IssueStatus(PyEnum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"

class Visibility(PyEnum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


def _enum(cls):
    return Enum(cls, native_enum=False, length=20)


class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(100), index=True)
    description: Mapped[str] = mapped_column(String(1000))
    category: Mapped[IssueCategory] = mapped_column(_enum(IssueCategory), index=True)
    priority: Mapped[IssuePriority] = mapped_column(_enum(IssuePriority), default=IssuePriority.MEDIUM)
    status: Mapped[IssueStatus] = mapped_column(_enum(IssueStatus), default=IssueStatus.OPEN, index=True)
    visibility: Mapped[Visibility] = mapped_column(_enum(Visibility), default=Visibility.PUBLIC, index=True)

    # WGS-84 degrees; nullable so legacy rows without a fix are tolerated by the geo index
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    address: Mapped[str | None] = mapped_column(String(300), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(120), nullable=True)
    pincode: Mapped[str | None] = mapped_column(String(20), nullable=True)

    reported_by_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    assigned_to_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True
    )

    admin_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    estimated_resolution_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    reporter: Mapped[User] = relationship(User, foreign_keys=[reported_by_id], lazy="joined")
    assignee: Mapped[Optional[User]] = relationship(User, foreign_keys=[assigned_to_id], lazy="joined")
    images: Mapped[List["IssueImage"]] = relationship(
        back_populates="issue", order_by="IssueImage.position",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    tags: Mapped[List["IssueTag"]] = relationship(
        back_populates="issue", order_by="IssueTag.position",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def tag_names(self) -> list[str]:
        return [t.tag for t in self.tags]

    def is_owned_by(self, user: User) -> bool:
        return self.reported_by_id == user.id

    def can_be_viewed_by(self, user: User) -> bool:
        return self.visibility == Visibility.PUBLIC or self.is_owned_by(user) or user.is_admin

Index("ix_issues_lat_lng", Issue.latitude, Issue.longitude)


class IssueImage(Base):
    __tablename__ = "issue_images"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    issue_id: Mapped[int] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    filename: Mapped[str] = mapped_column(String(500))
    original_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content_type: Mapped[str] = mapped_column(String(100))
    size: Mapped[int] = mapped_column(Integer)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    issue: Mapped[Issue] = relationship(back_populates="images")


class IssueTag(Base):
    __tablename__ = "issue_tags"
    __table_args__ = (UniqueConstraint("issue_id", "tag", name="uq_issue_tag"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    issue_id: Mapped[int] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    tag: Mapped[str] = mapped_column(String(50), index=True)

    issue: Mapped[Issue] = relationship(back_populates="tags")
