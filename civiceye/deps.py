# File: civiceye/deps.py
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from civiceye.core.config import settings
from civiceye.db.session import Store, get_db, get_store
from civiceye.services.comments import CommentLog
from civiceye.services.feed import FeedAggregator
from civiceye.services.issue_store import IssueStore
from civiceye.services.stats import StatsAggregator
from civiceye.services.storage import MediaStorage
from civiceye.services.upvotes import UpvoteLedger


def get_media(request: Request) -> MediaStorage:
    return request.app.state.media


def get_issue_store(db: Session = Depends(get_db), store: Store = Depends(get_store),
                    media: MediaStorage = Depends(get_media)) -> IssueStore:
    return IssueStore(db, store.locks, media,
                      max_upload_files=settings.max_upload_files,
                      max_file_size=settings.max_file_size)


def get_upvotes(db: Session = Depends(get_db), store: Store = Depends(get_store)) -> UpvoteLedger:
    return UpvoteLedger(db, store.locks)


def get_comments(db: Session = Depends(get_db), store: Store = Depends(get_store)) -> CommentLog:
    return CommentLog(db, store.locks)


def get_feed(db: Session = Depends(get_db)) -> FeedAggregator:
    return FeedAggregator(db, max_page_size=settings.max_page_size,
                          feed_radius_km=settings.feed_default_radius_km,
                          list_radius_km=settings.list_default_radius_km)


def get_stats(db: Session = Depends(get_db)) -> StatsAggregator:
    return StatsAggregator(db)
