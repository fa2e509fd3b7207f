# File: civiceye/routers/issues_stats.py
from fastapi import APIRouter, Depends, Query

from civiceye.core.security import get_current_user
from civiceye.deps import get_stats
from civiceye.models.user import User
from civiceye.schemas.common import ok
from civiceye.schemas.stats import CategoryCountOut, ReporterSummaryOut, StatsOut, SummaryOut
from civiceye.services.stats import StatsAggregator, range_to_dt

router = APIRouter(prefix="/issues/stats", tags=["issues:stats"])


def _categories(stats: StatsAggregator, since) -> list[CategoryCountOut]:
    return [CategoryCountOut(category=c, count=n) for c, n in stats.by_category(since)]


@router.get("/summary")
def summary(range: str = Query("all"), user: User = Depends(get_current_user),
            stats: StatsAggregator = Depends(get_stats)):
    since = range_to_dt(range)
    return ok(StatsOut(summary=SummaryOut(**stats.summary(since)), categories=_categories(stats, since)))


@router.get("/by-category")
def by_category(range: str = Query("all"), user: User = Depends(get_current_user),
                stats: StatsAggregator = Depends(get_stats)):
    return ok(_categories(stats, range_to_dt(range)))


@router.get("/mine")
def mine(user: User = Depends(get_current_user), stats: StatsAggregator = Depends(get_stats)):
    return ok(ReporterSummaryOut(**stats.reporter_summary(user.id)))
