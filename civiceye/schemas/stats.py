# File: civiceye/schemas/stats.py
from typing import List

from civiceye.schemas.common import CamelModel


class SummaryOut(CamelModel):
    total: int
    open: int
    in_progress: int
    resolved: int
    closed: int


class CategoryCountOut(CamelModel):
    category: str
    count: int


class StatsOut(CamelModel):
    summary: SummaryOut
    categories: List[CategoryCountOut]


class ReporterSummaryOut(CamelModel):
    total_issues: int
    resolved_issues: int
    total_upvotes: int
