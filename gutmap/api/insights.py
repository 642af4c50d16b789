"""Insights API: the statistical analysis of a record set."""

from fastapi import APIRouter

from gutmap.api.schemas import RecordsRequest
from gutmap.services.insights_service import InsightsService
from gutmap.services.schemas import ComprehensiveInsights

router = APIRouter(prefix="/insights", tags=["insights"])

# Shared so the fingerprint cache survives across requests
insights_service = InsightsService()


@router.post("/analyze", response_model=ComprehensiveInsights)
async def analyze(request: RecordsRequest):
    """
    Analyze meal records.

    Returns trigger confidence, combinations, weekly trend, success metrics,
    recommendations and notes patterns. Too few records gives empty sections,
    never an error.
    """
    return insights_service.analyze(request.records, now=request.now)
