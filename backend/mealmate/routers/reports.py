"""
Report routes: generate, list, fetch and delete nutrition reports.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List

from .. import models, schemas
from ..analytics import AnalyticsEngine
from ..auth import get_current_user
from ..deps import get_analytics, get_repository
from ..llm.tools import deliver_report, report_url
from ..repository import NutritionRepository

router = APIRouter(prefix="/api/reports", tags=["Reports"])


def _get_report_or_404(repo: NutritionRepository, user_id: int, report_id: int) -> models.MealReport:
    report = repo.get_report(user_id, report_id)
    if not report:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return report


@router.post("", response_model=schemas.MealReport, status_code=status.HTTP_201_CREATED)
def generate_report(
    payload: schemas.ReportGenerateRequest,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    """
    Generate a report over an inclusive date range.

    - **send_email**: also email the summary; a failed send marks the report `failed`
    """
    if payload.end_date < payload.start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be before start_date",
        )
    profile = repo.get_health_profile(current_user.id)
    report = analytics.build_report(
        current_user.id, payload.report_type, payload.start_date, payload.end_date, profile
    )
    if payload.send_email:
        deliver_report(repo, current_user, report, report_url(report.id))
    return report


@router.get("", response_model=List[schemas.MealReport])
def list_reports(
    limit: int = Query(50, ge=1, le=200),
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
):
    """Reports for the current user, newest first."""
    return repo.list_reports(current_user.id, limit=limit)


@router.get("/{report_id}", response_model=schemas.MealReport)
def get_report(
    report_id: int,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
):
    return _get_report_or_404(repo, current_user.id, report_id)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_report(
    report_id: int,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
):
    repo.delete_report(_get_report_or_404(repo, current_user.id, report_id))
