"""
Meal log routes: CRUD for meals, the daily view and period statistics.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Optional
from datetime import date
import re

from .. import models, schemas
from ..analytics import AnalyticsEngine, day_bounds, resolve_targets
from ..auth import get_current_user
from ..deps import get_analytics, get_repository
from ..models import as_utc
from ..repository import NutritionRepository

router = APIRouter(prefix="/api/meals", tags=["Meals"])

ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


def _parse_day(value: Optional[str], analytics: AnalyticsEngine) -> date:
    if not value:
        return analytics.today()
    try:
        if not ISO_DATE_RE.fullmatch(value):
            raise ValueError(value)
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid date format. Use YYYY-MM-DD",
        )


def _summary(user_id: int, day: date, repo: NutritionRepository, analytics: AnalyticsEngine) -> schemas.DailyTotals:
    targets = resolve_targets(repo.get_health_profile(user_id))
    return analytics.daily_totals(user_id, targets, day)


def _get_meal_or_404(repo: NutritionRepository, user_id: int, meal_id: int) -> models.MealLog:
    meal = repo.get_meal(user_id, meal_id)
    if not meal:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Meal not found")
    return meal


@router.post("", response_model=schemas.MealMutation, status_code=status.HTTP_201_CREATED)
def log_meal(
    meal: schemas.MealCreate,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    """Log a meal timestamped now and return today's totals."""
    db_meal = repo.create_meal(current_user.id, meal, when=analytics.now())
    day = as_utc(db_meal.date).date()
    return schemas.MealMutation(
        meal=schemas.Meal.model_validate(db_meal),
        summary=_summary(current_user.id, day, repo, analytics),
    )


@router.get("", response_model=schemas.DailyMeals)
def list_meals(
    date_str: Optional[str] = Query(None, alias="date", description="YYYY-MM-DD, defaults to today"),
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    day = _parse_day(date_str, analytics)
    meals = analytics.fetch_meals(current_user.id, *day_bounds(day))
    return schemas.DailyMeals(
        meals=[schemas.Meal.model_validate(m) for m in meals],
        summary=_summary(current_user.id, day, repo, analytics),
    )


@router.get("/stats", response_model=schemas.PeriodStats)
def period_stats(
    start_date: date,
    end_date: date,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    """Daily breakdown, averages, compliance and streak over an inclusive date range."""
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be before start_date",
        )
    targets = resolve_targets(repo.get_health_profile(current_user.id))
    return analytics.period_stats(current_user.id, start_date, end_date, targets)


@router.put("/{meal_id}", response_model=schemas.MealMutation)
def update_meal(
    meal_id: int,
    changes: schemas.MealUpdate,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    db_meal = _get_meal_or_404(repo, current_user.id, meal_id)
    db_meal = repo.update_meal(db_meal, changes)
    day = as_utc(db_meal.date).date()
    return schemas.MealMutation(
        meal=schemas.Meal.model_validate(db_meal),
        summary=_summary(current_user.id, day, repo, analytics),
    )


@router.delete("/{meal_id}", response_model=schemas.MealMutation)
def delete_meal(
    meal_id: int,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
    analytics: AnalyticsEngine = Depends(get_analytics),
):
    db_meal = _get_meal_or_404(repo, current_user.id, meal_id)
    day = as_utc(db_meal.date).date()
    repo.delete_meal(db_meal)
    return schemas.MealMutation(summary=_summary(current_user.id, day, repo, analytics))
