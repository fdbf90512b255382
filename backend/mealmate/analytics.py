"""
Nutrition analytics: daily totals, period statistics, compliance, streaks and
report synthesis over a user's meal logs.
"""
from __future__ import annotations
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from datetime import date, datetime, time, timedelta, timezone
import logging

from . import models
from .health_metrics import targets_from_profile
from .models import as_utc
from .repository import NutritionRepository
from .schemas import (
    DEFAULT_TARGETS,
    DailyDataPoint,
    DailyTargets,
    DailyTotals,
    GoalProgress,
    HealthGoal,
    HealthProfile,
    MacroTotals,
    PeriodAverages,
    PeriodStats,
    PeriodTotals,
    ReportPeriod,
    ReportStatus,
)

logger = logging.getLogger(__name__)

ON_TARGET_TOLERANCE = 0.10
GOAL_COMPLIANCE_THRESHOLD = 80.0
GOAL_LOGGING_RATIO = 0.70

# Rolling window lengths in days, ending today
PERIOD_DAYS: Dict[ReportPeriod, int] = {
    ReportPeriod.DAILY: 1,
    ReportPeriod.WEEKLY: 7,
    ReportPeriod.MONTHLY: 30,
    ReportPeriod.YEARLY: 365,
}

# Placeholder weight projection per goal; does not track real progress
WEIGHT_TARGET_FACTORS: Dict[HealthGoal, float] = {
    HealthGoal.LOSE_WEIGHT: 0.90,
    HealthGoal.GAIN_WEIGHT: 1.10,
    HealthGoal.BUILD_MUSCLE: 1.05,
    HealthGoal.MAINTAIN_WEIGHT: 1.00,
}


# ---------- pure helpers ----------

def coerce_period(value: Any) -> ReportPeriod:
    """Map a period token to ReportPeriod; anything unrecognised is weekly."""
    if isinstance(value, ReportPeriod):
        return value
    try:
        return ReportPeriod(str(value).strip().lower())
    except ValueError:
        return ReportPeriod.WEEKLY


def rolling_window(period: ReportPeriod, today: date) -> Tuple[date, date]:
    return today - timedelta(days=PERIOD_DAYS[period] - 1), today


def day_bounds(start_day: date, end_day: Optional[date] = None) -> Tuple[datetime, datetime]:
    """UTC instants covering ``[start_day 00:00, (end_day + 1) 00:00)``."""
    end_day = end_day or start_day
    start = datetime.combine(start_day, time.min, tzinfo=timezone.utc)
    end = datetime.combine(end_day + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end


def resolve_targets(profile: Optional[HealthProfile]) -> DailyTargets:
    if profile is None:
        return DEFAULT_TARGETS
    return targets_from_profile(profile)


def compliance_percent(value: float, target: float, cap: bool = True) -> float:
    if target <= 0:
        return 0.0
    pct = value / target * 100.0
    return min(pct, 100.0) if cap else pct


def is_on_target(day_calories: float, target_calories: float) -> bool:
    if target_calories <= 0:
        return False
    return abs(day_calories - target_calories) / target_calories <= ON_TARGET_TOLERANCE


def longest_streak(dates: Iterable[date]) -> int:
    """Longest run of consecutive calendar days among ``dates``."""
    longest = 0
    current = 0
    last: Optional[date] = None
    for d in sorted(set(dates)):
        if last is not None and (d - last).days == 1:
            current += 1
        else:
            current = 1
        longest = max(longest, current)
        last = d
    return longest


def pick_best_day(points: List[DailyDataPoint], targets: DailyTargets) -> Tuple[Optional[date], Optional[float]]:
    """Logged day with the highest mean of capped macro compliance; earliest wins ties."""
    best_date: Optional[date] = None
    best_score = 0.0
    for p in sorted(points, key=lambda x: x.date):
        if p.meal_count == 0:
            continue
        score = (
            compliance_percent(p.calories, targets.calories)
            + compliance_percent(p.protein_g, targets.protein_g)
            + compliance_percent(p.carbs_g, targets.carbs_g)
            + compliance_percent(p.fat_g, targets.fat_g)
        ) / 4.0
        if score > best_score:
            best_score = score
            best_date = p.date
    if best_date is None:
        return None, None
    return best_date, best_score


def is_goal_achieved(progress: GoalProgress, days_logged: int, total_days: int) -> bool:
    """Heuristic: good average compliance and logging on most days of the period."""
    if total_days <= 0:
        return False
    return (
        progress.average >= GOAL_COMPLIANCE_THRESHOLD
        and days_logged / total_days >= GOAL_LOGGING_RATIO
    )


def project_weight(profile: Optional[HealthProfile]) -> Dict[str, Any]:
    """Placeholder weight projection; weight_change is always 0."""
    if profile is None:
        return {
            "starting_weight": None,
            "ending_weight": None,
            "weight_change": None,
            "target_weight": None,
            "weight_goal_achieved": None,
        }
    return {
        "starting_weight": profile.weight_kg,
        "ending_weight": profile.weight_kg,
        "weight_change": 0.0,
        "target_weight": profile.weight_kg * WEIGHT_TARGET_FACTORS[profile.goal],
        "weight_goal_achieved": False,
    }


def _sum_meals(meals: Iterable[models.MealLog]) -> MacroTotals:
    totals = MacroTotals()
    for m in meals:
        totals.calories += m.calories or 0.0
        totals.protein_g += m.protein_g or 0.0
        totals.carbs_g += m.carbs_g or 0.0
        totals.fat_g += m.fat_g or 0.0
    return totals


# ---------- engine ----------

class AnalyticsEngine:
    def __init__(self, repo: NutritionRepository, clock: Optional[Callable[[], datetime]] = None):
        self.repo = repo
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return as_utc(self._clock())

    def today(self) -> date:
        return self.now().date()

    def fetch_meals(self, user_id: int, start: datetime, end: datetime) -> List[models.MealLog]:
        """Meals in ``[start, end)``.

        Falls back to a full scan filtered in memory when the range query comes
        back empty but the user does have meals, so a storage/query timestamp
        mismatch can never silently zero out a period.
        """
        meals = self.repo.meals_between(user_id, start, end)
        if meals:
            return meals
        everything = self.repo.all_meals(user_id)
        if not everything:
            return []
        filtered = [m for m in everything if start <= as_utc(m.date) < end]
        if filtered:
            logger.warning(
                f"Range query returned no meals for user {user_id} in "
                f"[{start.isoformat()}, {end.isoformat()}); manual filter found {len(filtered)}"
            )
        return filtered

    def daily_totals(self, user_id: int, targets: DailyTargets, day: Optional[date] = None) -> DailyTotals:
        day = day or self.today()
        start, end = day_bounds(day)
        meals = self.fetch_meals(user_id, start, end)
        totals = _sum_meals(meals)
        return DailyTotals(
            date=day,
            meal_count=len(meals),
            totals=totals,
            targets=targets,
            remaining=MacroTotals(
                calories=targets.calories - totals.calories,
                protein_g=targets.protein_g - totals.protein_g,
                carbs_g=targets.carbs_g - totals.carbs_g,
                fat_g=targets.fat_g - totals.fat_g,
            ),
        )

    def period_stats(self, user_id: int, start_date: date, end_date: date, targets: DailyTargets) -> PeriodStats:
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")
        start, end = day_bounds(start_date, end_date)
        meals = self.fetch_meals(user_id, start, end)

        total_days = (end_date - start_date).days + 1
        points: Dict[date, DailyDataPoint] = {
            start_date + timedelta(days=i): DailyDataPoint(date=start_date + timedelta(days=i))
            for i in range(total_days)
        }
        for m in meals:
            p = points.get(as_utc(m.date).date())
            if p is None:
                continue
            p.calories += m.calories or 0.0
            p.protein_g += m.protein_g or 0.0
            p.carbs_g += m.carbs_g or 0.0
            p.fat_g += m.fat_g or 0.0
            p.meal_count += 1

        daily_data = [points[d] for d in sorted(points)]
        logged = [p for p in daily_data if p.meal_count > 0]
        days_logged = len(logged)

        totals = PeriodTotals(
            total_calories=sum(p.calories for p in daily_data),
            total_protein_g=sum(p.protein_g for p in daily_data),
            total_carbs_g=sum(p.carbs_g for p in daily_data),
            total_fat_g=sum(p.fat_g for p in daily_data),
            total_meals=sum(p.meal_count for p in daily_data),
        )
        if days_logged:
            averages = PeriodAverages(
                avg_calories=totals.total_calories / days_logged,
                avg_protein_g=totals.total_protein_g / days_logged,
                avg_carbs_g=totals.total_carbs_g / days_logged,
                avg_fat_g=totals.total_fat_g / days_logged,
            )
        else:
            averages = PeriodAverages()

        progress = GoalProgress(
            calories_compliance_percent=compliance_percent(averages.avg_calories, targets.calories, cap=False),
            protein_compliance_percent=compliance_percent(averages.avg_protein_g, targets.protein_g),
            carbs_compliance_percent=compliance_percent(averages.avg_carbs_g, targets.carbs_g),
            fat_compliance_percent=compliance_percent(averages.avg_fat_g, targets.fat_g),
            days_on_target=sum(1 for p in logged if is_on_target(p.calories, targets.calories)),
        )
        best_date, best_score = pick_best_day(daily_data, targets)

        return PeriodStats(
            start_date=start_date,
            end_date=end_date,
            total_days=total_days,
            days_logged=days_logged,
            daily_data=daily_data,
            totals=totals,
            averages=averages,
            targets=targets,
            progress=progress,
            streak_days=longest_streak(p.date for p in logged),
            best_day_date=best_date,
            best_day_compliance=best_score,
        )

    def build_report(
        self,
        user_id: int,
        report_type: ReportPeriod,
        start_date: date,
        end_date: date,
        profile: Optional[HealthProfile],
    ) -> models.MealReport:
        """Compute and persist a report in ``generated`` status."""
        targets = resolve_targets(profile)
        stats = self.period_stats(user_id, start_date, end_date, targets)
        goal_type = profile.goal.value if profile else HealthGoal.MAINTAIN_WEIGHT.value

        fields: Dict[str, Any] = {
            "report_type": report_type.value,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "generated_at": self.now().replace(tzinfo=None),
            "status": ReportStatus.GENERATED.value,
            "total_days": stats.total_days,
            "days_logged": stats.days_logged,
            "total_meals": stats.totals.total_meals,
            "avg_calories": stats.averages.avg_calories,
            "avg_protein_g": stats.averages.avg_protein_g,
            "avg_carbs_g": stats.averages.avg_carbs_g,
            "avg_fat_g": stats.averages.avg_fat_g,
            "goal_type": goal_type,
            "goal_achieved": is_goal_achieved(stats.progress, stats.days_logged, stats.total_days),
            "calories_compliance_percent": stats.progress.calories_compliance_percent,
            "protein_compliance_percent": stats.progress.protein_compliance_percent,
            "carbs_compliance_percent": stats.progress.carbs_compliance_percent,
            "fat_compliance_percent": stats.progress.fat_compliance_percent,
            "days_on_target": stats.progress.days_on_target,
            "best_day_date": stats.best_day_date.isoformat() if stats.best_day_date else None,
            "best_day_compliance": stats.best_day_compliance,
            "streak_days": stats.streak_days,
            "notes": None,
        }
        fields.update(project_weight(profile))

        report = self.repo.create_report(user_id, fields)
        logger.info(
            f"Generated {report_type.value} report {report.id} for user {user_id} "
            f"({fields['start_date']}..{fields['end_date']}, {stats.days_logged}/{stats.total_days} days logged)"
        )
        return report
