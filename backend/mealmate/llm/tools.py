"""
Agent tools: typed parameter models, request parsing and the dispatching registry.

Model output is untrusted text, so every parameter is coerced at this boundary
(numbers may arrive as strings) and validated into a pydantic model before a
handler sees it.
"""
from __future__ import annotations
from typing import Any, Callable, Dict, Optional, Tuple
from datetime import date
from enum import Enum
import logging
import math
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError

from .. import models
from ..analytics import (
    AnalyticsEngine,
    coerce_period,
    compliance_percent,
    day_bounds,
    resolve_targets,
    rolling_window,
)
from ..config import settings
from ..email_utils import send_report_email
from ..errors import EmailDispatchError, ToolError
from ..repository import NutritionRepository
from ..schemas import MealCreate, MealType, ReportPeriod, ReportStatus, ToolCall, ToolResult

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    LOG_MEAL = "LOG_MEAL"
    GET_MEAL_LOGS = "GET_MEAL_LOGS"
    GET_NUTRITION_STATS = "GET_NUTRITION_STATS"
    GET_HEALTH_PROFILE = "GET_HEALTH_PROFILE"
    GENERATE_REPORT = "GENERATE_REPORT"
    CHECK_GOAL_PROGRESS = "CHECK_GOAL_PROGRESS"


TOOL_ALIASES: Dict[str, ToolName] = {
    "GET_DAILY_STATS": ToolName.GET_NUTRITION_STATS,
}

_TRUE_TOKENS = {"true", "yes", "1"}
_FALSE_TOKENS = {"false", "no", "0", ""}


def safe_float(val: Any) -> Optional[float]:
    """Number, integer or numeric string to float; anything else is None."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        out = float(val)
    elif isinstance(val, str):
        try:
            out = float(val.strip())
        except ValueError:
            return None
    else:
        return None
    return out if math.isfinite(out) else None


def parse_bool(val: Any) -> bool:
    if isinstance(val, bool):
        return val
    if isinstance(val, str):
        token = val.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
    return False


ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


def parse_date_str(s: Any) -> Optional[date]:
    if s is None or isinstance(s, date):
        return s
    text = str(s).strip()
    if not text or text.lower() == "today":
        return None
    if not ISO_DATE_RE.fullmatch(text):
        raise ValueError(f"Invalid date '{text}', expected YYYY-MM-DD")
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Invalid date '{text}', expected YYYY-MM-DD")


# ---------- parameter models ----------

class LogMealParams(BaseModel):
    meal_type: MealType
    food_name: str
    calories: float = 0.0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fat_g: float = 0.0
    serving_size: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("meal_type", mode="before")
    @classmethod
    def _meal_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("food_name", mode="before")
    @classmethod
    def _food_name(cls, v: Any) -> Any:
        if v is None or not str(v).strip():
            raise ValueError("food_name is required")
        return str(v).strip()

    @field_validator("calories", "protein_g", "carbs_g", "fat_g", mode="before")
    @classmethod
    def _number(cls, v: Any) -> float:
        return safe_float(v) or 0.0

    @field_validator("serving_size", "notes", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @model_validator(mode="after")
    def _positive_calories(self) -> "LogMealParams":
        if self.calories <= 0:
            raise ValueError("calories must be greater than 0")
        return self


class MealLogsParams(BaseModel):
    day: Optional[date] = Field(None, alias="date")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("day", mode="before")
    @classmethod
    def _day(cls, v: Any) -> Optional[date]:
        return parse_date_str(v)


class NutritionStatsParams(BaseModel):
    period: ReportPeriod = ReportPeriod.WEEKLY

    @field_validator("period", mode="before")
    @classmethod
    def _period(cls, v: Any) -> ReportPeriod:
        return coerce_period(v)


class HealthProfileParams(BaseModel):
    pass


class GenerateReportParams(BaseModel):
    report_type: ReportPeriod = ReportPeriod.WEEKLY
    send_email: bool = False

    @field_validator("report_type", mode="before")
    @classmethod
    def _report_type(cls, v: Any) -> ReportPeriod:
        return coerce_period(v)

    @field_validator("send_email", mode="before")
    @classmethod
    def _send_email(cls, v: Any) -> bool:
        return parse_bool(v)


class GoalProgressParams(BaseModel):
    pass


PARAM_MODELS: Dict[ToolName, type] = {
    ToolName.LOG_MEAL: LogMealParams,
    ToolName.GET_MEAL_LOGS: MealLogsParams,
    ToolName.GET_NUTRITION_STATS: NutritionStatsParams,
    ToolName.GET_HEALTH_PROFILE: HealthProfileParams,
    ToolName.GENERATE_REPORT: GenerateReportParams,
    ToolName.CHECK_GOAL_PROGRESS: GoalProgressParams,
}


def resolve_tool_name(raw: Any) -> ToolName:
    token = str(raw or "").strip().upper()
    if token in TOOL_ALIASES:
        return TOOL_ALIASES[token]
    try:
        return ToolName(token)
    except ValueError:
        raise ToolError(f"Unknown tool: {raw}")


def _validation_message(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        msg = str(e.get("msg", "")).removeprefix("Value error, ")
        loc = ".".join(str(x) for x in e.get("loc", ()))
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def parse_tool_request(call: ToolCall) -> Tuple[ToolName, BaseModel]:
    """Resolve the tool and validate its parameters. Raises ToolError."""
    name = resolve_tool_name(call.tool_name)
    params = call.parameters if isinstance(call.parameters, dict) else {}
    try:
        return name, PARAM_MODELS[name].model_validate(params)
    except ValidationError as e:
        raise ToolError(f"Invalid parameters for {name.value}: {_validation_message(e)}") from e


def _r(value: float) -> float:
    return round(value, 1)


def _macros(calories: float, protein: float, carbs: float, fat: float) -> Dict[str, float]:
    return {"calories": _r(calories), "protein_g": _r(protein), "carbs_g": _r(carbs), "fat_g": _r(fat)}


def report_url(report_id: int) -> str:
    return f"{settings.frontend_url.rstrip('/')}/my/reports/{report_id}"


ReportSender = Callable[[models.User, models.MealReport, str], None]


def deliver_report(
    repo: NutritionRepository,
    user: models.User,
    report: models.MealReport,
    url: str,
    sender: Optional[ReportSender] = None,
) -> bool:
    """Email a generated report; status becomes ``sent`` or ``failed``, never raises on dispatch."""
    sender = sender or send_report_email
    try:
        sender(user, report, url)
    except EmailDispatchError as e:
        logger.error(f"Failed to email report {report.id}: {e}")
        repo.set_report_status(report, ReportStatus.FAILED)
        return False
    repo.set_report_status(report, ReportStatus.SENT)
    return True


class ToolRegistry:
    """Executes tool calls for one user; a failing call never stops the next one."""

    def __init__(
        self,
        repo: NutritionRepository,
        analytics: AnalyticsEngine,
        report_sender: Optional[ReportSender] = None,
    ):
        self.repo = repo
        self.analytics = analytics
        self.report_sender = report_sender
        self._handlers: Dict[ToolName, Callable[[int, Any], Dict[str, Any]]] = {
            ToolName.LOG_MEAL: self._log_meal,
            ToolName.GET_MEAL_LOGS: self._get_meal_logs,
            ToolName.GET_NUTRITION_STATS: self._get_nutrition_stats,
            ToolName.GET_HEALTH_PROFILE: self._get_health_profile,
            ToolName.GENERATE_REPORT: self._generate_report,
            ToolName.CHECK_GOAL_PROGRESS: self._check_goal_progress,
        }
        missing = set(ToolName) - set(self._handlers)
        if missing:
            raise RuntimeError(f"Tools without handlers: {sorted(m.value for m in missing)}")

    def execute(self, user_id: int, call: ToolCall) -> ToolResult:
        try:
            name, params = parse_tool_request(call)
            logger.info(f"Executing tool {name.value} for user {user_id}")
            result = self._handlers[name](user_id, params)
            return ToolResult(tool_name=call.tool_name, result=result, success=True)
        except ToolError as e:
            logger.warning(f"Tool {call.tool_name} rejected: {e}")
            return ToolResult(tool_name=call.tool_name, result={"error": str(e)}, success=False)
        except SQLAlchemyError as e:
            self.repo.db.rollback()
            logger.exception(f"Tool {call.tool_name} failed on storage")
            return ToolResult(tool_name=call.tool_name, result={"error": f"Storage error: {e}"}, success=False)
        except Exception as e:
            logger.exception(f"Tool {call.tool_name} failed")
            return ToolResult(tool_name=call.tool_name, result={"error": str(e)}, success=False)

    def _user(self, user_id: int) -> models.User:
        user = self.repo.get_user(user_id)
        if user is None:
            raise ToolError("User not found")
        return user

    # ---------- handlers ----------

    def _log_meal(self, user_id: int, p: LogMealParams) -> Dict[str, Any]:
        meal = self.repo.create_meal(
            user_id,
            MealCreate(
                meal_type=p.meal_type,
                food_name=p.food_name,
                calories=p.calories,
                protein_g=max(p.protein_g, 0.0),
                carbs_g=max(p.carbs_g, 0.0),
                fat_g=max(p.fat_g, 0.0),
                serving_size=p.serving_size,
                notes=p.notes,
            ),
            when=self.analytics.now(),
        )
        return {"success": True, "meal_id": meal.id, "message": "Meal logged successfully"}

    def _get_meal_logs(self, user_id: int, p: MealLogsParams) -> Dict[str, Any]:
        day = p.day or self.analytics.today()
        meals = self.analytics.fetch_meals(user_id, *day_bounds(day))
        return {
            "success": True,
            "date": day.isoformat(),
            "meals": [
                {
                    "id": m.id,
                    "meal_type": m.meal_type,
                    "food_name": m.food_name,
                    "calories": m.calories,
                    "protein_g": m.protein_g,
                    "carbs_g": m.carbs_g,
                    "fat_g": m.fat_g,
                    "serving_size": m.serving_size,
                    "notes": m.notes,
                    "date": models.as_utc(m.date).isoformat(),
                }
                for m in meals
            ],
            "count": len(meals),
        }

    def _get_nutrition_stats(self, user_id: int, p: NutritionStatsParams) -> Dict[str, Any]:
        targets = resolve_targets(self.repo.get_health_profile(user_id))
        start, end = rolling_window(p.period, self.analytics.today())
        stats = self.analytics.period_stats(user_id, start, end, targets)
        days = stats.total_days
        t = stats.totals
        goal = {
            "calories": targets.calories * days,
            "protein_g": targets.protein_g * days,
            "carbs_g": targets.carbs_g * days,
            "fat_g": targets.fat_g * days,
        }
        return {
            "success": True,
            "period": p.period.value,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "total_days": days,
            "days_logged": stats.days_logged,
            "current": _macros(t.total_calories, t.total_protein_g, t.total_carbs_g, t.total_fat_g),
            "targets": _macros(goal["calories"], goal["protein_g"], goal["carbs_g"], goal["fat_g"]),
            "daily_targets": _macros(targets.calories, targets.protein_g, targets.carbs_g, targets.fat_g),
            "remaining": _macros(
                goal["calories"] - t.total_calories,
                goal["protein_g"] - t.total_protein_g,
                goal["carbs_g"] - t.total_carbs_g,
                goal["fat_g"] - t.total_fat_g,
            ),
            "percentage": {
                "calories": _r(compliance_percent(t.total_calories, goal["calories"], cap=False)),
                "protein": _r(compliance_percent(t.total_protein_g, goal["protein_g"])),
                "carbs": _r(compliance_percent(t.total_carbs_g, goal["carbs_g"])),
                "fat": _r(compliance_percent(t.total_fat_g, goal["fat_g"])),
            },
            "averages": _macros(
                stats.averages.avg_calories,
                stats.averages.avg_protein_g,
                stats.averages.avg_carbs_g,
                stats.averages.avg_fat_g,
            ),
        }

    def _get_health_profile(self, user_id: int, p: HealthProfileParams) -> Dict[str, Any]:
        self._user(user_id)
        profile = self.repo.get_health_profile(user_id)
        if profile is None:
            return {
                "success": False,
                "completed": False,
                "message": "User has not completed health survey yet",
            }
        return {
            "success": True,
            "completed": True,
            "profile": {
                "age": profile.age,
                "gender": profile.gender.value,
                "height_cm": profile.height_cm,
                "weight_kg": profile.weight_kg,
                "activity_level": profile.activity_level.value,
                "goal": profile.goal.value,
                "bmi": _r(profile.bmi),
                "bmi_category": profile.bmi_category,
                "daily_calories": _r(profile.daily_calories),
                "daily_protein_g": _r(profile.daily_protein_g),
                "daily_carbs_g": _r(profile.daily_carbs_g),
                "daily_fat_g": _r(profile.daily_fat_g),
                "dietary_preferences": profile.dietary_preferences,
                "allergies": profile.allergies,
            },
        }

    def _generate_report(self, user_id: int, p: GenerateReportParams) -> Dict[str, Any]:
        user = self._user(user_id)
        profile = self.repo.get_health_profile(user_id)
        start, end = rolling_window(p.report_type, self.analytics.today())
        report = self.analytics.build_report(user_id, p.report_type, start, end, profile)
        url = report_url(report.id)

        email_sent = False
        if p.send_email:
            email_sent = deliver_report(self.repo, user, report, url, self.report_sender)

        avg_compliance = (
            report.calories_compliance_percent
            + report.protein_compliance_percent
            + report.carbs_compliance_percent
            + report.fat_compliance_percent
        ) / 4.0
        label = p.report_type.value
        if email_sent:
            message = f"Your {label} report has been generated and sent to your email!"
        elif p.send_email:
            message = f"Your {label} report has been generated, but the email could not be sent."
        else:
            message = f"Your {label} report has been generated successfully!"
        return {
            "success": True,
            "report_id": report.id,
            "report_url": url,
            "report_type": label,
            "start_date": report.start_date,
            "end_date": report.end_date,
            "days_logged": report.days_logged,
            "total_days": report.total_days,
            "goal_achieved": report.goal_achieved,
            "avg_compliance": f"{avg_compliance:.1f}%",
            "email_sent": email_sent,
            "status": report.status,
            "message": message,
        }

    def _check_goal_progress(self, user_id: int, p: GoalProgressParams) -> Dict[str, Any]:
        stats = self._get_nutrition_stats(user_id, NutritionStatsParams(period=ReportPeriod.DAILY))
        profile = self.repo.get_health_profile(user_id)
        return {
            "success": True,
            "goal": profile.goal.value if profile else "No goal set",
            "daily_progress": stats,
            "message": "Goal progress retrieved successfully",
        }
