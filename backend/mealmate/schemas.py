"""
Pydantic schemas for request/response validation and the agent's value types.
"""
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Any, Dict, List, Optional
from datetime import date, datetime


# ============ Enums ============

class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class ActivityLevel(str, Enum):
    SEDENTARY = "sedentary"
    LIGHTLY_ACTIVE = "lightly_active"
    MODERATELY_ACTIVE = "moderately_active"
    VERY_ACTIVE = "very_active"
    EXTRA_ACTIVE = "extra_active"


class HealthGoal(str, Enum):
    LOSE_WEIGHT = "lose_weight"
    MAINTAIN_WEIGHT = "maintain_weight"
    GAIN_WEIGHT = "gain_weight"
    BUILD_MUSCLE = "build_muscle"


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class ReportPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ReportStatus(str, Enum):
    GENERATED = "generated"
    SENT = "sent"
    FAILED = "failed"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# ============ Health Profile Schemas ============

class DailyTargets(BaseModel):
    """Daily calorie and macro targets."""
    calories: float
    protein_g: float
    carbs_g: float
    fat_g: float


# Used whenever a user has no health profile yet
DEFAULT_TARGETS = DailyTargets(calories=2000.0, protein_g=150.0, carbs_g=250.0, fat_g=67.0)


class HealthProfileRequest(BaseModel):
    """Schema for a health survey submission."""
    age: int = Field(..., ge=1, le=120)
    gender: Gender
    height_cm: float = Field(..., gt=0, le=300)
    weight_kg: float = Field(..., gt=0, le=500)
    activity_level: ActivityLevel
    goal: HealthGoal
    medical_conditions: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    dietary_preferences: Optional[List[str]] = None
    blood_pressure: Optional[str] = None
    fasting_blood_sugar: Optional[float] = Field(None, ge=0)


class HealthProfile(HealthProfileRequest):
    """Stored health profile: survey answers plus derived targets."""
    bmi: float
    bmi_category: str
    bmr: float
    tdee: float
    daily_calories: float
    daily_protein_g: float
    daily_carbs_g: float
    daily_fat_g: float
    ai_recommendations: Optional[str] = None
    recommended_foods: List[str] = []
    foods_to_avoid: List[str] = []
    created_at: datetime
    updated_at: datetime


class UserContext(BaseModel):
    """Per-request view of the user handed to the agent. Never persisted."""
    user_id: int
    name: str
    username: str
    health_profile: Optional[HealthProfile] = None
    daily_targets: Optional[DailyTargets] = None
    has_completed_health_survey: bool = False


# ============ Meal Schemas ============

class MealBase(BaseModel):
    meal_type: MealType
    food_name: str = Field(..., min_length=1, max_length=200)
    calories: float = Field(..., gt=0)
    protein_g: float = Field(0.0, ge=0)
    carbs_g: float = Field(0.0, ge=0)
    fat_g: float = Field(0.0, ge=0)
    serving_size: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class MealCreate(MealBase):
    """Schema for logging a meal."""
    pass


class MealUpdate(BaseModel):
    """Schema for updating a meal (all fields optional)."""
    meal_type: Optional[MealType] = None
    food_name: Optional[str] = Field(None, min_length=1, max_length=200)
    calories: Optional[float] = Field(None, gt=0)
    protein_g: Optional[float] = Field(None, ge=0)
    carbs_g: Optional[float] = Field(None, ge=0)
    fat_g: Optional[float] = Field(None, ge=0)
    serving_size: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @field_validator("meal_type", "food_name", "calories", "protein_g", "carbs_g", "fat_g", mode="before")
    @classmethod
    def reject_null(cls, v):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if v is None:
            raise ValueError("field cannot be null")
        return v


class Meal(MealBase):
    """Schema for meal response."""
    id: int
    user_id: int
    date: datetime

    model_config = ConfigDict(from_attributes=True)


# ============ Analytics Schemas ============

class MacroTotals(BaseModel):
    calories: float = 0.0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fat_g: float = 0.0


class DailyTotals(BaseModel):
    """One calendar day's consumption against targets."""
    date: date
    meal_count: int
    totals: MacroTotals
    targets: DailyTargets
    remaining: MacroTotals  # may be negative


class DailyDataPoint(BaseModel):
    date: date
    calories: float = 0.0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fat_g: float = 0.0
    meal_count: int = 0


class PeriodTotals(BaseModel):
    total_calories: float = 0.0
    total_protein_g: float = 0.0
    total_carbs_g: float = 0.0
    total_fat_g: float = 0.0
    total_meals: int = 0


class PeriodAverages(BaseModel):
    """Per-logged-day averages; all zero when nothing was logged."""
    avg_calories: float = 0.0
    avg_protein_g: float = 0.0
    avg_carbs_g: float = 0.0
    avg_fat_g: float = 0.0


class GoalProgress(BaseModel):
    """Compliance percentages. Calories are uncapped; macros are capped at 100."""
    calories_compliance_percent: float = 0.0
    protein_compliance_percent: float = 0.0
    carbs_compliance_percent: float = 0.0
    fat_compliance_percent: float = 0.0
    days_on_target: int = 0

    @property
    def average(self) -> float:
        return (
            self.calories_compliance_percent
            + self.protein_compliance_percent
            + self.carbs_compliance_percent
            + self.fat_compliance_percent
        ) / 4.0


class PeriodStats(BaseModel):
    start_date: date
    end_date: date
    total_days: int
    days_logged: int
    daily_data: List[DailyDataPoint]
    totals: PeriodTotals
    averages: PeriodAverages
    targets: DailyTargets
    progress: GoalProgress
    streak_days: int = 0
    best_day_date: Optional[date] = None
    best_day_compliance: Optional[float] = None


class DailyMeals(BaseModel):
    """A day's meals together with their totals."""
    meals: List[Meal]
    summary: DailyTotals


class MealMutation(BaseModel):
    """Result of a meal create/update/delete: the meal and its day's totals."""
    meal: Optional[Meal] = None
    summary: DailyTotals


# ============ Report Schemas ============

class ReportGenerateRequest(BaseModel):
    report_type: ReportPeriod = ReportPeriod.WEEKLY
    start_date: date
    end_date: date
    send_email: bool = False


class MealReport(BaseModel):
    """Schema for report response."""
    id: int
    user_id: int
    report_type: ReportPeriod
    start_date: str
    end_date: str
    generated_at: datetime
    status: ReportStatus
    total_days: int
    days_logged: int
    total_meals: int
    avg_calories: float
    avg_protein_g: float
    avg_carbs_g: float
    avg_fat_g: float
    goal_type: Optional[str] = None
    goal_achieved: bool
    calories_compliance_percent: float
    protein_compliance_percent: float
    carbs_compliance_percent: float
    fat_compliance_percent: float
    days_on_target: int
    starting_weight: Optional[float] = None
    ending_weight: Optional[float] = None
    weight_change: Optional[float] = None
    target_weight: Optional[float] = None
    weight_goal_achieved: Optional[bool] = None
    best_day_date: Optional[str] = None
    best_day_compliance: Optional[float] = None
    streak_days: int
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============ Agent / Chat Schemas ============

class ToolCall(BaseModel):
    """A tool invocation requested by the model; parameters are untrusted."""
    tool_name: str
    parameters: Dict[str, Any] = {}


class ToolResult(BaseModel):
    tool_name: str
    result: Any
    success: bool


class ChatSessionCreate(BaseModel):
    initial_message: Optional[str] = None


class ChatSession(BaseModel):
    id: int
    user_id: int
    title: str
    message_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatMessage(BaseModel):
    id: int
    session_id: int
    role: ChatRole
    content: str
    image_url: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_results: Optional[List[ToolResult]] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1)
    image_base64: Optional[str] = None
    image_mime_type: Optional[str] = None


class SendMessageResponse(BaseModel):
    user_message: ChatMessage
    assistant_message: ChatMessage


# ---------- food analysis ----------

class FoodAnalysisResponse(BaseModel):
    success: bool
    analysis: str
    is_valid_food: bool = True
    error_type: Optional[str] = None
    message: Optional[str] = None
    timestamp: datetime


class QuickCheckResponse(BaseModel):
    success: bool
    quick_check: str
    timestamp: datetime


class FoodTextRequest(BaseModel):
    food_description: str


class FoodTextEstimate(BaseModel):
    """Nutrition estimate for a described food, shaped for logging as a meal."""
    food_name: str
    calories: float = Field(..., ge=0)
    protein_g: float = Field(0.0, ge=0)
    carbs_g: float = Field(0.0, ge=0)
    fat_g: float = Field(0.0, ge=0)
    serving_size: Optional[str] = None
