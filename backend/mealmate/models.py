"""
SQLAlchemy models for the MealMate database tables.

Timestamps are stored as naive UTC; use ``as_utc`` when reading them back.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, Text, JSON
from sqlalchemy.orm import relationship
from .database import Base


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention for every column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_storage(dt: datetime) -> datetime:
    """Normalize any datetime to naive UTC before it touches the database."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class User(Base):
    """User model matching the 'users' table."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    email = Column(String(100))  # optional
    has_completed_health_survey = Column(Boolean, default=False, nullable=False)
    health_profile = Column(JSON)  # overwritten wholesale on each survey submission
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    meals = relationship("MealLog", back_populates="user", cascade="all, delete-orphan")
    reports = relationship("MealReport", back_populates="user", cascade="all, delete-orphan")
    chat_sessions = relationship("ChatSession", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"


class MealLog(Base):
    """A single logged meal."""
    __tablename__ = "meal_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(DateTime, nullable=False, index=True)
    meal_type = Column(String(20), nullable=False)  # breakfast, lunch, dinner, snack
    food_name = Column(String(200), nullable=False)
    calories = Column(Float, nullable=False)
    protein_g = Column(Float, nullable=False, default=0.0)
    carbs_g = Column(Float, nullable=False, default=0.0)
    fat_g = Column(Float, nullable=False, default=0.0)
    serving_size = Column(String(100))
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="meals")

    def __repr__(self):
        return f"<MealLog(id={self.id}, user_id={self.user_id}, food={self.food_name})>"


class MealReport(Base):
    """Aggregated nutrition report over a calendar period."""
    __tablename__ = "meal_reports"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    report_type = Column(String(20), nullable=False)  # daily, weekly, monthly, yearly
    start_date = Column(String(10), nullable=False)  # YYYY-MM-DD
    end_date = Column(String(10), nullable=False)
    generated_at = Column(DateTime, default=utcnow)
    status = Column(String(20), nullable=False, default="generated")  # generated, sent, failed

    total_days = Column(Integer, nullable=False, default=0)
    days_logged = Column(Integer, nullable=False, default=0)
    total_meals = Column(Integer, nullable=False, default=0)

    avg_calories = Column(Float, nullable=False, default=0.0)
    avg_protein_g = Column(Float, nullable=False, default=0.0)
    avg_carbs_g = Column(Float, nullable=False, default=0.0)
    avg_fat_g = Column(Float, nullable=False, default=0.0)

    goal_type = Column(String(30))
    goal_achieved = Column(Boolean, nullable=False, default=False)
    calories_compliance_percent = Column(Float, nullable=False, default=0.0)
    protein_compliance_percent = Column(Float, nullable=False, default=0.0)
    carbs_compliance_percent = Column(Float, nullable=False, default=0.0)
    fat_compliance_percent = Column(Float, nullable=False, default=0.0)
    days_on_target = Column(Integer, nullable=False, default=0)

    starting_weight = Column(Float)
    ending_weight = Column(Float)
    weight_change = Column(Float)
    target_weight = Column(Float)
    weight_goal_achieved = Column(Boolean)

    best_day_date = Column(String(10))
    best_day_compliance = Column(Float)
    streak_days = Column(Integer, nullable=False, default=0)
    notes = Column(Text)

    user = relationship("User", back_populates="reports")

    def __repr__(self):
        return f"<MealReport(id={self.id}, user_id={self.user_id}, type={self.report_type})>"


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(100), nullable=False, default="New Chat")
    message_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="chat_sessions")
    messages = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.id",
    )


class ChatMessage(Base):
    """One conversation turn; append-only."""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # user, assistant, system
    content = Column(Text, nullable=False)
    image_url = Column(Text)
    tool_calls = Column(JSON)
    tool_results = Column(JSON)
    timestamp = Column(DateTime, default=utcnow)

    session = relationship("ChatSession", back_populates="messages")
