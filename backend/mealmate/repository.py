"""
Owner-scoped data access for meals, reports, profiles and chat history.

Every query filters by ``user_id``. Datetimes going in are normalized to
naive UTC; datetimes coming out are attached to UTC.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from sqlalchemy import desc
from sqlalchemy.orm import Session

from . import models, schemas
from .models import to_storage, utcnow

logger = logging.getLogger(__name__)


class NutritionRepository:
    def __init__(self, db: Session):
        self.db = db

    # ---------- users / profiles ----------

    def get_user(self, user_id: int) -> Optional[models.User]:
        return self.db.query(models.User).filter(models.User.id == user_id).first()

    def get_health_profile(self, user_id: int) -> Optional[schemas.HealthProfile]:
        user = self.get_user(user_id)
        if not user or not user.health_profile:
            return None
        return schemas.HealthProfile.model_validate(user.health_profile)

    def save_health_profile(self, user: models.User, profile: schemas.HealthProfile) -> models.User:
        user.health_profile = profile.model_dump(mode="json")
        user.has_completed_health_survey = True
        user.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user

    # ---------- meals ----------

    def create_meal(self, user_id: int, meal: schemas.MealCreate, when: Optional[datetime] = None) -> models.MealLog:
        db_meal = models.MealLog(
            user_id=user_id,
            date=to_storage(when) if when else utcnow(),
            meal_type=meal.meal_type.value,
            food_name=meal.food_name,
            calories=meal.calories,
            protein_g=meal.protein_g,
            carbs_g=meal.carbs_g,
            fat_g=meal.fat_g,
            serving_size=meal.serving_size,
            notes=meal.notes,
        )
        self.db.add(db_meal)
        self.db.commit()
        self.db.refresh(db_meal)
        return db_meal

    def get_meal(self, user_id: int, meal_id: int) -> Optional[models.MealLog]:
        return self.db.query(models.MealLog).filter(
            models.MealLog.id == meal_id,
            models.MealLog.user_id == user_id,
        ).first()

    def update_meal(self, db_meal: models.MealLog, changes: schemas.MealUpdate) -> models.MealLog:
        for field, value in changes.model_dump(exclude_unset=True).items():
            if field == "meal_type" and value is not None:
                value = schemas.MealType(value).value
            setattr(db_meal, field, value)
        db_meal.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(db_meal)
        return db_meal

    def delete_meal(self, db_meal: models.MealLog) -> None:
        self.db.delete(db_meal)
        self.db.commit()

    def meals_between(self, user_id: int, start: datetime, end: datetime) -> List[models.MealLog]:
        """Meals with ``start <= date < end``."""
        return (
            self.db.query(models.MealLog)
            .filter(
                models.MealLog.user_id == user_id,
                models.MealLog.date >= to_storage(start),
                models.MealLog.date < to_storage(end),
            )
            .order_by(models.MealLog.date.asc(), models.MealLog.id.asc())
            .all()
        )

    def all_meals(self, user_id: int) -> List[models.MealLog]:
        return (
            self.db.query(models.MealLog)
            .filter(models.MealLog.user_id == user_id)
            .order_by(models.MealLog.date.asc(), models.MealLog.id.asc())
            .all()
        )

    # ---------- reports ----------

    def create_report(self, user_id: int, fields: Dict[str, Any]) -> models.MealReport:
        report = models.MealReport(user_id=user_id, **fields)
        self.db.add(report)
        self.db.commit()
        self.db.refresh(report)
        return report

    def get_report(self, user_id: int, report_id: int) -> Optional[models.MealReport]:
        return self.db.query(models.MealReport).filter(
            models.MealReport.id == report_id,
            models.MealReport.user_id == user_id,
        ).first()

    def list_reports(self, user_id: int, limit: int = 50) -> List[models.MealReport]:
        return (
            self.db.query(models.MealReport)
            .filter(models.MealReport.user_id == user_id)
            .order_by(desc(models.MealReport.generated_at), desc(models.MealReport.id))
            .limit(limit)
            .all()
        )

    def set_report_status(self, report: models.MealReport, status: schemas.ReportStatus) -> models.MealReport:
        """Move a report out of ``generated``; finished reports never change again."""
        if report.status != schemas.ReportStatus.GENERATED.value:
            raise ValueError(f"Report {report.id} is already {report.status}")
        report.status = status.value
        self.db.commit()
        self.db.refresh(report)
        return report

    def delete_report(self, report: models.MealReport) -> None:
        self.db.delete(report)
        self.db.commit()

    # ---------- chat ----------

    def create_session(self, user_id: int, title: str = "New Chat") -> models.ChatSession:
        now = utcnow()
        session = models.ChatSession(user_id=user_id, title=title, message_count=0, created_at=now, updated_at=now)
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        return session

    def get_session(self, user_id: int, session_id: int) -> Optional[models.ChatSession]:
        return self.db.query(models.ChatSession).filter(
            models.ChatSession.id == session_id,
            models.ChatSession.user_id == user_id,
        ).first()

    def list_sessions(self, user_id: int) -> List[models.ChatSession]:
        return (
            self.db.query(models.ChatSession)
            .filter(models.ChatSession.user_id == user_id)
            .order_by(desc(models.ChatSession.updated_at), desc(models.ChatSession.id))
            .all()
        )

    def delete_session(self, session: models.ChatSession) -> None:
        self.db.delete(session)
        self.db.commit()

    def list_messages(self, user_id: int, session_id: int) -> List[models.ChatMessage]:
        return (
            self.db.query(models.ChatMessage)
            .filter(
                models.ChatMessage.session_id == session_id,
                models.ChatMessage.user_id == user_id,
            )
            .order_by(models.ChatMessage.timestamp.asc(), models.ChatMessage.id.asc())
            .all()
        )

    def append_turns(
        self,
        session: models.ChatSession,
        turns: List[models.ChatMessage],
        title: Optional[str] = None,
    ) -> List[models.ChatMessage]:
        """Persist a user/assistant exchange and bump the session counters together."""
        for turn in turns:
            turn.session_id = session.id
            turn.user_id = session.user_id
            self.db.add(turn)
        session.message_count = (session.message_count or 0) + len(turns)
        session.updated_at = utcnow()
        if title:
            session.title = title
        self.db.commit()
        for turn in turns:
            self.db.refresh(turn)
        return turns
