# tests/conftest.py
"""
Pytest configuration and fixtures for MealMate tests.
Provides an in-memory database, users, a fixed clock and a mocked model client.
"""
import os

# Settings are read at import time; configure before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("FRONTEND_URL", "http://localhost:3000")

import pytest
from datetime import datetime, timezone
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from mealmate import models
from mealmate.analytics import AnalyticsEngine
from mealmate.database import Base
from mealmate.llm.client import ModelClient
from mealmate.llm.tools import ToolRegistry
from mealmate.profiles import submit_health_profile
from mealmate.repository import NutritionRepository
from mealmate.schemas import ActivityLevel, Gender, HealthGoal, HealthProfileRequest, MealCreate, MealType

FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


# ===== DATABASE FIXTURES =====

@pytest.fixture(scope="function")
def test_db():
    """
    Provide a clean test database for each test
    Uses in-memory SQLite for speed
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def repo(test_db: Session):
    return NutritionRepository(test_db)


@pytest.fixture
def analytics(repo):
    """Analytics engine pinned to FIXED_NOW (2024-03-15 12:00 UTC)."""
    return AnalyticsEngine(repo, clock=lambda: FIXED_NOW)


# ===== USER FIXTURES =====

@pytest.fixture
def test_user(test_db: Session):
    """Create a basic test user without a health profile"""
    user = models.User(username="alice", name="Alice", email="alice@example.com")
    test_db.add(user)
    test_db.commit()
    test_db.refresh(user)
    return user


@pytest.fixture
def other_user(test_db: Session):
    user = models.User(username="bob", name="Bob", email="bob@example.com")
    test_db.add(user)
    test_db.commit()
    test_db.refresh(user)
    return user


@pytest.fixture
def profile_request():
    """Male, 30y, 70kg, 175cm, moderately active, losing weight"""
    return HealthProfileRequest(
        age=30,
        gender=Gender.MALE,
        height_cm=175,
        weight_kg=70,
        activity_level=ActivityLevel.MODERATELY_ACTIVE,
        goal=HealthGoal.LOSE_WEIGHT,
        allergies=["peanuts"],
    )


@pytest.fixture
def user_with_profile(repo, test_user, profile_request):
    """Test user who has completed the health survey (no model available)"""
    submit_health_profile(repo, test_user, profile_request, client=None)
    return test_user


# ===== MEAL FIXTURES =====

@pytest.fixture
def add_meal(repo):
    """Factory: add_meal(user, when, calories, protein, carbs, fat)"""
    def _add(user, when, calories, protein_g=0.0, carbs_g=0.0, fat_g=0.0, meal_type=MealType.LUNCH, food_name="Test meal"):
        return repo.create_meal(
            user.id,
            MealCreate(
                meal_type=meal_type,
                food_name=food_name,
                calories=calories,
                protein_g=protein_g,
                carbs_g=carbs_g,
                fat_g=fat_g,
            ),
            when=when,
        )
    return _add


# ===== AGENT FIXTURES =====

@pytest.fixture
def model_client():
    """Mocked model client; set complete.side_effect / return_value per test"""
    client = Mock(spec=ModelClient)
    client.analyze_food_image.return_value = '{"food_name": "Cheeseburger", "calories": "550"}'
    client.generate_chat_title.return_value = "Lunch Tracking Help"
    return client


@pytest.fixture
def report_sender():
    return Mock()


@pytest.fixture
def registry(repo, analytics, report_sender):
    return ToolRegistry(repo, analytics, report_sender=report_sender)
