"""
Health survey processing and per-request user context.
"""
from __future__ import annotations
from typing import List, Optional
import logging
import re

from . import models
from .errors import ModelUnavailable
from .health_metrics import compute_targets, targets_from_profile
from .llm.client import ModelClient
from .models import utcnow
from .repository import NutritionRepository
from .schemas import HealthProfile, HealthProfileRequest, UserContext

logger = logging.getLogger(__name__)

RECOMMENDATIONS_UNAVAILABLE = "Unable to generate AI recommendations at this time. Please try again later."
MAX_RECOMMENDED_FOODS = 15
MAX_FOODS_TO_AVOID = 10

_LIST_ITEM_SPLIT = re.compile(r"[-•.]")


def build_user_context(user: models.User, profile: Optional[HealthProfile] = None) -> UserContext:
    if profile is None and user.health_profile:
        profile = HealthProfile.model_validate(user.health_profile)
    return UserContext(
        user_id=user.id,
        name=user.name,
        username=user.username,
        health_profile=profile,
        daily_targets=targets_from_profile(profile) if profile else None,
        has_completed_health_survey=bool(user.has_completed_health_survey),
    )


def _list_item(line: str) -> Optional[str]:
    """Text of a ``-``, ``•`` or ``N.`` list line, else None."""
    trimmed = line.strip()
    is_item = (
        trimmed.startswith("-")
        or trimmed.startswith("•")
        or (len(trimmed) > 2 and trimmed[0].isdigit() and trimmed[1] == ".")
    )
    if not is_item:
        return None
    parts = _LIST_ITEM_SPLIT.split(trimmed, maxsplit=1)
    if len(parts) < 2:
        return None
    item = parts[1].strip()
    if not item or len(item) >= 100:
        return None
    return item


def extract_recommended_foods(text: str) -> List[str]:
    foods = [item for item in (_list_item(line) for line in text.splitlines()) if item]
    return foods[:MAX_RECOMMENDED_FOODS]


def extract_foods_to_avoid(text: str) -> List[str]:
    idx = text.lower().find("avoid")
    if idx < 0:
        return []
    section = text[idx:].splitlines()[:20]
    foods = [item for item in (_list_item(line) for line in section) if item]
    return foods[:MAX_FOODS_TO_AVOID]


def recommendation_prompt(req: HealthProfileRequest, derived: dict) -> str:
    extras = []
    if req.medical_conditions:
        extras.append(f"- Medical conditions: {', '.join(req.medical_conditions)}")
    if req.allergies:
        extras.append(f"- Allergies: {', '.join(req.allergies)}")
    if req.dietary_preferences:
        extras.append(f"- Dietary preferences: {', '.join(req.dietary_preferences)}")
    return (
        "As a nutrition expert, provide personalized dietary recommendations for me:\n"
        f"- Age: {req.age}\n"
        f"- Gender: {req.gender.value}\n"
        f"- Height: {req.height_cm:.1f} cm\n"
        f"- Weight: {req.weight_kg:.1f} kg\n"
        f"- BMI: {derived['bmi']:.1f} ({derived['bmi_category']})\n"
        f"- Activity Level: {req.activity_level.value}\n"
        f"- Goal: {req.goal.value}\n"
        f"- Daily Calorie Target: {derived['daily_calories']:.0f} kcal\n"
        f"- Macros: {derived['daily_protein_g']:.0f}g protein, {derived['daily_carbs_g']:.0f}g carbs, "
        f"{derived['daily_fat_g']:.0f}g fat\n"
        + "".join(f"{line}\n" for line in extras)
        + "\nPlease provide:\n"
        "1. Personalized nutrition recommendations\n"
        "2. List of 10-15 recommended foods I should eat regularly\n"
        "3. List of foods I should avoid or limit\n"
        "4. General health tips\n\n"
        "Format the response in clear sections."
    )


def submit_health_profile(
    repo: NutritionRepository,
    user: models.User,
    req: HealthProfileRequest,
    client: Optional[ModelClient],
) -> HealthProfile:
    """Derive targets, fetch recommendations and overwrite the stored profile."""
    derived = compute_targets(req.weight_kg, req.height_cm, req.age, req.gender, req.activity_level, req.goal)

    recommendations = RECOMMENDATIONS_UNAVAILABLE
    if client is not None:
        try:
            logger.info(f"Generating AI recommendations for user {user.id}")
            recommendations = client.complete(recommendation_prompt(req, derived))
        except ModelUnavailable as e:
            logger.error(f"Failed to get AI recommendations: {e}")

    now = utcnow()
    profile = HealthProfile(
        **req.model_dump(),
        **derived,
        ai_recommendations=recommendations,
        recommended_foods=extract_recommended_foods(recommendations),
        foods_to_avoid=extract_foods_to_avoid(recommendations),
        created_at=now,
        updated_at=now,
    )
    repo.save_health_profile(user, profile)
    return profile
