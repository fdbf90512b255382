"""
Health profile routes: submit the health survey and read the stored profile.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from .. import models, schemas
from ..auth import get_current_user
from ..deps import get_optional_model_client, get_repository
from ..llm.client import ModelClient
from ..profiles import submit_health_profile
from ..repository import NutritionRepository

router = APIRouter(prefix="/api/health", tags=["Health"])


@router.post("/profile", response_model=schemas.HealthProfile)
def submit_profile(
    payload: schemas.HealthProfileRequest,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
    client: Optional[ModelClient] = Depends(get_optional_model_client),
):
    """
    Submit (or resubmit) the health survey.

    Derived targets are recomputed and the previous profile is replaced.
    """
    return submit_health_profile(repo, current_user, payload, client)


@router.get("/profile", response_model=schemas.HealthProfile)
def get_profile(
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
):
    profile = repo.get_health_profile(current_user.id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Health profile not found")
    return profile
