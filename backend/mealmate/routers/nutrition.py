"""
One-shot food analysis: photo analysis, quick photo check and text estimates.
"""
from typing import Any, Dict, Optional, Tuple
from datetime import datetime, timezone
import json
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import ValidationError

from .. import models, schemas
from ..auth import get_current_user
from ..deps import ASSISTANT_UNAVAILABLE, get_model_client
from ..errors import ModelUnavailable
from ..llm.client import ModelClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/nutrition", tags=["Nutrition"])

MAX_IMAGE_BYTES = 20 * 1024 * 1024


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse the span from the first '{' to the last '}' as a JSON object."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_validation(analysis: str) -> Tuple[bool, Optional[str], Optional[str]]:
    """(is_valid_food, error_type, message); anything unparseable counts as food."""
    data = extract_json_object(analysis)
    if data is None or data.get("is_valid_food", True) is not False:
        return True, None, None
    error_type = data.get("error_type")
    message = data.get("message")
    return False, str(error_type) if error_type else None, str(message) if message else None


def _read_image(image: Optional[UploadFile]) -> Tuple[bytes, str]:
    if image is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No image provided. Please upload an image file.",
        )
    data = image.file.read(MAX_IMAGE_BYTES + 1)
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No image provided. Please upload an image file.",
        )
    if len(data) > MAX_IMAGE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Image too large. Maximum size is 20MB.",
        )
    mime_type = image.content_type or ""
    if not mime_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Please upload an image.",
        )
    return data, mime_type


def _unavailable(e: ModelUnavailable) -> HTTPException:
    logger.error(f"Food analysis failed: {e}")
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=ASSISTANT_UNAVAILABLE)


@router.post("/analyze", response_model=schemas.FoodAnalysisResponse)
def analyze_food(
    image: Optional[UploadFile] = File(None),
    current_user: models.User = Depends(get_current_user),
    client: ModelClient = Depends(get_model_client),
):
    """Detailed nutrition analysis of a food photo."""
    data, mime_type = _read_image(image)
    try:
        analysis = client.analyze_food_image(data, mime_type)
    except ModelUnavailable as e:
        raise _unavailable(e)

    is_valid_food, error_type, message = parse_validation(analysis)
    if not is_valid_food:
        logger.info(f"Image from user {current_user.id} rejected as non-food ({error_type})")
    return schemas.FoodAnalysisResponse(
        success=True,
        analysis=analysis,
        is_valid_food=is_valid_food,
        error_type=error_type,
        message=message,
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/quick-check", response_model=schemas.QuickCheckResponse)
def quick_check(
    image: Optional[UploadFile] = File(None),
    current_user: models.User = Depends(get_current_user),
    client: ModelClient = Depends(get_model_client),
):
    """One or two sentence health verdict for a food photo."""
    data, mime_type = _read_image(image)
    try:
        verdict = client.quick_food_check(data, mime_type)
    except ModelUnavailable as e:
        raise _unavailable(e)
    return schemas.QuickCheckResponse(success=True, quick_check=verdict, timestamp=datetime.now(timezone.utc))


@router.post("/analyze-text", response_model=schemas.FoodTextEstimate)
def analyze_text(
    payload: schemas.FoodTextRequest,
    current_user: models.User = Depends(get_current_user),
    client: ModelClient = Depends(get_model_client),
):
    description = payload.food_description.strip()
    if not description:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Food description cannot be empty")

    try:
        reply = client.analyze_food_text(description)
    except ModelUnavailable as e:
        raise _unavailable(e)

    data = extract_json_object(reply)
    try:
        if data is None:
            raise ValueError("no JSON object in reply")
        return schemas.FoodTextEstimate.model_validate(data)
    except (ValueError, ValidationError) as e:
        logger.error(f"Unusable nutrition estimate for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to parse nutrition estimate",
        )
