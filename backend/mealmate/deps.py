"""
FastAPI dependencies wiring the repository, analytics engine and agent together.
"""
from typing import Optional
import logging

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from .analytics import AnalyticsEngine
from .database import get_db
from .errors import ModelUnavailable
from .llm.client import ModelClient
from .llm.orchestrator import ChatOrchestrator
from .llm.tools import ToolRegistry
from .config import settings
from .repository import NutritionRepository

logger = logging.getLogger(__name__)

ASSISTANT_UNAVAILABLE = "The assistant is temporarily unavailable. Please try again later."


def get_repository(db: Session = Depends(get_db)) -> NutritionRepository:
    return NutritionRepository(db)


def get_analytics(repo: NutritionRepository = Depends(get_repository)) -> AnalyticsEngine:
    return AnalyticsEngine(repo)


def get_optional_model_client() -> Optional[ModelClient]:
    try:
        return ModelClient()
    except ModelUnavailable as e:
        logger.warning(f"Model client unavailable: {e}")
        return None


def get_model_client(client: Optional[ModelClient] = Depends(get_optional_model_client)) -> ModelClient:
    if client is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=ASSISTANT_UNAVAILABLE)
    return client


def get_tool_registry(
    repo: NutritionRepository = Depends(get_repository),
    analytics: AnalyticsEngine = Depends(get_analytics),
) -> ToolRegistry:
    return ToolRegistry(repo, analytics)


def get_orchestrator(
    client: ModelClient = Depends(get_model_client),
    tools: ToolRegistry = Depends(get_tool_registry),
) -> ChatOrchestrator:
    return ChatOrchestrator(client, tools, history_window=settings.history_window)
