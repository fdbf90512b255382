"""
Chat sessions with the nutrition agent.

POST /api/chat/sessions/{id}/messages runs one agent turn: the reply is
grounded in tool calls against the user's meals, stats and reports.
Both turns are stored only after the agent has produced a reply.
"""
from typing import List, Optional
import base64
import binascii
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from .. import models, schemas
from ..auth import get_current_user
from ..config import settings
from ..deps import ASSISTANT_UNAVAILABLE, get_optional_model_client, get_orchestrator, get_repository
from ..errors import AgentTurnAborted, ModelUnavailable
from ..llm.client import DEFAULT_CHAT_TITLE, ModelClient
from ..llm.orchestrator import ChatOrchestrator
from ..profiles import build_user_context
from ..repository import NutritionRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


def title_from_message(message: str) -> str:
    """Session title from the first message: 50 chars, each word capitalised."""
    text = f"{message[:50]}..." if len(message) > 50 else message
    return " ".join(word[:1].upper() + word[1:] for word in text.split())


def _get_session_or_404(repo: NutritionRepository, user_id: int, session_id: int) -> models.ChatSession:
    session = repo.get_session(user_id, session_id)
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")
    return session


def _decode_image(payload: schemas.SendMessageRequest):
    if not payload.image_base64:
        return None, None, None
    mime_type = payload.image_mime_type or "image/jpeg"
    try:
        image_bytes = base64.b64decode(payload.image_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid image data: {e}")
    return image_bytes, mime_type, f"data:{mime_type};base64,{payload.image_base64}"


@router.post("/sessions", response_model=schemas.ChatSession, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: schemas.ChatSessionCreate,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
    client: Optional[ModelClient] = Depends(get_optional_model_client),
):
    title = DEFAULT_CHAT_TITLE
    if payload.initial_message and client is not None:
        title = client.generate_chat_title(payload.initial_message)
    return repo.create_session(current_user.id, title=title)


@router.get("/sessions", response_model=List[schemas.ChatSession])
def list_sessions(
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
):
    return repo.list_sessions(current_user.id)


@router.get("/sessions/{session_id}", response_model=schemas.ChatSession)
def get_session(
    session_id: int,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
):
    return _get_session_or_404(repo, current_user.id, session_id)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: int,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
):
    repo.delete_session(_get_session_or_404(repo, current_user.id, session_id))


@router.get("/sessions/{session_id}/messages", response_model=List[schemas.ChatMessage])
def list_messages(
    session_id: int,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
):
    _get_session_or_404(repo, current_user.id, session_id)
    return repo.list_messages(current_user.id, session_id)


@router.post("/sessions/{session_id}/messages", response_model=schemas.SendMessageResponse)
def send_message(
    session_id: int,
    payload: schemas.SendMessageRequest,
    current_user: models.User = Depends(get_current_user),
    repo: NutritionRepository = Depends(get_repository),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    session = _get_session_or_404(repo, current_user.id, session_id)
    image_bytes, mime_type, image_url = _decode_image(payload)

    history = [
        {"role": m.role, "content": m.content}
        for m in repo.list_messages(current_user.id, session.id)
    ]
    ctx = build_user_context(current_user)
    logger.info(f"Chat turn in session {session.id} for user {current_user.id} ({len(history)} prior turns)")

    try:
        reply = orchestrator.process_message(
            ctx,
            payload.message,
            history,
            image_bytes=image_bytes,
            mime_type=mime_type,
            deadline_seconds=settings.agent_turn_timeout_seconds,
        )
    except (ModelUnavailable, AgentTurnAborted) as e:
        logger.error(f"Chat turn failed in session {session.id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=ASSISTANT_UNAVAILABLE)

    new_title = None
    if session.title == DEFAULT_CHAT_TITLE and (session.message_count or 0) == 0:
        new_title = title_from_message(payload.message)

    user_turn = models.ChatMessage(
        role=schemas.ChatRole.USER.value,
        content=reply.user_content,
        image_url=image_url,
    )
    assistant_turn = models.ChatMessage(
        role=schemas.ChatRole.ASSISTANT.value,
        content=reply.response_text,
        tool_calls=[c.model_dump(mode="json") for c in reply.tool_calls] or None,
        tool_results=[r.model_dump(mode="json") for r in reply.tool_results] or None,
    )
    repo.append_turns(session, [user_turn, assistant_turn], title=new_title)
    return schemas.SendMessageResponse(
        user_message=schemas.ChatMessage.model_validate(user_turn),
        assistant_message=schemas.ChatMessage.model_validate(assistant_turn),
    )
