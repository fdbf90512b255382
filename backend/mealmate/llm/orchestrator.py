from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Sequence
from dataclasses import dataclass, field
from enum import Enum
import json
import logging
import re
import threading
import time

from ..errors import TurnCancelled, TurnDeadlineExceeded
from ..schemas import ToolCall, ToolResult, UserContext
from .client import ModelClient
from .prompts import HISTORY_WINDOW, build_follow_up_prompt, build_system_prompt, build_turn_prompt
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, str, Optional[Dict[str, Any]]], None]

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class AgentState(str, Enum):
    COMPOSING = "composing"
    MODEL_CALL_1 = "model_call_1"
    PLAIN_REPLY = "plain_reply"
    TOOL_DISPATCH = "tool_dispatch"
    MODEL_CALL_2 = "model_call_2"
    DONE = "done"


@dataclass
class AgentReply:
    """Outcome of one turn: final text plus the tool audit trail."""
    response_text: str
    user_content: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_results: List[ToolResult] = field(default_factory=list)


@dataclass
class ParsedReply:
    response: str
    tool_calls: List[ToolCall]
    structured: bool


def parse_model_reply(raw: str) -> ParsedReply:
    """Decode ``{"response": str, "tool_calls": [...]}``; anything else is plain text."""
    plain = ParsedReply(response=raw, tool_calls=[], structured=False)
    text = raw.strip()
    m = _FENCE_RE.match(text)
    if m:
        text = m.group(1)
    try:
        data = json.loads(text)
    except ValueError:
        return plain
    if not isinstance(data, dict) or not isinstance(data.get("response"), str):
        return plain
    calls_raw = data.get("tool_calls") or []
    if not isinstance(calls_raw, list):
        return plain
    calls: List[ToolCall] = []
    for c in calls_raw:
        if not isinstance(c, dict) or not isinstance(c.get("tool_name"), str):
            return plain
        params = c.get("parameters") or {}
        if not isinstance(params, dict):
            return plain
        calls.append(ToolCall(tool_name=c["tool_name"], parameters=params))
    return ParsedReply(response=data["response"], tool_calls=calls, structured=True)


class _TurnGuard:
    """Cancellation and deadline checks for one turn."""

    def __init__(self, deadline_seconds: Optional[float], cancel_event: Optional[threading.Event]):
        self.cancel_event = cancel_event
        self.deadline = time.monotonic() + deadline_seconds if deadline_seconds is not None else None

    def check(self, stage: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise TurnCancelled(f"Turn cancelled before {stage}")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise TurnDeadlineExceeded(f"Turn deadline exceeded before {stage}")

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)


class ChatOrchestrator:
    """Two-phase agent turn: model call, optional tool dispatch, follow-up model call."""

    def __init__(self, client: ModelClient, tools: ToolRegistry, history_window: int = HISTORY_WINDOW):
        self.client = client
        self.tools = tools
        self.history_window = history_window

    def process_message(
        self,
        ctx: UserContext,
        message: str,
        history: Sequence[Dict[str, Any]],
        image_bytes: Optional[bytes] = None,
        mime_type: Optional[str] = None,
        deadline_seconds: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        on_event: Optional[EventCallback] = None,
    ) -> AgentReply:
        guard = _TurnGuard(deadline_seconds, cancel_event)

        def emit(state: AgentState, label: str, detail: Optional[Dict[str, Any]] = None) -> None:
            if on_event:
                on_event(state.value, label, detail)

        # Composing
        emit(AgentState.COMPOSING, "composing")
        content = message
        if image_bytes:
            guard.check("image analysis")
            analysis = self.client.analyze_food_image(image_bytes, mime_type or "image/jpeg", timeout=guard.remaining())
            content = f"{message}\n\n[Image Analysis]\n{analysis}"
        prompt = build_turn_prompt(build_system_prompt(ctx), history, content, window=self.history_window)

        # First model call
        guard.check("first model call")
        emit(AgentState.MODEL_CALL_1, "calling model")
        logger.info(f"Model call 1 for user {ctx.user_id} ({len(prompt)} chars)")
        raw = self.client.complete(prompt, timeout=guard.remaining())
        parsed = parse_model_reply(raw)
        if not parsed.structured:
            logger.warning(f"Model reply for user {ctx.user_id} was not structured; using plain text")

        if not parsed.tool_calls:
            emit(AgentState.PLAIN_REPLY, "plain reply")
            emit(AgentState.DONE, "finalizing")
            return AgentReply(response_text=parsed.response, user_content=content)

        # Tool dispatch, strictly in order
        emit(AgentState.TOOL_DISPATCH, "tool_call", {"count": len(parsed.tool_calls)})
        results: List[ToolResult] = []
        for call in parsed.tool_calls:
            guard.check(f"tool {call.tool_name}")
            emit(AgentState.TOOL_DISPATCH, call.tool_name)
            result = self.tools.execute(ctx.user_id, call)
            results.append(result)
            emit(AgentState.TOOL_DISPATCH, call.tool_name, {"success": result.success})

        # Follow-up model call
        guard.check("follow-up model call")
        emit(AgentState.MODEL_CALL_2, "synthesizing")
        final_text = self.client.complete(
            build_follow_up_prompt(parsed.response, results),
            timeout=guard.remaining(),
        )
        emit(AgentState.DONE, "finalizing")
        return AgentReply(
            response_text=final_text,
            user_content=content,
            tool_calls=list(parsed.tool_calls),
            tool_results=results,
        )
