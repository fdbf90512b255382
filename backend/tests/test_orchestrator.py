"""
Tests for the chat orchestrator: reply parsing, tool dispatch, follow-up and turn guards.
"""
import json
import threading

import pytest

from mealmate.errors import ModelUnavailable, TurnCancelled, TurnDeadlineExceeded
from mealmate.llm.orchestrator import ChatOrchestrator, parse_model_reply
from mealmate.profiles import build_user_context


def tool_reply(*calls, response="Let me check that for you."):
    return json.dumps({
        "response": response,
        "tool_calls": [{"tool_name": name, "parameters": params} for name, params in calls],
    })


@pytest.fixture
def orchestrator(model_client, registry):
    return ChatOrchestrator(model_client, registry)


@pytest.fixture
def ctx(test_user):
    return build_user_context(test_user)


# ---------- parse_model_reply ----------

def test_parse_plain_text():
    parsed = parse_model_reply("Hello! How can I help?")
    assert parsed.structured is False
    assert parsed.response == "Hello! How can I help?"
    assert parsed.tool_calls == []


def test_parse_fenced_json():
    raw = "```json\n" + tool_reply(("GET_HEALTH_PROFILE", {})) + "\n```"
    parsed = parse_model_reply(raw)
    assert parsed.structured is True
    assert [c.tool_name for c in parsed.tool_calls] == ["GET_HEALTH_PROFILE"]


@pytest.mark.parametrize("raw", [
    '{"tool_calls": []}',
    '{"response": 5, "tool_calls": []}',
    '{"response": "hi", "tool_calls": "LOG_MEAL"}',
    '{"response": "hi", "tool_calls": [{"parameters": {}}]}',
    '{"response": "hi", "tool_calls": [{"tool_name": "LOG_MEAL", "parameters": [1, 2]}]}',
    '["response"]',
    '{"response": "unterminated"',
])
def test_parse_malformed_is_plain(raw):
    parsed = parse_model_reply(raw)
    assert parsed.structured is False
    assert parsed.response == raw
    assert parsed.tool_calls == []


def test_parse_missing_tool_calls_means_none():
    parsed = parse_model_reply('{"response": "All good"}')
    assert parsed.structured is True
    assert parsed.response == "All good"
    assert parsed.tool_calls == []


# ---------- process_message ----------

def test_plain_reply_makes_one_model_call(orchestrator, model_client, ctx):
    model_client.complete.return_value = "Hi Alice! What did you eat today?"
    reply = orchestrator.process_message(ctx, "hello", [])
    assert reply.response_text == "Hi Alice! What did you eat today?"
    assert reply.user_content == "hello"
    assert reply.tool_calls == []
    assert reply.tool_results == []
    assert model_client.complete.call_count == 1


def test_structured_reply_without_tools_returns_response_field(orchestrator, model_client, ctx):
    model_client.complete.return_value = json.dumps({"response": "Sure thing!", "tool_calls": []})
    reply = orchestrator.process_message(ctx, "thanks", [])
    assert reply.response_text == "Sure thing!"
    assert model_client.complete.call_count == 1


def test_tool_call_then_follow_up(orchestrator, model_client, repo, ctx, test_user):
    model_client.complete.side_effect = [
        "```json\n" + tool_reply(
            ("LOG_MEAL", {"meal_type": "lunch", "food_name": "Burrito", "calories": "720",
                          "protein_g": "32", "carbs_g": "85", "fat_g": "24"}),
            response="Logging your burrito now.",
        ) + "\n```",
        "Done! Your burrito is logged.",
    ]
    reply = orchestrator.process_message(ctx, "I had a burrito for lunch", [])

    assert reply.response_text == "Done! Your burrito is logged."
    assert [c.tool_name for c in reply.tool_calls] == ["LOG_MEAL"]
    assert reply.tool_results[0].success is True
    assert repo.all_meals(test_user.id)[0].calories == 720

    follow_up = model_client.complete.call_args_list[1].args[0]
    assert follow_up.startswith("Logging your burrito now.")
    assert "Tool: LOG_MEAL" in follow_up
    assert "Status: success" in follow_up
    assert "](URL)" in follow_up


def test_tools_run_in_order_and_failures_are_isolated(orchestrator, model_client, ctx):
    model_client.complete.side_effect = [
        tool_reply(("MAKE_COFFEE", {}), ("GET_HEALTH_PROFILE", {})),
        "Here is what I found.",
    ]
    reply = orchestrator.process_message(ctx, "what's my profile?", [])
    assert [r.tool_name for r in reply.tool_results] == ["MAKE_COFFEE", "GET_HEALTH_PROFILE"]
    assert [r.success for r in reply.tool_results] == [False, True]

    follow_up = model_client.complete.call_args_list[1].args[0]
    assert "Tool: MAKE_COFFEE\nStatus: failed" in follow_up
    assert "Tool: GET_HEALTH_PROFILE\nStatus: success" in follow_up


def test_first_call_unavailable_propagates(orchestrator, model_client, ctx):
    model_client.complete.side_effect = ModelUnavailable("down")
    with pytest.raises(ModelUnavailable):
        orchestrator.process_message(ctx, "hello", [])


def test_follow_up_unavailable_keeps_tool_side_effects(orchestrator, model_client, repo, ctx, test_user):
    model_client.complete.side_effect = [
        tool_reply(("LOG_MEAL", {"meal_type": "snack", "food_name": "Apple", "calories": 95})),
        ModelUnavailable("timeout"),
    ]
    with pytest.raises(ModelUnavailable):
        orchestrator.process_message(ctx, "I ate an apple", [])
    assert len(repo.all_meals(test_user.id)) == 1


def test_cancelled_turn_makes_no_model_call(orchestrator, model_client, ctx):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(TurnCancelled):
        orchestrator.process_message(ctx, "hello", [], cancel_event=cancel)
    model_client.complete.assert_not_called()


def test_cancel_between_model_calls_skips_tools(orchestrator, model_client, repo, ctx, test_user):
    cancel = threading.Event()

    def first_call(prompt, timeout=None):
        cancel.set()
        return tool_reply(("LOG_MEAL", {"meal_type": "snack", "food_name": "Apple", "calories": 95}))

    model_client.complete.side_effect = first_call
    with pytest.raises(TurnCancelled):
        orchestrator.process_message(ctx, "I ate an apple", [], cancel_event=cancel)
    assert repo.all_meals(test_user.id) == []


def test_expired_deadline_aborts(orchestrator, model_client, ctx):
    with pytest.raises(TurnDeadlineExceeded):
        orchestrator.process_message(ctx, "hello", [], deadline_seconds=0)
    model_client.complete.assert_not_called()


def test_image_analysis_is_appended(orchestrator, model_client, ctx):
    model_client.complete.return_value = "Looks tasty!"
    reply = orchestrator.process_message(ctx, "log this", [], image_bytes=b"\x89PNG", mime_type="image/png")

    model_client.analyze_food_image.assert_called_once()
    assert model_client.analyze_food_image.call_args.args[:2] == (b"\x89PNG", "image/png")
    assert reply.user_content.startswith("log this\n\n[Image Analysis]\n")
    assert "Cheeseburger" in reply.user_content
    assert "[Image Analysis]" in model_client.complete.call_args.args[0]


def test_history_is_included_in_prompt(orchestrator, model_client, ctx):
    model_client.complete.return_value = "ok"
    history = [{"role": "user", "content": "first question"}, {"role": "assistant", "content": "first answer"}]
    orchestrator.process_message(ctx, "second question", history)
    prompt = model_client.complete.call_args.args[0]
    assert "USER: first question\nASSISTANT: first answer\n" in prompt
    assert prompt.endswith("\nUSER: second question\n\nASSISTANT:")


def test_progress_events(orchestrator, model_client, ctx):
    model_client.complete.side_effect = [tool_reply(("GET_HEALTH_PROFILE", {})), "done"]
    events = []
    orchestrator.process_message(ctx, "profile?", [], on_event=lambda state, label, detail: events.append(state))
    assert events[0] == "composing"
    assert events[1] == "model_call_1"
    assert "tool_dispatch" in events
    assert events[-2:] == ["model_call_2", "done"]
