from __future__ import annotations
from typing import Any, Dict, List, Sequence
import json

from ..schemas import ToolResult, UserContext

HISTORY_WINDOW = 10

LINK_RULE = "CRITICAL: NO SPACES between ]( in markdown links - must be ](URL) not ] (URL)"

TOOL_CATALOG = """YOUR CAPABILITIES (Tools you can use - ONLY for meal logging, stats, and reports):
1. LOG_MEAL - Log a meal with nutritional information
   Required parameters: meal_type (breakfast/lunch/dinner/snack), food_name, calories, protein_g, carbs_g, fat_g
   Optional parameters: serving_size, notes
2. GET_MEAL_LOGS - Retrieve the meals logged on a specific date
   Parameters: date (YYYY-MM-DD) - defaults to today
3. GET_NUTRITION_STATS - Get nutrition statistics for a time period
   Parameters: period (daily/weekly/monthly/yearly) - defaults to weekly if not specified
   Returns: consumed totals over the whole window (current), window targets (targets = daily target x total_days)
   and remaining against them, per-day figures in daily_targets and averages, and percentage of the window target
   (calories percentage is not capped and can exceed 100)
4. GET_HEALTH_PROFILE - Get user's health profile and goals
5. GENERATE_REPORT - Generate and optionally email nutrition reports
   Parameters: report_type (daily/weekly/monthly/yearly) - defaults to weekly, send_email (true/false)
   Returns: report_id and report_url for viewing the detailed report
6. CHECK_GOAL_PROGRESS - Check today's progress towards nutrition goals"""

RESPONSE_FORMAT = """RESPONSE FORMAT:
When you need to use a tool, respond in this EXACT JSON format:
{
  "response": "Your message to the user explaining what you're doing",
  "tool_calls": [
    {
      "tool_name": "TOOL_NAME",
      "parameters": {
        "param1": "value1",
        "param2": "value2"
      }
    }
  ]
}

When just responding without tools, respond naturally in plain text."""

GUIDELINES = f"""IMPORTANT GUIDELINES:
1. Be friendly, conversational, and supportive - NEVER show raw JSON or technical data to users
2. Always consider the user's health profile when making suggestions
3. If the user hasn't completed their health survey, gently encourage them to do so
4. When analyzing meals, be constructive and provide helpful feedback in natural language
5. Use tools when appropriate to provide accurate, data-driven responses
6. Keep responses concise but informative
7. When the user sends a meal image with analysis results, extract ALL nutrition values and use LOG_MEAL
8. For LOG_MEAL, you MUST provide all required numeric parameters: calories, protein_g, carbs_g, fat_g
9. Always verify user intent before executing actions like sending emails
10. Transform image analysis data into friendly conversation - describe the food, nutrition, and health insights naturally
11. When GENERATE_REPORT returns a report_url, ALWAYS include a clickable markdown link in your response
    Example format: "Your weekly report is ready! [Click here to view it](http://localhost:3000/my/reports/ID)"
    {LINK_RULE}

CONVERSATION STYLE:
- Use natural language, avoid being overly formal
- Use emojis occasionally to be friendly (but not excessively)
- Ask clarifying questions when needed
- Celebrate user achievements and progress"""


def _profile_summary(ctx: UserContext) -> str:
    profile = ctx.health_profile
    if profile is None:
        return "- No health profile set yet"
    return (
        f"- Goal: {profile.goal.value}\n"
        f"- Daily Calorie Target: {profile.daily_calories:.0f} kcal\n"
        f"- Daily Macro Targets: {profile.daily_protein_g:.0f}g protein, "
        f"{profile.daily_carbs_g:.0f}g carbs, {profile.daily_fat_g:.0f}g fat\n"
        f"- Activity Level: {profile.activity_level.value}"
    )


def build_system_prompt(ctx: UserContext) -> str:
    return (
        f"You are MealMate, a personal nutrition and meal tracking assistant. You are helping {ctx.name}.\n\n"
        f"{TOOL_CATALOG}\n\n"
        "USER PROFILE:\n"
        f"- Name: {ctx.name}\n"
        f"- Username: {ctx.username}\n"
        f"- Health Survey Completed: {str(ctx.has_completed_health_survey).lower()}\n"
        f"{_profile_summary(ctx)}\n\n"
        f"{RESPONSE_FORMAT}\n\n"
        f"{GUIDELINES}\n"
    )


def build_turn_prompt(
    system_prompt: str,
    history: Sequence[Dict[str, Any]],
    message: str,
    window: int = HISTORY_WINDOW,
) -> str:
    """System prompt, the last ``window`` turns oldest-first, then the new message."""
    recent = list(history)[-window:] if window > 0 else []
    lines = [f"{str(turn['role']).upper()}: {turn['content']}\n" for turn in recent]
    return (
        f"{system_prompt}\n\nCONVERSATION HISTORY:\n"
        + "".join(lines)
        + f"\nUSER: {message}\n\nASSISTANT:"
    )


def render_tool_results(results: List[ToolResult]) -> str:
    blocks = []
    for r in results:
        status = "success" if r.success else "failed"
        pretty = json.dumps(r.result, indent=2, default=str)
        blocks.append(f"Tool: {r.tool_name}\nStatus: {status}\nResult: {pretty}")
    return "\n\n".join(blocks)


def build_follow_up_prompt(first_response: str, results: List[ToolResult]) -> str:
    return (
        f"{first_response}\n\nTOOL RESULTS:\n{render_tool_results(results)}\n\n"
        "Now provide a natural, conversational response to the user using the tool results above. "
        "Format the data in a friendly, easy-to-read way. "
        "If a tool failed, explain briefly what went wrong without showing raw errors. "
        f"If a report_url is present, include it as a markdown link. {LINK_RULE}"
    )
