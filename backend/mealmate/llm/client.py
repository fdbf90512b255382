from __future__ import annotations
from typing import Any, Dict, List, Optional
import base64
import logging

from openai import OpenAI, OpenAIError

from ..config import settings
from ..errors import ModelUnavailable

logger = logging.getLogger(__name__)

FOOD_IMAGE_PROMPT = """Analyze this food image and provide detailed nutritional information in the following JSON format:

{
  "food_name": "name of the food item",
  "serving_size": "typical serving size",
  "calories": "estimated calories per serving",
  "macronutrients": {
    "protein": "grams of protein",
    "carbohydrates": "grams of carbohydrates",
    "fat": "grams of fat",
    "fiber": "grams of fiber"
  },
  "health_score": "score from 1-10 based on nutritional value",
  "health_notes": "brief notes about health benefits or concerns",
  "dietary_info": {
    "is_vegetarian": true/false,
    "is_vegan": true/false,
    "is_gluten_free": true/false,
    "allergens": ["list of common allergens present"]
  },
  "recommendations": "suggestions for healthier alternatives or complementary foods"
}

Be as accurate as possible based on visual analysis. If you cannot clearly identify the food, indicate uncertainty in your response.

If the image does not show food at all, respond instead with:
{"is_valid_food": false, "error_type": "not_food", "message": "short explanation of what the image shows"}"""

QUICK_CHECK_PROMPT = (
    "Identify this food and provide a brief health assessment (1-2 sentences) including "
    "estimated calories and whether it's generally healthy or not."
)

FOOD_TEXT_PROMPT = """Estimate the nutrition for this food description: "{description}"

Respond with JSON only, in exactly this format:
{{
  "food_name": "name of the food",
  "calories": 0,
  "protein_g": 0,
  "carbs_g": 0,
  "fat_g": 0,
  "serving_size": "serving the estimate is for"
}}

Guidelines:
- Use a standard single serving unless a portion is mentioned
- If a portion or quantity is mentioned, estimate for that amount
- All nutrient values must be numbers, not strings
- Return ONLY the JSON object, no other text"""

DEFAULT_CHAT_TITLE = "New Chat"


class ModelClient:
    """Single-prompt text/image completions against the OpenAI chat API."""

    def __init__(self, model: Optional[str] = None, client: Optional[Any] = None):
        self.model = model or (settings.model_id or "gpt-4o")
        if client is None:
            if not settings.openai_api_key:
                raise ModelUnavailable("OPENAI_API_KEY not configured")
            client = OpenAI(api_key=settings.openai_api_key)
        self.client = client

    def _content(self, prompt: str, image_bytes: Optional[bytes], mime_type: Optional[str]) -> Any:
        if not image_bytes:
            return prompt
        data = base64.b64encode(image_bytes).decode("ascii")
        parts: List[Dict[str, Any]] = [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": f"data:{mime_type or 'image/jpeg'};base64,{data}"}},
        ]
        return parts

    def complete(
        self,
        prompt: str,
        image_bytes: Optional[bytes] = None,
        mime_type: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Send one prompt and return the reply text. Raises ModelUnavailable."""
        kwargs: Dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": self._content(prompt, image_bytes, mime_type)}],
                temperature=settings.model_temperature,
                **kwargs,
            )
        except OpenAIError as e:
            logger.error(f"Model call failed: {e}")
            raise ModelUnavailable(str(e)) from e
        text = completion.choices[0].message.content if completion.choices else None
        if not text:
            raise ModelUnavailable("Model returned an empty response")
        return text

    def analyze_food_image(self, image_bytes: bytes, mime_type: str, timeout: Optional[float] = None) -> str:
        logger.info(f"Analyzing food image ({len(image_bytes)} bytes, {mime_type})")
        return self.complete(FOOD_IMAGE_PROMPT, image_bytes=image_bytes, mime_type=mime_type, timeout=timeout)

    def quick_food_check(self, image_bytes: bytes, mime_type: str) -> str:
        return self.complete(QUICK_CHECK_PROMPT, image_bytes=image_bytes, mime_type=mime_type)

    def analyze_food_text(self, description: str) -> str:
        logger.info(f"Estimating nutrition for text description ({len(description)} chars)")
        return self.complete(FOOD_TEXT_PROMPT.format(description=description))

    def generate_chat_title(self, first_message: str) -> str:
        prompt = (
            "Generate a short, concise title (maximum 5 words) for a chat conversation "
            f"that starts with this message:\n\n\"{first_message}\"\n\n"
            "Return ONLY the title, nothing else. Make it descriptive but brief."
        )
        try:
            title = self.complete(prompt)
        except ModelUnavailable:
            return DEFAULT_CHAT_TITLE
        clean = title.strip().strip('"').strip()[:50]
        return clean or DEFAULT_CHAT_TITLE
