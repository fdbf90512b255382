"""
HTTP tests for the meals, health, reports, chat and food analysis routes.
"""
import base64
import json

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from mealmate.config import settings
from mealmate.database import get_db
from mealmate.deps import get_analytics, get_optional_model_client
from mealmate.errors import ModelUnavailable
from mealmate.main import app
from mealmate.routers import nutrition

from conftest import FIXED_NOW


def auth_headers(user):
    token = jwt.encode({"sub": str(user.id)}, settings.secret_key, algorithm=settings.algorithm)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(test_db, analytics, model_client):
    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_analytics] = lambda: analytics
    app.dependency_overrides[get_optional_model_client] = lambda: model_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers(test_user):
    return auth_headers(test_user)


MEAL = {"meal_type": "lunch", "food_name": "Chicken wrap", "calories": 550, "protein_g": 35, "carbs_g": 50, "fat_g": 18}


# ---------- auth ----------

def test_requires_token(client):
    assert client.get("/api/meals").status_code == 401


def test_rejects_bad_token(client):
    response = client.get("/api/meals", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"


def test_health_endpoint(client):
    assert client.get("/health").json() == {"status": "healthy"}


# ---------- meals ----------

def test_log_meal_returns_daily_summary(client, headers):
    response = client.post("/api/meals", json=MEAL, headers=headers)
    assert response.status_code == 201
    data = response.json()
    assert data["meal"]["food_name"] == "Chicken wrap"
    assert data["summary"]["date"] == "2024-03-15"
    assert data["summary"]["meal_count"] == 1
    assert data["summary"]["totals"]["calories"] == 550
    assert data["summary"]["remaining"]["calories"] == 1450


def test_log_meal_rejects_zero_calories(client, headers):
    response = client.post("/api/meals", json={**MEAL, "calories": 0}, headers=headers)
    assert response.status_code == 422


def test_list_meals_by_date(client, headers, test_user, add_meal):
    add_meal(test_user, FIXED_NOW.replace(day=14), 700)
    add_meal(test_user, FIXED_NOW, 300)

    data = client.get("/api/meals", params={"date": "2024-03-14"}, headers=headers).json()
    assert [m["calories"] for m in data["meals"]] == [700]

    data = client.get("/api/meals", headers=headers).json()
    assert [m["calories"] for m in data["meals"]] == [300]


def test_list_meals_bad_date(client, headers):
    response = client.get("/api/meals", params={"date": "15-03-2024"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid date format. Use YYYY-MM-DD"
    assert client.get("/api/meals", params={"date": "20240315"}, headers=headers).status_code == 400


def test_update_and_delete_meal(client, headers):
    meal_id = client.post("/api/meals", json=MEAL, headers=headers).json()["meal"]["id"]

    response = client.put(f"/api/meals/{meal_id}", json={"calories": 600}, headers=headers)
    assert response.status_code == 200
    assert response.json()["meal"]["calories"] == 600
    assert response.json()["meal"]["food_name"] == "Chicken wrap"
    assert response.json()["summary"]["totals"]["calories"] == 600

    response = client.delete(f"/api/meals/{meal_id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["meal"] is None
    assert response.json()["summary"]["meal_count"] == 0


@pytest.mark.parametrize("field", ["meal_type", "food_name", "calories", "protein_g", "carbs_g", "fat_g"])
def test_update_meal_rejects_null(client, headers, field):
    meal_id = client.post("/api/meals", json=MEAL, headers=headers).json()["meal"]["id"]

    response = client.put(f"/api/meals/{meal_id}", json={field: None}, headers=headers)
    assert response.status_code == 422

    meal = client.get("/api/meals", headers=headers).json()["meals"][0]
    assert meal[field] == MEAL[field]


def test_update_meal_clears_optional_fields(client, headers):
    meal_id = client.post("/api/meals", json={**MEAL, "notes": "extra sauce"}, headers=headers).json()["meal"]["id"]
    response = client.put(f"/api/meals/{meal_id}", json={"notes": None}, headers=headers)
    assert response.status_code == 200
    assert response.json()["meal"]["notes"] is None


def test_other_users_meal_is_not_found(client, headers, other_user, add_meal):
    meal = add_meal(other_user, FIXED_NOW, 400)
    assert client.put(f"/api/meals/{meal.id}", json={"calories": 1}, headers=headers).status_code == 404
    assert client.delete(f"/api/meals/{meal.id}", headers=headers).status_code == 404


def test_meal_stats(client, headers, test_user, add_meal):
    add_meal(test_user, FIXED_NOW, 2000, 150, 250, 67)
    response = client.get(
        "/api/meals/stats", params={"start_date": "2024-03-09", "end_date": "2024-03-15"}, headers=headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total_days"] == 7
    assert data["days_logged"] == 1
    assert len(data["daily_data"]) == 7
    assert data["best_day_date"] == "2024-03-15"


def test_meal_stats_inverted_range(client, headers):
    response = client.get(
        "/api/meals/stats", params={"start_date": "2024-03-15", "end_date": "2024-03-09"}, headers=headers
    )
    assert response.status_code == 400


# ---------- health profile ----------

def test_health_profile_flow(client, headers, model_client):
    assert client.get("/api/health/profile", headers=headers).status_code == 404

    model_client.complete.return_value = "Recommended:\n- Oats\n- Spinach\n\nAvoid:\n- Soda"
    payload = {
        "age": 30, "gender": "male", "height_cm": 175, "weight_kg": 70,
        "activity_level": "moderately_active", "goal": "maintain_weight",
    }
    response = client.post("/api/health/profile", json=payload, headers=headers)
    assert response.status_code == 200
    assert response.json()["daily_calories"] == pytest.approx(2594.3125)
    assert response.json()["foods_to_avoid"] == ["Soda"]

    data = client.get("/api/health/profile", headers=headers).json()
    assert data["bmr"] == pytest.approx(1673.75)
    assert data["recommended_foods"] == ["Oats", "Spinach", "Soda"]


# ---------- reports ----------

def test_report_lifecycle(client, headers, test_user, add_meal):
    add_meal(test_user, FIXED_NOW, 1800)
    response = client.post(
        "/api/reports",
        json={"report_type": "weekly", "start_date": "2024-03-09", "end_date": "2024-03-15"},
        headers=headers,
    )
    assert response.status_code == 201
    report = response.json()
    assert report["status"] == "generated"
    assert report["total_days"] == 7
    assert report["days_logged"] == 1

    listed = client.get("/api/reports", headers=headers).json()
    assert [r["id"] for r in listed] == [report["id"]]
    assert client.get(f"/api/reports/{report['id']}", headers=headers).status_code == 200

    assert client.delete(f"/api/reports/{report['id']}", headers=headers).status_code == 204
    assert client.get(f"/api/reports/{report['id']}", headers=headers).status_code == 404


def test_report_inverted_range(client, headers):
    response = client.post(
        "/api/reports",
        json={"report_type": "weekly", "start_date": "2024-03-15", "end_date": "2024-03-01"},
        headers=headers,
    )
    assert response.status_code == 400


# ---------- chat ----------

def test_create_session_titles(client, headers, model_client):
    data = client.post("/api/chat/sessions", json={}, headers=headers).json()
    assert data["title"] == "New Chat"
    assert data["message_count"] == 0

    data = client.post("/api/chat/sessions", json={"initial_message": "help me plan lunch"}, headers=headers).json()
    assert data["title"] == "Lunch Tracking Help"
    model_client.generate_chat_title.assert_called_once_with("help me plan lunch")


def test_session_owner_scoping(client, headers, other_user):
    session_id = client.post("/api/chat/sessions", json={}, headers=auth_headers(other_user)).json()["id"]
    assert client.get(f"/api/chat/sessions/{session_id}", headers=headers).status_code == 404
    assert client.get(f"/api/chat/sessions/{session_id}/messages", headers=headers).status_code == 404


def test_send_message_with_tool(client, headers, model_client, test_user, repo):
    session_id = client.post("/api/chat/sessions", json={}, headers=headers).json()["id"]
    model_client.complete.side_effect = [
        json.dumps({
            "response": "Logging that.",
            "tool_calls": [{"tool_name": "LOG_MEAL", "parameters": {
                "meal_type": "breakfast", "food_name": "Oatmeal", "calories": "350",
                "protein_g": 12, "carbs_g": 60, "fat_g": 6,
            }}],
        }),
        "Logged your oatmeal!",
    ]

    response = client.post(
        f"/api/chat/sessions/{session_id}/messages",
        json={"message": "I had oatmeal for breakfast"},
        headers=headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["user_message"]["role"] == "user"
    assert data["user_message"]["content"] == "I had oatmeal for breakfast"
    assert data["assistant_message"]["content"] == "Logged your oatmeal!"
    assert data["assistant_message"]["tool_calls"][0]["tool_name"] == "LOG_MEAL"
    assert data["assistant_message"]["tool_results"][0]["success"] is True
    assert repo.all_meals(test_user.id)[0].food_name == "Oatmeal"

    session = client.get(f"/api/chat/sessions/{session_id}", headers=headers).json()
    assert session["message_count"] == 2
    assert session["title"] == "I Had Oatmeal For Breakfast"

    messages = client.get(f"/api/chat/sessions/{session_id}/messages", headers=headers).json()
    assert [m["role"] for m in messages] == ["user", "assistant"]


def test_send_message_model_down_persists_nothing(client, headers, model_client):
    session_id = client.post("/api/chat/sessions", json={}, headers=headers).json()["id"]
    model_client.complete.side_effect = ModelUnavailable("down")

    response = client.post(f"/api/chat/sessions/{session_id}/messages", json={"message": "hi"}, headers=headers)
    assert response.status_code == 503

    assert client.get(f"/api/chat/sessions/{session_id}/messages", headers=headers).json() == []
    assert client.get(f"/api/chat/sessions/{session_id}", headers=headers).json()["message_count"] == 0


def test_send_message_without_model_client(client, headers):
    app.dependency_overrides[get_optional_model_client] = lambda: None
    session_id = client.post("/api/chat/sessions", json={}, headers=headers).json()["id"]
    response = client.post(f"/api/chat/sessions/{session_id}/messages", json={"message": "hi"}, headers=headers)
    assert response.status_code == 503


def test_send_message_invalid_image(client, headers, model_client):
    session_id = client.post("/api/chat/sessions", json={}, headers=headers).json()["id"]
    response = client.post(
        f"/api/chat/sessions/{session_id}/messages",
        json={"message": "what is this?", "image_base64": "***not base64***"},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Invalid image data")
    model_client.complete.assert_not_called()


def test_send_message_with_image(client, headers, model_client):
    session_id = client.post("/api/chat/sessions", json={}, headers=headers).json()["id"]
    model_client.complete.return_value = "That looks like a cheeseburger."
    image = base64.b64encode(b"fake-jpeg-bytes").decode()

    data = client.post(
        f"/api/chat/sessions/{session_id}/messages",
        json={"message": "log this", "image_base64": image, "image_mime_type": "image/png"},
        headers=headers,
    ).json()
    assert "[Image Analysis]" in data["user_message"]["content"]
    assert data["user_message"]["image_url"] == f"data:image/png;base64,{image}"
    model_client.analyze_food_image.assert_called_once()


def test_empty_message_rejected(client, headers):
    session_id = client.post("/api/chat/sessions", json={}, headers=headers).json()["id"]
    response = client.post(f"/api/chat/sessions/{session_id}/messages", json={"message": ""}, headers=headers)
    assert response.status_code == 422


def test_delete_session(client, headers):
    session_id = client.post("/api/chat/sessions", json={}, headers=headers).json()["id"]
    assert client.delete(f"/api/chat/sessions/{session_id}", headers=headers).status_code == 204
    assert client.get("/api/chat/sessions", headers=headers).json() == []


# ---------- food analysis ----------

JPEG = ("meal.jpg", b"fake-jpeg-bytes", "image/jpeg")


def test_analyze_food_photo(client, headers, model_client):
    response = client.post("/api/nutrition/analyze", files={"image": JPEG}, headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["is_valid_food"] is True
    assert "Cheeseburger" in data["analysis"]
    model_client.analyze_food_image.assert_called_once_with(b"fake-jpeg-bytes", "image/jpeg")


def test_analyze_non_food_photo(client, headers, model_client):
    model_client.analyze_food_image.return_value = (
        'Sure:\n{"is_valid_food": false, "error_type": "not_food", "message": "This is a cat."}'
    )
    data = client.post("/api/nutrition/analyze", files={"image": JPEG}, headers=headers).json()
    assert data["is_valid_food"] is False
    assert data["error_type"] == "not_food"
    assert data["message"] == "This is a cat."


def test_analyze_rejects_bad_uploads(client, headers, model_client):
    response = client.post("/api/nutrition/analyze", headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "No image provided. Please upload an image file."

    response = client.post(
        "/api/nutrition/analyze", files={"image": ("notes.txt", b"hello", "text/plain")}, headers=headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid file type. Please upload an image."
    model_client.analyze_food_image.assert_not_called()


def test_analyze_rejects_oversized_image(client, headers, model_client, monkeypatch):
    monkeypatch.setattr(nutrition, "MAX_IMAGE_BYTES", 4)
    response = client.post("/api/nutrition/analyze", files={"image": JPEG}, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Image too large. Maximum size is 20MB."


def test_quick_check(client, headers, model_client):
    model_client.quick_food_check.return_value = "A cheeseburger, about 550 kcal. Fine occasionally."
    response = client.post("/api/nutrition/quick-check", files={"image": JPEG}, headers=headers)
    assert response.status_code == 200
    assert response.json()["quick_check"].startswith("A cheeseburger")


def test_quick_check_model_down(client, headers, model_client):
    model_client.quick_food_check.side_effect = ModelUnavailable("down")
    response = client.post("/api/nutrition/quick-check", files={"image": JPEG}, headers=headers)
    assert response.status_code == 503


def test_analyze_text(client, headers, model_client):
    model_client.analyze_food_text.return_value = (
        '```json\n{"food_name": "Banana", "calories": 105, "protein_g": 1.3, '
        '"carbs_g": 27, "fat_g": 0.4, "serving_size": "1 medium"}\n```'
    )
    response = client.post("/api/nutrition/analyze-text", json={"food_description": "a banana"}, headers=headers)
    assert response.status_code == 200
    assert response.json() == {
        "food_name": "Banana", "calories": 105, "protein_g": 1.3,
        "carbs_g": 27, "fat_g": 0.4, "serving_size": "1 medium",
    }
    model_client.analyze_food_text.assert_called_once_with("a banana")


def test_analyze_text_empty_description(client, headers, model_client):
    response = client.post("/api/nutrition/analyze-text", json={"food_description": "   "}, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Food description cannot be empty"
    model_client.analyze_food_text.assert_not_called()


def test_analyze_text_unparseable_reply(client, headers, model_client):
    model_client.analyze_food_text.return_value = "I think it is around 100 calories."
    response = client.post("/api/nutrition/analyze-text", json={"food_description": "a banana"}, headers=headers)
    assert response.status_code == 502


def test_food_analysis_requires_token(client):
    assert client.post("/api/nutrition/analyze-text", json={"food_description": "a banana"}).status_code == 401
