"""
Report emails over the Brevo HTTP API.
Uses HTTP API instead of SMTP to avoid firewall/port blocking issues.
"""
import requests
from typing import Optional
import logging

from . import models
from .config import settings
from .errors import EmailDispatchError

logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"
BREVO_TIMEOUT_SECONDS = 10


def send_email(
    to_email: str,
    subject: str,
    body_html: str,
    body_text: Optional[str] = None,
    to_name: Optional[str] = None,
) -> None:
    """
    Send one transactional email through Brevo.

    Args:
        to_email: Recipient address
        subject: Subject line
        body_html: HTML content
        body_text: Plain text alternative (optional)
        to_name: Recipient display name, defaults to the address local part

    Raises:
        EmailDispatchError: Brevo is not configured, unreachable, or did not
            answer 201 Created.
    """
    if not settings.brevo_api_key:
        raise EmailDispatchError("Brevo not configured. Set BREVO_API_KEY environment variable.")
    if not settings.email_from:
        raise EmailDispatchError("EMAIL_FROM not set. Please configure sender email address.")

    payload = {
        "sender": {"name": settings.email_from_name, "email": settings.email_from},
        "to": [{"email": to_email, "name": to_name or to_email.split("@")[0]}],
        "subject": subject,
        "htmlContent": body_html,
    }
    if body_text:
        payload["textContent"] = body_text

    logger.info(f"Sending '{subject}' to {to_email} via Brevo")
    try:
        response = requests.post(
            BREVO_URL,
            json=payload,
            headers={
                "accept": "application/json",
                "api-key": settings.brevo_api_key,
                "content-type": "application/json",
            },
            timeout=BREVO_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise EmailDispatchError(f"Failed to reach Brevo: {e}") from e

    if response.status_code != 201:
        raise EmailDispatchError(f"Brevo API error: {response.status_code} - {response.text}")
    logger.info(f"Email sent to {to_email}")


def _stat_row(label: str, value: str) -> str:
    return (
        f'<tr><td style="padding: 6px 0; color: #666;">{label}</td>'
        f'<td style="padding: 6px 0; color: #333; font-weight: bold; text-align: right;">{value}</td></tr>'
    )


def send_report_email(user: models.User, report: models.MealReport, report_url: str) -> None:
    """
    Email a nutrition report summary with a link to the full report.

    Raises:
        EmailDispatchError: email is not configured, the user has no address,
            or Brevo rejected the message.
    """
    if not user.email:
        raise EmailDispatchError(f"User {user.id} has no email address")

    period = report.report_type.capitalize()
    subject = f"Your {period} Nutrition Report ({report.start_date} to {report.end_date})"
    goal_line = "Goal achieved 🎉" if report.goal_achieved else "Keep going, you're making progress!"

    rows = "".join([
        _stat_row("Days logged", f"{report.days_logged} / {report.total_days}"),
        _stat_row("Meals logged", str(report.total_meals)),
        _stat_row("Avg calories", f"{report.avg_calories:.0f} kcal"),
        _stat_row("Avg protein", f"{report.avg_protein_g:.0f} g"),
        _stat_row("Avg carbs", f"{report.avg_carbs_g:.0f} g"),
        _stat_row("Avg fat", f"{report.avg_fat_g:.0f} g"),
        _stat_row("Calorie compliance", f"{report.calories_compliance_percent:.1f}%"),
        _stat_row("Days on target", str(report.days_on_target)),
        _stat_row("Longest streak", f"{report.streak_days} days"),
    ])

    body_html = f"""
    <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background: linear-gradient(135deg, #34d399 0%, #059669 100%); padding: 30px; border-radius: 10px 10px 0 0;">
                <h1 style="color: white; margin: 0;">MealMate</h1>
            </div>
            <div style="background: #f8f9fa; padding: 30px; border-radius: 0 0 10px 10px;">
                <h2 style="color: #333; margin-top: 0;">{period} Report</h2>
                <p style="color: #666; font-size: 16px; line-height: 1.6;">
                    Hi {user.name}, here is your summary for {report.start_date} to {report.end_date}.
                </p>
                <table style="width: 100%; background: white; padding: 20px; border-radius: 8px;">
                    {rows}
                </table>
                <p style="color: #059669; font-size: 16px; font-weight: bold;">{goal_line}</p>
                <div style="text-align: center; margin: 30px 0;">
                    <a href="{report_url}" style="display: inline-block; padding: 15px 40px; background: #059669; color: white; text-decoration: none; border-radius: 8px; font-weight: bold; font-size: 16px;">
                        View Full Report
                    </a>
                </div>
            </div>
        </body>
    </html>
    """

    body_text = f"""
    MealMate - {period} Report ({report.start_date} to {report.end_date})

    Days logged: {report.days_logged} / {report.total_days}
    Avg calories: {report.avg_calories:.0f} kcal
    Calorie compliance: {report.calories_compliance_percent:.1f}%
    Longest streak: {report.streak_days} days
    {goal_line}

    View the full report: {report_url}
    """

    send_email(user.email, subject, body_html, body_text, to_name=user.name)
