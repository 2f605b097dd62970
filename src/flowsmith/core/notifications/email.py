"""Email client using Resend API."""

import html
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field

import resend

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.logging import get_logger

logger = get_logger(__name__)

# Thread pool for email sending with timeout support
_email_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="email_sender")

_BODY_STYLE = (
    "font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; "
    "line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;"
)
_BUTTON_STYLE = (
    "background-color: #2563eb; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 6px; display: inline-block; font-weight: 500;"
)
_LOG_STYLE = (
    "background: #f6f8fa; border-radius: 6px; padding: 12px; font-size: 12px; "
    "font-family: ui-monospace, SFMono-Regular, Menlo, monospace; white-space: pre-wrap;"
)
_MUTED_STYLE = "color: #666; font-size: 14px;"
_STATUS_COLORS = {"success": "#16a34a", "failed": "#dc2626"}


@dataclass(frozen=True)
class RunNotification:
    """Everything the scheduled-run email shows."""

    to: str
    automation_id: str
    automation_title: str
    execution_id: str
    status: str
    duration_ms: int | None = None
    error_message: str | None = None
    schedule_description: str | None = None
    log_tail: list[str] = field(default_factory=list)


def send_run_notification_email(notification: RunNotification) -> bool:
    """Send the completed/failed email for a scheduled run.

    Returns:
        True if email was sent (or logged in dev mode), False on error
    """
    settings = get_settings()

    if not settings.resend_api_key:
        logger.warning(
            "RESEND_API_KEY not set - email not sent",
            to=notification.to,
            email_type="scheduled_run",
            execution_id=notification.execution_id,
        )
        return True

    resend.api_key = settings.resend_api_key
    outcome = "completed" if notification.status == "success" else "failed"

    def _send() -> None:
        resend.Emails.send(
            {
                "from": settings.email_from,
                "to": [notification.to],
                "subject": f"Scheduled run {outcome}: {notification.automation_title}",
                "html": _get_run_email_html(notification, settings.app_url),
            }
        )

    try:
        future = _email_executor.submit(_send)
        future.result(timeout=settings.email_send_timeout_seconds)
        logger.info("Run notification email sent", to=notification.to, status=notification.status)
        return True
    except FuturesTimeoutError:
        logger.error(
            "Email send timed out",
            to=notification.to,
            timeout=settings.email_send_timeout_seconds,
        )
        return False
    except Exception as e:
        logger.error("Failed to send run notification email", to=notification.to, error=str(e))
        return False


def _format_duration(duration_ms: int | None) -> str:
    if duration_ms is None:
        return "n/a"
    seconds = duration_ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, rest = divmod(int(seconds), 60)
    return f"{minutes}m {rest}s"


def _get_run_email_html(notification: RunNotification, app_url: str) -> str:
    """Generate HTML content for the scheduled run email."""
    title = html.escape(notification.automation_title)
    color = _STATUS_COLORS.get(notification.status, "#333")
    outcome = "completed successfully" if notification.status == "success" else "failed"
    url = (
        f"{app_url}/automations/{notification.automation_id}"
        f"/executions/{notification.execution_id}"
    )
    error_block = ""
    if notification.error_message:
        error_block = f"<p><strong>Error:</strong> {html.escape(notification.error_message)}</p>"
    schedule_block = ""
    if notification.schedule_description:
        schedule_block = (
            f'<p style="{_MUTED_STYLE}">Schedule: '
            f"{html.escape(notification.schedule_description)}</p>"
        )
    logs_block = ""
    if notification.log_tail:
        logs = html.escape("\n".join(notification.log_tail))
        logs_block = f'<p>Last log lines:</p><pre style="{_LOG_STYLE}">{logs}</pre>'
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="{_BODY_STYLE}">
    <h1 style="color: {color}; margin-bottom: 24px;">{title}</h1>
    <p>The scheduled run {outcome}.</p>
    <p style="{_MUTED_STYLE}">Duration: {_format_duration(notification.duration_ms)}</p>
    {schedule_block}
    {error_block}
    {logs_block}
    <p style="margin: 32px 0;">
        <a href="{url}" style="{_BUTTON_STYLE}">View execution</a>
    </p>
</body>
</html>"""
