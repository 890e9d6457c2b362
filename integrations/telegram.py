"""
Telegram bot integration for sync alerts.

Sends a formatted summary when a sync session fails or completes with
failed items.
"""

from typing import Optional
import requests
import structlog

from config import settings
from models.sync import SyncReport, ControlState

logger = structlog.get_logger(__name__)


STATE_EMOJIS = {
    ControlState.FAILED: "🚨",
    ControlState.COMPLETED_WITH_FAILURES: "⚠️",
    ControlState.COMPLETED: "✅",
}

MAX_FAILED_ITEMS_LISTED = 10


class TelegramError(Exception):
    """Telegram API error."""
    pass


def get_telegram_config() -> tuple[Optional[str], Optional[str]]:
    """
    Get Telegram configuration from settings.

    Returns:
        tuple: (bot_token, chat_id)
    """
    if not settings.telegram_configured:
        logger.debug(
            "telegram_not_configured",
            has_token=bool(settings.telegram_bot_token),
            has_chat_id=bool(settings.telegram_chat_id)
        )
    return settings.telegram_bot_token, settings.telegram_chat_id


def format_sync_alert(report: SyncReport) -> str:
    """
    Format a session report as a Telegram message.

    Args:
        report: Finished session report

    Returns:
        Markdown message
    """
    session = report.session
    emoji = STATE_EMOJIS.get(report.state, "•")
    title = report.state.value.replace("_", " ").upper()

    lines = [
        f"{emoji} *Inventory sync {title}*",
        "",
        f"Session: `{session.session_id}`",
        f"Batches: {session.current_batch_index}/{session.total_batches}",
        f"SKUs: {session.processed_skus}/{session.total_skus}",
    ]

    if session.error_message:
        lines.append("")
        lines.append(f"Error: {session.error_message}")

    if report.channels:
        lines.append("")
        for summary in report.channels:
            lines.append(
                f"• {summary.channel}: {summary.succeeded}/{summary.total} ok "
                f"({summary.success_rate:.0f}%), {summary.changed} changed"
            )

    if report.failed_items:
        lines.append("")
        lines.append(f"Failed items ({len(report.failed_items)}):")
        for item in report.failed_items[:MAX_FAILED_ITEMS_LISTED]:
            reason = item.reason.value if item.reason else "unknown"
            lines.append(f"  `{item.sku}` {item.channel}: {reason}")
        if len(report.failed_items) > MAX_FAILED_ITEMS_LISTED:
            lines.append(f"  ...and {len(report.failed_items) - MAX_FAILED_ITEMS_LISTED} more")

    return "\n".join(lines)


def send_message(message: str, parse_mode: str = "Markdown") -> bool:
    """
    Send message to Telegram.

    Args:
        message: Message text to send
        parse_mode: Telegram parse mode (Markdown or HTML)

    Returns:
        True if sent, False if Telegram is not configured

    Raises:
        TelegramError: If send fails
    """
    bot_token, chat_id = get_telegram_config()

    if not bot_token or not chat_id:
        logger.info("telegram_not_configured_skipping_send")
        return False

    url = f"https://api.telegram.org/bot{bot_token}/sendMessage"

    payload = {
        "chat_id": chat_id,
        "text": message,
        "parse_mode": parse_mode,
        "disable_web_page_preview": True,
    }

    try:
        logger.info("sending_telegram_message", chat_id=chat_id)

        response = requests.post(url, json=payload, timeout=10)
        response.raise_for_status()

        result = response.json()

        if not result.get("ok"):
            error_msg = result.get("description", "Unknown error")
            logger.error("telegram_api_error", error=error_msg)
            raise TelegramError(f"Telegram API error: {error_msg}")

        logger.info("telegram_message_sent", message_id=result.get("result", {}).get("message_id"))
        return True

    except requests.exceptions.RequestException as e:
        logger.error("telegram_request_failed", error=str(e))
        raise TelegramError(f"Failed to send Telegram message: {str(e)}")


def send_sync_alert(report: SyncReport) -> bool:
    """
    Send a session report to Telegram.

    Raises:
        TelegramError: If send fails
    """
    return send_message(format_sync_alert(report))
