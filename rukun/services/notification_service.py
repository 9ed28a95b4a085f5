"""Push notifications to residents through the Expo push service.

Payloads follow {title, body, data: {type, ...context}}. Delivery never raises:
every failure is logged and swallowed so that it cannot roll back the state
change that triggered it.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Optional

import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from rukun.config import get_settings
from rukun.models.user import Role, User
from rukun.services.locale_service import format_amount

logger = logging.getLogger(__name__)

# Expo accepts at most 100 messages per request
CHUNK_SIZE = 100

_EXPO_TOKEN_RE = re.compile(r"^Expo(nent)?PushToken\[.+\]$")
_UUID_TOKEN_RE = re.compile(r"^[a-z\d]{8}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{12}$", re.I)

# Notification types carried in data["type"]
IURAN_STATUS_UPDATE = "iuran_status_update"
NEW_IURAN = "new_iuran"
NEW_YEARLY_IURAN = "new_yearly_iuran"
CUSTOM_IURAN = "custom_iuran"
JATUH_TEMPO_REMINDER = "jatuh_tempo_reminder"
PAYMENT_RECORDED = "payment_recorded"


@dataclass
class NotificationPayload:
    """Message shown on the resident's device."""

    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> Optional[str]:
        return self.data.get("type")

    def to_message(self, token: str) -> dict[str, Any]:
        return {
            "to": token,
            "sound": "default",
            "title": self.title,
            "body": self.body,
            "data": self.data,
            "channelId": "default",
            "priority": "high",
        }


def is_expo_push_token(token: Optional[str]) -> bool:
    if not token:
        return False
    return bool(_EXPO_TOKEN_RE.match(token) or _UUID_TOKEN_RE.match(token))


def chunk_messages(messages: list[dict], size: int = CHUNK_SIZE) -> list[list[dict]]:
    return [messages[i : i + size] for i in range(0, len(messages), size)]


class ExpoPushClient:
    """Thin HTTP client for the Expo push endpoint."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        settings = get_settings()
        self.url = url or settings.expo_push_url
        self.timeout = timeout or settings.push_timeout_seconds
        self.session = session or requests.Session()

    def send(self, messages: list[dict]) -> list[dict]:
        """Send one chunk of messages and return the push tickets.

        Raises:
            requests.RequestException: On transport or HTTP errors
        """
        response = self.session.post(
            self.url,
            json=messages,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json().get("data", [])


class NotificationService:
    """Fan-out of notification payloads to users, user sets and roles."""

    def __init__(self, db: Session, client: Optional[ExpoPushClient] = None):
        """Initialize notification service.

        Args:
            db: SQLAlchemy session used to look up push tokens
            client: Push client (default: ExpoPushClient when PUSH_ENABLED)
        """
        self.db = db
        if client is None and get_settings().push_enabled:
            client = ExpoPushClient()
        self.client = client

    def send_to_user(self, user_id: int, payload: NotificationPayload) -> int:
        """Notify one user. Returns the number of messages handed to the client."""
        try:
            token = self.db.execute(
                select(User.push_token).where(User.id == user_id)
            ).scalar_one_or_none()
        except Exception as e:
            logger.error("Failed to look up push token of user %s: %s", user_id, e)
            return 0
        if not token:
            logger.info("User %s has no push token registered", user_id)
            return 0
        return self.send_to_tokens([token], payload)

    def send_to_users(self, user_ids: Iterable[int], payload: NotificationPayload) -> int:
        ids = list(user_ids)
        if not ids:
            return 0
        try:
            tokens = (
                self.db.execute(
                    select(User.push_token).where(
                        User.id.in_(ids), User.push_token.is_not(None)
                    )
                )
                .scalars()
                .all()
            )
        except Exception as e:
            logger.error("Failed to look up push tokens of %d users: %s", len(ids), e)
            return 0
        if not tokens:
            logger.info("No users with push tokens among %d recipients", len(ids))
            return 0
        return self.send_to_tokens(tokens, payload)

    def send_to_role(self, role: Role, payload: NotificationPayload) -> int:
        """Notify every non-deleted user holding the role."""
        try:
            tokens = (
                self.db.execute(
                    select(User.push_token).where(
                        User.role == role,
                        User.is_deleted.is_(False),
                        User.push_token.is_not(None),
                    )
                )
                .scalars()
                .all()
            )
        except Exception as e:
            logger.error("Failed to look up push tokens for role %s: %s", role, e)
            return 0
        if not tokens:
            logger.info("No users with role %s have push tokens", getattr(role, "value", role))
            return 0
        return self.send_to_tokens(tokens, payload)

    def send_to_tokens(self, tokens: Iterable[str], payload: NotificationPayload) -> int:
        """Deliver to raw tokens, skipping invalid ones, in chunks of 100."""
        valid_tokens = []
        for token in tokens:
            if is_expo_push_token(token):
                valid_tokens.append(token)
            else:
                logger.warning("Push token %s is not a valid Expo push token", token)
        if not valid_tokens:
            return 0
        if self.client is None:
            logger.debug("Push disabled, dropping %s notification", payload.type)
            return 0

        messages = [payload.to_message(token) for token in valid_tokens]
        sent = 0
        for chunk in chunk_messages(messages):
            try:
                tickets = self.client.send(chunk)
            except Exception as e:
                logger.error("Error sending %s notifications: %s", payload.type, e)
                continue
            self._handle_tickets(tickets)
            sent += len(chunk)
        logger.info("Sent %s notification to %d device(s)", payload.type, sent)
        return sent

    @staticmethod
    def _handle_tickets(tickets: list[dict]) -> None:
        for ticket in tickets or []:
            if ticket.get("status") != "error":
                continue
            error = (ticket.get("details") or {}).get("error")
            logger.error("Push ticket error: %s (%s)", ticket.get("message"), error)
            if error == "DeviceNotRegistered":
                logger.info("Device token is no longer registered")


def iuran_status_update(
    iuran_id: int, period: str, status: str, note: Optional[str] = None
) -> NotificationPayload:
    """Officer confirmed or rejected a submitted payment."""
    data: dict[str, Any] = {
        "type": IURAN_STATUS_UPDATE,
        "iuran_id": iuran_id,
        "period": period,
        "status": status,
    }
    if status == "paid":
        title = "Pembayaran Iuran Dikonfirmasi ✅"
        body = f"Pembayaran iuran periode {period} telah dikonfirmasi."
    else:
        title = "Pembayaran Iuran Ditolak ❌"
        body = f"Pembayaran iuran periode {period} ditolak."
        if note:
            body += f" Catatan: {note}"
        data["note"] = note
    return NotificationPayload(title=title, body=body, data=data)


def new_iuran(period: str) -> NotificationPayload:
    return NotificationPayload(
        title="Iuran Bulanan Baru 📋",
        body=f"Iuran bulanan untuk periode {period} sudah tersedia. Silahkan lakukan pembayaran.",
        data={"type": NEW_IURAN, "period": period},
    )


def new_yearly_iuran(year: int) -> NotificationPayload:
    return NotificationPayload(
        title="Iuran Tahunan Baru 📅",
        body=f"Iuran untuk tahun {year} sudah tersedia.",
        data={"type": NEW_YEARLY_IURAN, "year": year},
    )


def custom_iuran(period: str, amount: Decimal, description: str) -> NotificationPayload:
    return NotificationPayload(
        title="Iuran Khusus 📌",
        body=f"{description}: {format_amount(amount)} untuk periode {period}.",
        data={
            "type": CUSTOM_IURAN,
            "period": period,
            "amount": str(amount),
            "description": description,
        },
    )


def jatuh_tempo_reminder(period: str) -> NotificationPayload:
    return NotificationPayload(
        title="Pengingat Jatuh Tempo ⏰",
        body=f"Iuran periode {period} belum dibayar. Mohon segera lakukan pembayaran.",
        data={"type": JATUH_TEMPO_REMINDER, "period": period},
    )


def payment_recorded(periods: list[str], amount: Decimal) -> NotificationPayload:
    """Payment recorded by the bendahara; ``amount`` is charged per period."""
    periods_text = ", ".join(periods)
    total = amount * len(periods)
    return NotificationPayload(
        title="Pembayaran berhasil dicatat! ✅",
        body=(
            f"Pembayaran Anda untuk periode {periods_text} telah dicatat oleh Bendahara. "
            f"Total: {format_amount(total)}"
        ),
        data={
            "type": PAYMENT_RECORDED,
            "periods": periods_text,
            "amount": str(amount),
            "total": str(total),
        },
    )


__all__ = [
    "NotificationPayload",
    "ExpoPushClient",
    "NotificationService",
    "is_expo_push_token",
    "iuran_status_update",
    "new_iuran",
    "new_yearly_iuran",
    "custom_iuran",
    "jatuh_tempo_reminder",
    "payment_recorded",
]
