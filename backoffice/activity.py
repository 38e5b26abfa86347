"""
Fleet Backoffice Activity Log

Operator-facing log of what the backoffice does on the backend's behalf:
sign-ins, bookings touched, payments recorded, settlements closed. Kept
separate from the process log so it reads like a counter ledger.

Events:
- 🔑 AUTH: Sign in / sign out / session refresh
- 🌐 API: Backend calls that failed
- 💵 PAYMENT: Manual payments recorded, completed, cancelled
- 📒 SETTLE: Settlements closed / reopened
- 🏦 MERCHANT: Stripe Connect onboarding
- 📦 CATALOG: Packages, offerings, pricings, discounts
- 🚗 BOOKING: Booking modifications
"""

import logging
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path


class Event(Enum):
    """Event types for the activity log."""
    # Auth events
    AUTH_LOGIN = "🔑 LOGIN"
    AUTH_LOGOUT = "🔑 LOGOUT"
    AUTH_REFRESH = "🔑 REFRESH"
    AUTH_ERROR = "🔑 AUTH.ERR"
    AUTH_REGISTER = "🔑 REGISTER"

    # Backend API events
    API_ERROR = "🌐 API.ERR"

    # Money events
    PAYMENT_RECORDED = "💵 PAYMENT"
    PAYMENT_STATUS = "💵 PAY.STATUS"
    SETTLEMENT = "📒 SETTLE"

    # Merchant events
    MERCHANT = "🏦 MERCHANT"

    # Catalog + booking events
    CATALOG = "📦 CATALOG"
    BOOKING = "🚗 BOOKING"
    SETTINGS = "⚙️ SETTINGS"

    # System events
    SYSTEM_START = "⚡ START"
    SYSTEM_STOP = "⚡ STOP"
    SYSTEM_ERROR = "❌ ERROR"


class ActivityFormatter(logging.Formatter):
    """Compact formatter: time, event tag, message."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        event = getattr(record, "event", None)
        if event:
            prefix = event.value
        else:
            prefix = f"[{record.levelname}]"

        return f"{timestamp} {prefix} │ {record.getMessage()}"


def _preview(text: str, limit: int = 60) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class ActivityLog:
    """
    Central activity logger for the backoffice.

    Usage:
        from backoffice.activity import activity

        activity.login("jdoe")
        activity.payment_recorded(42, 150.0, "CASH", "ADVANCE_PAYMENT")
        activity.settlement(42, "closed")
    """

    def __init__(self, name: str = "backoffice.activity"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)
        self._configured = False

    def configure(self, log_file: Path | None = None, console: bool = True) -> None:
        """Configure activity log outputs."""
        if self._configured:
            return

        formatter = ActivityFormatter()

        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        # Don't propagate to root logger (avoid duplicate output)
        self.logger.propagate = False
        self._configured = True

    def _log(self, event: Event, message: str) -> None:
        if not self._configured:
            self.configure()
        self.logger.info(message, extra={"event": event})

    # === Auth events ===

    def login(self, username: str) -> None:
        self._log(Event.AUTH_LOGIN, f"@{username} signed in")

    def logout(self, username: str | None = None) -> None:
        self._log(Event.AUTH_LOGOUT, f"@{username} signed out" if username else "Session ended")

    def token_refreshed(self, user_id: str) -> None:
        self._log(Event.AUTH_REFRESH, f"Access token refreshed for {user_id}")

    def auth_error(self, error: str) -> None:
        self._log(Event.AUTH_ERROR, error)

    def registered(self, account_name: str, username: str) -> None:
        """Log a new master account registration."""
        self._log(Event.AUTH_REGISTER, f"{account_name} (@{username})")

    # === Backend events ===

    def api_error(self, method: str, url: str, status: int, message: str) -> None:
        """Log a failed backend call."""
        self._log(Event.API_ERROR, f"{method} {url} → {status}: {_preview(message, 80)}")

    # === Money events ===

    def payment_recorded(
        self,
        booking_id: int | str,
        amount: float,
        method: str,
        transaction_type: str,
        user: str | None = None,
    ) -> None:
        """Log a manual payment recorded against a booking."""
        msg = f"Booking #{booking_id}: {amount:.2f} via {method} ({transaction_type})"
        if user:
            msg = f"@{user} → {msg}"
        self._log(Event.PAYMENT_RECORDED, msg)

    def payment_status(self, booking_id: int | str, payment_id: int | str, status: str) -> None:
        self._log(Event.PAYMENT_STATUS, f"Booking #{booking_id} payment #{payment_id} → {status}")

    def settlement(self, booking_id: int | str, action: str, note: str | None = None) -> None:
        """Log a settlement close/reopen."""
        msg = f"Booking #{booking_id} {action}"
        if note:
            msg += f' "{_preview(note)}"'
        self._log(Event.SETTLEMENT, msg)

    # === Merchant events ===

    def merchant(self, message: str) -> None:
        self._log(Event.MERCHANT, message)

    # === Catalog / booking events ===

    def catalog(self, entity: str, action: str, name: str) -> None:
        self._log(Event.CATALOG, f"{entity} {action}: {_preview(name)}")

    def booking(self, booking_id: int | str, message: str) -> None:
        self._log(Event.BOOKING, f"#{booking_id} {message}")

    def settings(self, message: str) -> None:
        self._log(Event.SETTINGS, message)

    # === System events ===

    def start(self, component: str) -> None:
        self._log(Event.SYSTEM_START, component)

    def stop(self, component: str) -> None:
        self._log(Event.SYSTEM_STOP, component)

    def error(self, message: str) -> None:
        self._log(Event.SYSTEM_ERROR, message)


# Global activity log instance
activity = ActivityLog()
