"""Administrator-configurable key/value settings."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from rukun.models.setting import Setting
from rukun.services.errors import ValidationError

logger = logging.getLogger(__name__)

INITIAL_BALANCE = "initial_balance"

DEFAULTS: dict[str, Any] = {
    INITIAL_BALANCE: 0,
}


class SettingsService:
    """Read and write settings rows."""

    def __init__(self, db: Session):
        self.db = db

    def get_value(self, key: str, default: Any = None) -> Any:
        setting = self.db.execute(select(Setting).where(Setting.key == key)).scalar_one_or_none()
        return setting.value if setting is not None else default

    def set_value(self, key: str, value: Any) -> Setting:
        """Upsert a setting and commit."""
        setting = self.db.execute(select(Setting).where(Setting.key == key)).scalar_one_or_none()
        if setting is None:
            setting = Setting(key=key, value=value)
            self.db.add(setting)
        else:
            setting.value = value
        self.db.commit()
        self.db.refresh(setting)
        logger.info("Setting %s updated to %r", key, value)
        return setting

    def get_all(self) -> dict[str, Any]:
        """All settings as a dict, with defaults for missing known keys."""
        values = dict(DEFAULTS)
        for setting in self.db.execute(select(Setting)).scalars():
            values[setting.key] = setting.value
        return values

    def get_initial_balance(self) -> Decimal:
        raw = self.get_value(INITIAL_BALANCE, DEFAULTS[INITIAL_BALANCE])
        try:
            return Decimal(str(raw))
        except InvalidOperation:
            logger.error("Stored initial_balance %r is not numeric, using 0", raw)
            return Decimal("0")

    def set_initial_balance(self, value: Any) -> Decimal:
        """Store the opening balance.

        Raises:
            ValidationError: If value is missing or not a number
        """
        if value is None or value == "":
            raise ValidationError("initial_balance is required")
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError("initial_balance must be a number") from None
        if not amount.is_finite():
            raise ValidationError("initial_balance must be a number")
        # JSON column: keep the exact decimal text
        self.set_value(INITIAL_BALANCE, str(amount))
        return amount


__all__ = ["SettingsService", "INITIAL_BALANCE", "DEFAULTS"]
