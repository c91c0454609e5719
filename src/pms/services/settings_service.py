from __future__ import annotations

import logging

from pms.domain.errors import ValidationError
from pms.domain.money import clamp_percent

log = logging.getLogger(__name__)

EDITABLE_SETTINGS = {"pharmacy_name", "pharmacy_address", "pharmacy_phone", "gst_percent", "currency_symbol"}


class SettingsService:
    def __init__(self, repo):
        self.repo = repo

    def get(self, key: str, default: str = "") -> str:
        value = self.repo.get_setting(key)
        return default if value is None else value

    def get_all(self) -> dict[str, str]:
        return self.repo.all_settings()

    def update(self, values: dict[str, object]) -> dict[str, str]:
        unknown = sorted(set(values) - EDITABLE_SETTINGS)
        if unknown:
            raise ValidationError(f"Unknown setting(s): {', '.join(unknown)}.")

        cleaned: dict[str, str] = {}
        for key, value in values.items():
            text = "" if value is None else str(value).strip()
            if key == "gst_percent":
                try:
                    pct = int(text)
                except ValueError as exc:
                    raise ValidationError("GST percent must be a whole number between 0 and 100.") from exc
                if not 0 <= pct <= 100:
                    raise ValidationError("GST percent must be a whole number between 0 and 100.")
                text = str(pct)
            if key == "pharmacy_name" and not text:
                raise ValidationError("Pharmacy name is required.")
            cleaned[key] = text

        self.repo.set_settings(cleaned)
        log.info("settings_updated keys=%s", ",".join(sorted(cleaned)))
        return self.get_all()

    def gst_percent(self) -> int:
        raw = self.get("gst_percent", "0")
        try:
            return clamp_percent(int(raw))
        except ValueError:
            log.warning("invalid_gst_setting value=%r", raw)
            return 0

    def currency_symbol(self) -> str:
        return self.get("currency_symbol", "Rs.") or "Rs."
