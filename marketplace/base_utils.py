# marketplace/base_utils.py

import math
import logging
from datetime import datetime, timezone

from marketplace.errors import BadRequest

logger = logging.getLogger("adspace_backend")


class BaseUtils():

    # -----------------------
    # General Utils
    # -----------------------

    def _coerce_field_to_str(self, value) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return str(value).strip()

    # -----------------------
    # Input coercion
    # -----------------------

    def _parse_datetime(self, value, field_name: str, required: bool = True) -> datetime | None:
        """
        Accepts ISO-8601 strings ("2026-05-01", "2026-05-01T10:00:00Z") or
        datetimes. Aware values are converted to naive UTC.
        """
        if value is None or value == "":
            if required:
                raise BadRequest(f"{field_name} is required")
            return None

        if isinstance(value, datetime):
            parsed = value
        else:
            raw = str(value).strip()
            if raw.endswith("Z"):
                raw = raw[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(raw)
            except ValueError:
                logger.info("Invalid %s value: %r", field_name, value)
                raise BadRequest("Invalid date format")

        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    def _parse_number(self, value, field_name: str, cast=float):
        if value is None or value == "":
            raise BadRequest(f"{field_name} is required")
        try:
            number = cast(value)
        except (TypeError, ValueError, OverflowError):
            raise BadRequest(f"{field_name} must be a number")
        if not math.isfinite(number):
            raise BadRequest(f"{field_name} must be a number")
        if number < 0:
            raise BadRequest(f"{field_name} must not be negative")
        # Integer columns are 32-bit on Postgres
        if cast is int and number > 2**31 - 1:
            raise BadRequest(f"{field_name} is too large")
        return number

    def _require_choice(self, value, choices, field_name: str) -> str:
        if value not in choices:
            allowed = ", ".join(repr(c) for c in choices)
            raise BadRequest(f"{field_name} must be one of {allowed}")
        return value
