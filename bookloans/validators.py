import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional

from .errors import InvalidArgument

ROLES = ("user", "admin")


class FieldValidator:
    """Presence and type checks for request payloads."""

    @staticmethod
    def is_blank(value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, str):
            return not value.strip()
        return False

    @staticmethod
    def require(fields: Dict[str, Any], names: Iterable[str]) -> None:
        """Raise InvalidArgument naming every missing field, in the order given."""
        names = list(names)
        missing = [name for name in names if FieldValidator.is_blank(fields.get(name))]
        if missing:
            raise InvalidArgument(f"{', '.join(names)} are required (missing: {', '.join(missing)})")

    @staticmethod
    def parse_id(value: Any, name: str) -> int:
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool):
            raise InvalidArgument(f"{name} must be an integer id")
        try:
            parsed = int(str(value).strip())
        except (TypeError, ValueError):
            raise InvalidArgument(f"{name} must be an integer id")
        if parsed < 1:
            raise InvalidArgument(f"{name} must be a positive integer id")
        return parsed

    @staticmethod
    def parse_optional_int(value: Any, name: str) -> Optional[int]:
        if FieldValidator.is_blank(value):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidArgument(f"{name} must be a number")


class DateValidator:
    """Accepts ``YYYY-MM-DD`` or a full ISO datetime and keeps only the date."""

    @staticmethod
    def parse_date(value: Any, name: str) -> str:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if not isinstance(value, str) or not value.strip():
            raise InvalidArgument(f"{name} must be a valid date")
        raw = value.strip()
        # JavaScript clients send a trailing 'Z'
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            if len(raw) == 10:
                return date.fromisoformat(raw).isoformat()
            return datetime.fromisoformat(raw).date().isoformat()
        except ValueError:
            raise InvalidArgument(f"{name} must be a valid date, got {value!r}")

    @staticmethod
    def parse_optional_date(value: Any, name: str) -> Optional[str]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return DateValidator.parse_date(value, name)

    @staticmethod
    def today() -> str:
        return date.today().isoformat()


class TextValidator:
    """Label, role and free-text normalisation."""

    _LABEL_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")

    @staticmethod
    def normalize_label(raw: Any) -> str:
        if not isinstance(raw, str) or not raw.strip():
            raise InvalidArgument("copyId is required")
        label = raw.strip().upper()
        if not TextValidator._LABEL_RE.match(label):
            raise InvalidArgument(f"copyId {raw!r} may only contain letters, digits, '-', '_' and '.'")
        return label

    @staticmethod
    def label_prefix(title: str) -> str:
        """Copy label prefix derived from a book title: whitespace removed, upper-cased."""
        prefix = re.sub(r"[^A-Za-z0-9]", "", title or "").upper()
        return prefix or "COPY"

    @staticmethod
    def validate_role(role: Optional[str]) -> str:
        if role is None or not str(role).strip():
            return "user"
        normalized = str(role).strip().lower()
        if normalized not in ROLES:
            raise InvalidArgument(f"role must be one of: {', '.join(ROLES)}")
        return normalized

    @staticmethod
    def clean_text(value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None
