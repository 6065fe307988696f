"""UTC timestamp parsing and rendering shared by reports, manifests, and pointers."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]

__all__ = ["Clock", "format_utc_timestamp", "parse_utc_timestamp", "utc_now"]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_utc_timestamp(value: object) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware UTC datetime.

    Raises ``ValueError`` for non-strings, unparseable text, and naive timestamps. A naive value
    names no fixed instant, so it is refused rather than read in the host time zone.
    """

    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"invalid ISO-8601 timestamp: {value!r}") from exc
    else:
        raise ValueError(f"expected ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        raise ValueError(f"timestamp must carry a UTC offset: {value!r}")
    return parsed.astimezone(UTC)


def format_utc_timestamp(value: datetime | str) -> str:
    """Render ``value`` as ``YYYY-MM-DDTHH:MM:SS.ffffffZ``."""

    normalized = parse_utc_timestamp(value)
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")
