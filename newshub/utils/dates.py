"""Publication date parsing shared by sorting and persistence."""
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


def parse_pub_date(value: Optional[str]) -> Optional[datetime]:
    """Parse RFC 822 (RSS, Naver) or ISO 8601 (Atom) dates into aware UTC datetimes."""
    if not value:
        return None
    value = value.strip()
    parsed: Optional[datetime] = None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        parsed = None
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: Optional[str]) -> Optional[str]:
    parsed = parse_pub_date(value)
    return parsed.isoformat() if parsed else None
