"""Date manipulation utilities"""

from datetime import datetime, timezone
from typing import Optional

# Formats seen in mobile-money statement exports, tried in order
STATEMENT_TIMESTAMP_FORMATS = [
    "%Y%m%d%H%M%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d-%m-%Y %H:%M:%S",
    "%d.%m.%Y %H:%M:%S",
    "%Y-%m-%d",
    "%d/%m/%Y",
]


def parse_statement_timestamp(raw: str | None) -> Optional[datetime]:
    """Parse a statement date/time cell; returns None when no known format fits"""
    if not raw:
        return None
    text = raw.strip()
    for fmt in STATEMENT_TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def utc_now() -> datetime:
    """Timezone-aware current time"""
    return datetime.now(timezone.utc)
