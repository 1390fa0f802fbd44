from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SystemClock:
    """Wall clock used in production"""

    def now(self) -> datetime:
        return utcnow()
