from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    # columns store naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(moment: datetime | None) -> datetime | None:
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def expires_in(days: int) -> datetime:
    return utcnow() + timedelta(days=days)


def is_past(moment: datetime | date | None) -> bool:
    if moment is None:
        return False
    if isinstance(moment, datetime):
        return utcnow() > as_naive_utc(moment)
    return utcnow().date() > moment
