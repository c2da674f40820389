from datetime import datetime, timezone


def utcnow():
    """Naive UTC timestamp, matching how the database columns store time."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_datetime(datetime_obj):
    """Format datetime as an ISO-8601 UTC string."""
    if not datetime_obj:
        return None
    return datetime_obj.replace(microsecond=0).isoformat() + "Z"


def completion_percentage(completed, total):
    """Completed/total as a percentage rounded to 2 places, 0 when nothing exists."""
    if not total:
        return 0.0
    return round(completed / total * 100, 2)


def parse_bool_arg(value):
    if value is None:
        return False
    return str(value).lower() in ("true", "1", "yes")


def parse_positive_int(value, default):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default
