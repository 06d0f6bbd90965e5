from datetime import datetime, timezone
from typing import Optional
from admin.errors import Unprocessable

def now_utc():
    return datetime.now(timezone.utc)

def parse_utc(raw: Optional[str], param: str) -> Optional[datetime]:
    """
    Accepts YYYY-MM-DD or full ISO8601 (a trailing Z is allowed).
    Naive values are taken as UTC. Blank -> None.
    """
    if raw is None or not str(raw).strip():
        return None
    value = str(raw).strip()
    if value.endswith("Z") or value.endswith("z"):
        value = value[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise Unprocessable(
            f"Invalid ISO date-time for parameter '{param}': {raw}",
            details={"param": param, "value": raw},
        )
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def to_utc_string(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
