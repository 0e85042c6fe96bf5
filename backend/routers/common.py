# routers/common.py — Response formatting shared by the routers
from datetime import datetime
from typing import Any, Optional


def ts(dt) -> Optional[str]:
    """ISO-8601 timestamp, or None"""
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def enum_value(v: Any) -> Any:
    return v.value if hasattr(v, "value") else v
