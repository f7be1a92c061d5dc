import re
from datetime import datetime, timezone
from pathlib import PurePosixPath, PureWindowsPath
from typing import Iterable, List, Optional

TASK_FILTERS = ("all", "active", "completed")


def now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def filter_tasks(tasks: Iterable[dict], status: Optional[str] = "all") -> List[dict]:
    """Project a task list by completion status (all, active or completed)"""
    status = (status or "all").lower()
    if status == "active":
        return [t for t in tasks if not t.get("completed")]
    if status == "completed":
        return [t for t in tasks if t.get("completed")]
    return list(tasks)


def clean_text(text: Optional[str]) -> str:
    """Strip surrounding whitespace; None becomes an empty string"""
    if not text:
        return ""
    return text.strip()


def sanitize_filename(name: Optional[str]) -> str:
    """Reduce a client supplied filename to a safe single path component"""
    if not name:
        return "file"

    # Drop any directory part, whichever separator the client used
    name = PureWindowsPath(PurePosixPath(name).name).name
    name = re.sub(r"\s+", "_", name.strip())
    name = re.sub(r"[^\w.\-]", "", name)
    name = name.lstrip(".")

    return name[:128] or "file"
