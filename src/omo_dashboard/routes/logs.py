"""Log routes."""

from fastapi import APIRouter, HTTPException

from ..logging_config import NAMESPACES, get_buffer_handler, parse_level, set_log_level

router = APIRouter(prefix="/api", tags=["logs"])


@router.get("/logs")
def get_logs(count: int = 100, namespace: str | None = None):
    """Recent log entries from the in-memory buffer.

    Args:
        count: Maximum number of entries
        namespace: Optional namespace filter (storage, derive, api, paths)
    """
    entries = get_buffer_handler().get_history(count, namespace or None)
    return {"logs": entries, "namespaces": list(NAMESPACES)}


@router.post("/logs/level")
def change_log_level(level: str):
    """Change the log level at runtime."""
    try:
        parse_level(level)
    except ValueError as e:
        raise HTTPException(400, str(e))
    set_log_level(level)
    return {"ok": True, "level": level.strip().upper()}
