"""Data directory resolution and the path access guard.

Every file the dashboard reads goes through assert_allowed_path first, so
a path (or a symlink inside an allowed root) can never lead a read outside
the roots it was granted.
"""

import os
from collections.abc import Mapping, Sequence

from ..logging_config import get_logger

logger = get_logger(__name__, 'paths')


class AccessDeniedError(PermissionError):
    """Raised when a resolved path falls outside every allowed root."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


def get_data_dir(env: Mapping[str, str] | None = None, homedir: str | None = None) -> str:
    """Resolve the XDG data directory.

    XDG_DATA_HOME wins when set (a leading '~' is expanded against homedir);
    otherwise ~/.local/share on every platform.
    """
    env = os.environ if env is None else env
    homedir = homedir if homedir is not None else os.path.expanduser("~")

    data_dir = env.get("XDG_DATA_HOME") or None
    if data_dir and data_dir.startswith("~"):
        data_dir = os.path.join(homedir, data_dir[1:].lstrip("/"))
    return data_dir if data_dir else os.path.join(homedir, ".local", "share")


def get_opencode_storage_dir_from_data_dir(data_dir: str) -> str:
    return os.path.join(data_dir, "opencode", "storage")


def get_opencode_storage_dir(env: Mapping[str, str] | None = None, homedir: str | None = None) -> str:
    return get_opencode_storage_dir_from_data_dir(get_data_dir(env, homedir))


def get_opencode_sqlite_path(data_dir: str) -> str:
    return os.path.join(data_dir, "opencode", "opencode.db")


def realpath_safe(p: str) -> str | None:
    """Resolve symlinks of an existing path, or None if it does not exist."""
    try:
        if not os.path.lexists(p):
            return None
        return os.path.realpath(p, strict=True)
    except OSError:
        return None


def is_path_inside(root_real: str, candidate_real: str) -> bool:
    """True if candidate_real equals root_real or is nested below it."""
    try:
        rel = os.path.relpath(candidate_real, root_real)
    except ValueError:
        # different drives on Windows
        return False
    return rel == "." or (not rel.startswith("..") and not os.path.isabs(rel))


def _resolve_candidate_real(candidate_abs: str) -> str | None:
    existing = realpath_safe(candidate_abs)
    if existing:
        return existing

    # Resolve the nearest existing ancestor and re-append the missing suffix.
    cur = candidate_abs
    prev = ""
    while cur != prev:
        if os.path.lexists(cur):
            parent_real = realpath_safe(cur)
            if not parent_real:
                return None
            suffix = os.path.relpath(candidate_abs, cur)
            return parent_real if suffix == "." else os.path.join(parent_real, suffix)
        prev = cur
        cur = os.path.dirname(cur)

    return None


def assert_allowed_path(
    candidate_path: str,
    allowed_roots: Sequence[str],
    base_dir: str | None = None,
) -> str:
    """Resolve candidate_path and require it to live under an allowed root.

    Args:
        candidate_path: Path to check, absolute or relative to base_dir
        allowed_roots: Roots the resolved path may equal or be nested under
        base_dir: Base for relative paths (default: current directory)

    Returns:
        The resolved real path of the candidate

    Raises:
        AccessDeniedError: If the resolved path escapes every allowed root,
            including through a symlink
    """
    base = base_dir if base_dir is not None else os.getcwd()
    candidate_abs = os.path.abspath(os.path.join(base, os.fspath(candidate_path)))

    candidate_real = _resolve_candidate_real(candidate_abs)
    if not candidate_real:
        logger.warning("Access denied: unresolvable path %s", candidate_abs)
        raise AccessDeniedError()

    for root in allowed_roots:
        root_abs = os.path.abspath(os.path.join(base, os.fspath(root)))
        root_real = _resolve_candidate_real(root_abs) or root_abs
        if is_path_inside(root_real, candidate_real):
            return candidate_real

    logger.warning("Access denied: %s is outside the allowed roots", candidate_abs)
    raise AccessDeniedError()
