"""Boulder state and plan progress for a project root.

The boulder file (.sisyphus/boulder.json) names the active plan and the
session ids that worked on it. Both files live inside the project root and
are read through the path guard.
"""

import os
import re

from ..config import BOULDER_RELATIVE_PATH
from ..logging_config import get_logger
from ..types import BoulderState, PlanProgress
from ..utils import as_string, read_json_file
from .paths import AccessDeniedError, assert_allowed_path

logger = get_logger(__name__, 'paths')

_UNCHECKED_RE = re.compile(r'^[-*]\s*\[\s*\]', re.MULTILINE)
_CHECKED_RE = re.compile(r'^[-*]\s*\[[xX]\]', re.MULTILINE)
_STEP_RE = re.compile(r'^[-*]\s*\[(\s*|[xX])\][ \t]*(.*)$', re.MULTILINE)


def read_boulder_state(project_root: str) -> BoulderState | None:
    """Read .sisyphus/boulder.json, or None when missing or malformed."""
    file_path = assert_allowed_path(
        os.path.join(project_root, BOULDER_RELATIVE_PATH),
        [project_root],
    )
    if not os.path.isfile(file_path):
        return None

    data = read_json_file(file_path)
    if not isinstance(data, dict):
        logger.debug("Ignoring malformed boulder state at %s", file_path)
        return None

    session_ids = data.get('session_ids')
    return {
        'active_plan': as_string(data.get('active_plan')) or "",
        'started_at': as_string(data.get('started_at')) or "",
        'session_ids': [s for s in session_ids if isinstance(s, str)] if isinstance(session_ids, list) else [],
        'plan_name': as_string(data.get('plan_name')) or "",
    }


def get_plan_progress_from_markdown(content: str) -> dict:
    """Count markdown checkboxes in a plan.

    A plan with no checkboxes is complete.
    """
    unchecked = len(_UNCHECKED_RE.findall(content))
    completed = len(_CHECKED_RE.findall(content))
    total = unchecked + completed
    return {
        'total': total,
        'completed': completed,
        'isComplete': total == 0 or completed == total,
    }


def get_plan_steps_from_markdown(content: str) -> list[dict]:
    """Checkbox lines of a plan as {checked, text}, in document order."""
    return [
        {'checked': mark.lower() == 'x', 'text': text.strip()}
        for mark, text in _STEP_RE.findall(content)
    ]


def _missing_plan() -> PlanProgress:
    return {'total': 0, 'completed': 0, 'isComplete': False, 'missing': True, 'steps': []}


def read_plan_progress(project_root: str, plan_path: str) -> PlanProgress:
    """Progress of the plan at plan_path (relative paths resolve against project_root)."""
    if not plan_path:
        return _missing_plan()
    try:
        plan_real = assert_allowed_path(plan_path, [project_root], base_dir=project_root)
    except AccessDeniedError:
        return _missing_plan()

    try:
        with open(plan_real, 'r', encoding='utf-8') as f:
            content = f.read()
    except (OSError, UnicodeDecodeError):
        return _missing_plan()

    return {
        **get_plan_progress_from_markdown(content),
        'missing': False,
        'steps': get_plan_steps_from_markdown(content),
    }
