"""Tests for boulder state and plan progress."""

import json
import os

import pytest

from src.omo_dashboard.ingest import (
    AccessDeniedError,
    get_plan_progress_from_markdown,
    get_plan_steps_from_markdown,
    read_boulder_state,
    read_plan_progress,
)


def _write_boulder(project_root, data):
    path = project_root / '.sisyphus' / 'boulder.json'
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data))


class TestPlanProgressFromMarkdown:
    """Tests for checkbox counting."""

    def test_zero_checkboxes_is_complete(self):
        """Test a plan without checkboxes counts as complete."""
        assert get_plan_progress_from_markdown('# Plan\n\nJust prose.\n') == {
            'total': 0, 'completed': 0, 'isComplete': True,
        }

    def test_counts_checked_and_unchecked(self):
        """Test both bullet styles and both x cases are counted."""
        content = '- [ ] one\n* [x] two\n- [X] three\n-[ ] four\n  - [ ] indented\n'
        assert get_plan_progress_from_markdown(content) == {
            'total': 4, 'completed': 2, 'isComplete': False,
        }

    def test_all_checked(self):
        """Test a fully checked plan is complete."""
        assert get_plan_progress_from_markdown('- [x] a\n- [x] b')['isComplete'] is True

    def test_steps(self):
        """Test steps keep document order and their text."""
        assert get_plan_steps_from_markdown('- [ ] Write tests\n- [x]  Ship it  \nprose\n') == [
            {'checked': False, 'text': 'Write tests'},
            {'checked': True, 'text': 'Ship it'},
        ]


class TestReadBoulderState:
    """Tests for read_boulder_state."""

    def test_missing_file(self, project_root):
        """Test no boulder file yields None."""
        assert read_boulder_state(str(project_root)) is None

    def test_malformed_file(self, project_root):
        """Test unparseable JSON yields None."""
        _write_boulder(project_root, '{"active_plan": ')
        assert read_boulder_state(str(project_root)) is None

    def test_valid_state(self, project_root):
        """Test fields are read and non-string session ids dropped."""
        _write_boulder(project_root, {
            'active_plan': '.sisyphus/plans/p.md',
            'started_at': '2026-01-01T00:00:00Z',
            'session_ids': ['ses_a', 7, 'ses_b'],
            'plan_name': 'p',
        })

        assert read_boulder_state(str(project_root)) == {
            'active_plan': '.sisyphus/plans/p.md',
            'started_at': '2026-01-01T00:00:00Z',
            'session_ids': ['ses_a', 'ses_b'],
            'plan_name': 'p',
        }

    def test_symlinked_state_dir_escaping_root(self, project_root, tmp_path):
        """Test a .sisyphus symlink pointing outside the project is denied."""
        outside = tmp_path / 'outside'
        outside.mkdir()
        (outside / 'boulder.json').write_text('{}')
        os.symlink(outside, project_root / '.sisyphus')

        with pytest.raises(AccessDeniedError):
            read_boulder_state(str(project_root))


class TestReadPlanProgress:
    """Tests for read_plan_progress."""

    def test_relative_plan(self, project_root):
        """Test a relative plan path resolves against the project root."""
        plan = project_root / '.sisyphus' / 'plans' / 'p.md'
        plan.parent.mkdir(parents=True)
        plan.write_text('- [x] a\n- [ ] b\n')

        progress = read_plan_progress(str(project_root), '.sisyphus/plans/p.md')

        assert progress['total'] == 2
        assert progress['completed'] == 1
        assert progress['isComplete'] is False
        assert progress['missing'] is False
        assert len(progress['steps']) == 2

    def test_missing_plan(self, project_root):
        """Test a plan that does not exist is reported missing."""
        progress = read_plan_progress(str(project_root), 'nope.md')
        assert progress['missing'] is True
        assert progress['isComplete'] is False

    def test_empty_path(self, project_root):
        """Test an empty plan path is reported missing."""
        assert read_plan_progress(str(project_root), '')['missing'] is True

    def test_plan_outside_project(self, project_root, tmp_path):
        """Test a plan outside the project root is reported missing."""
        outside = tmp_path / 'outside.md'
        outside.write_text('- [x] leaked')

        progress = read_plan_progress(str(project_root), str(outside))

        assert progress['missing'] is True
        assert progress['steps'] == []
