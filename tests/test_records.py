"""Tests for record shape validation."""

from src.omo_dashboard.ingest.records import (
    is_plain_id,
    parse_message_meta,
    parse_session_meta,
    parse_tool_part,
)


class TestParseSessionMeta:
    """Tests for parse_session_meta."""

    def test_valid_session(self):
        """Test a complete session record is normalized."""
        meta = parse_session_meta({
            'id': 'ses_1', 'projectID': 'p', 'directory': '/proj', 'title': 'Main',
            'time': {'created': 1, 'updated': 2}, 'extra': 'dropped',
        })
        assert meta == {
            'id': 'ses_1', 'projectID': 'p', 'directory': '/proj', 'title': 'Main',
            'time': {'created': 1, 'updated': 2},
        }

    def test_missing_required_field(self):
        """Test records without id, projectID or directory are rejected."""
        assert parse_session_meta({'id': 'ses_1', 'projectID': 'p'}) is None
        assert parse_session_meta({'projectID': 'p', 'directory': '/x'}) is None

    def test_non_object(self):
        """Test non-dict records are rejected."""
        assert parse_session_meta(['ses_1']) is None
        assert parse_session_meta(None) is None

    def test_updated_defaults_to_created(self):
        """Test a missing time.updated falls back to time.created."""
        meta = parse_session_meta({'id': 's', 'projectID': 'p', 'directory': '/d', 'time': {'created': 5}})
        assert meta['time'] == {'created': 5, 'updated': 5}

    def test_empty_parent_id_not_carried(self):
        """Test an empty parentID leaves the session a main session."""
        meta = parse_session_meta({'id': 's', 'projectID': 'p', 'directory': '/d', 'parentID': ''})
        assert 'parentID' not in meta


class TestParseMessageMeta:
    """Tests for parse_message_meta."""

    def test_role_must_be_exact(self):
        """Test only 'user' and 'assistant' roles are accepted."""
        base = {'id': 'm', 'sessionID': 's', 'time': {'created': 1}}
        assert parse_message_meta({**base, 'role': 'user'}) is not None
        assert parse_message_meta({**base, 'role': 'assistant'}) is not None
        assert parse_message_meta({**base, 'role': 'Assistant'}) is None
        assert parse_message_meta({**base, 'role': 'system'}) is None
        assert parse_message_meta(base) is None

    def test_created_fallbacks(self):
        """Test created comes from data, then the fallback column, then 0."""
        rec = {'id': 'm', 'sessionID': 's', 'role': 'user'}
        assert parse_message_meta(rec, fallback_created=42)['time'] == {'created': 42}
        assert parse_message_meta(rec)['time'] == {'created': 0}
        assert parse_message_meta({**rec, 'time': {'created': 7}}, fallback_created=42)['time'] == {'created': 7}

    def test_completed_only_when_finite(self):
        """Test time.completed is dropped unless it is a finite number."""
        rec = {'id': 'm', 'sessionID': 's', 'role': 'assistant', 'time': {'created': 1, 'completed': 'soon'}}
        assert parse_message_meta(rec)['time'] == {'created': 1}

    def test_fallback_id(self):
        """Test the fallback id is used when the record has none."""
        meta = parse_message_meta({'sessionID': 's', 'role': 'user'}, fallback_id='msg_file')
        assert meta['id'] == 'msg_file'

    def test_path_like_id_rejected(self):
        """Test ids that are not a single path component are rejected."""
        for message_id in ('../../../../../../tmp', '..', 'a/b', 'a\\b'):
            assert parse_message_meta({'id': message_id, 'sessionID': 's', 'role': 'user'}) is None

    def test_nested_model_object(self):
        """Test provider and model are read from a nested model object."""
        meta = parse_message_meta({
            'id': 'm', 'sessionID': 's', 'role': 'assistant',
            'model': {'providerID': 'anthropic', 'modelID': 'claude'},
        })
        assert meta['providerID'] == 'anthropic'
        assert meta['modelID'] == 'claude'

    def test_tokens_normalized(self):
        """Test token counters default to 0 when not numbers."""
        meta = parse_message_meta({
            'id': 'm', 'sessionID': 's', 'role': 'assistant',
            'tokens': {'input': 10, 'output': 'x', 'cache': {'read': 3}},
        })
        assert meta['tokens'] == {'input': 10, 'output': 0, 'reasoning': 0, 'cache': {'read': 3, 'write': 0}}

    def test_unknown_fields_dropped(self):
        """Test prompt text and other fields are not carried over."""
        meta = parse_message_meta({
            'id': 'm', 'sessionID': 's', 'role': 'user', 'prompt': 'secret', 'summary': {'x': 1},
        })
        assert 'prompt' not in meta
        assert 'summary' not in meta


class TestParseToolPart:
    """Tests for parse_tool_part."""

    def _part(self, **overrides):
        part = {
            'id': 'prt_1', 'sessionID': 's', 'messageID': 'm', 'type': 'tool',
            'callID': 'call_1', 'tool': 'bash',
            'state': {'status': 'running', 'input': {'command': 'ls'}},
        }
        part.update(overrides)
        return part

    def test_valid_part(self):
        """Test a valid tool part is accepted."""
        part = parse_tool_part(self._part())
        assert part['tool'] == 'bash'
        assert part['state']['status'] == 'running'

    def test_non_tool_type(self):
        """Test text parts are rejected."""
        assert parse_tool_part(self._part(type='text')) is None

    def test_empty_call_id_or_tool(self):
        """Test empty callID or tool names are rejected."""
        assert parse_tool_part(self._part(callID='')) is None
        assert parse_tool_part(self._part(tool='')) is None

    def test_unknown_status(self):
        """Test statuses outside the four known values are rejected."""
        assert parse_tool_part(self._part(state={'status': 'done', 'input': {}})) is None

    def test_input_must_be_object(self):
        """Test null or scalar input is rejected."""
        assert parse_tool_part(self._part(state={'status': 'running', 'input': None})) is None
        assert parse_tool_part(self._part(state={'status': 'running', 'input': 'ls'})) is None

    def test_output_and_error_not_carried(self):
        """Test output, error and title never survive parsing."""
        part = parse_tool_part(self._part(state={
            'status': 'error', 'input': {}, 'output': 'o', 'error': 'e', 'title': 't',
            'time': {'start': 5, 'end': 'x'},
        }))
        assert set(part['state']) == {'status', 'input', 'time'}
        assert part['state']['time'] == {'start': 5}


class TestIsPlainId:
    """Tests for is_plain_id."""

    def test_plain_ids(self):
        """Test ordinary ids are accepted."""
        assert is_plain_id('msg_01ABC')
        assert is_plain_id('ses.v2')

    def test_path_like_ids(self):
        """Test separators, dot entries and non-strings are rejected."""
        for value in ('', '.', '..', '../etc', 'a/b', 'a\\b', None, 5):
            assert not is_plain_id(value)

