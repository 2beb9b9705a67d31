"""Tests for the dashboard and log routes."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.omo_dashboard.results import derive_failed
from src.omo_dashboard.server import create_app


@pytest.fixture
def client(store):
    """Test client over the file storage of a temporary project."""
    return TestClient(create_app(str(store.project_root), backend=store.files()))


class TestHealth:
    """Tests for GET /api/health."""

    def test_ok(self, client):
        """Test the health check answers ok."""
        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.json() == {'ok': True}


class TestGetDashboard:
    """Tests for GET /api/dashboard."""

    def test_returns_snapshot(self, store, client):
        """Test the snapshot follows the project's main session."""
        store.add_session('ses_main', title='Main work')
        store.add_message('msg_1', 'ses_main', created=1000, completed=1100)

        response = client.get('/api/dashboard')

        assert response.status_code == 200
        data = response.json()
        assert data['mainSession']['sessionId'] == 'ses_main'
        assert data['mainSession']['session'] == 'Main work'
        assert set(data['raw']) == {'mainSession', 'planProgress', 'backgroundTasks', 'timeSeries', 'tokenUsage'}

    def test_empty_project(self, client):
        """Test a project without sessions renders the empty state."""
        response = client.get('/api/dashboard')

        assert response.status_code == 200
        assert response.json()['mainSession']['sessionId'] is None


class TestGetToolCalls:
    """Tests for GET /api/tool-calls/{session_id}."""

    def test_returns_calls(self, store, client):
        """Test tool calls of a known session are listed with caps."""
        store.add_session('ses_main')
        store.add_message('msg_1', 'ses_main', created=1000)
        store.add_tool_part('prt_1', 'msg_1', 'ses_main', 'bash', tool_input={'command': 'ls'})

        response = client.get('/api/tool-calls/ses_main')

        assert response.status_code == 200
        data = response.json()
        assert data['ok'] is True
        assert data['sessionId'] == 'ses_main'
        assert data['caps'] == {'maxMessages': 200, 'maxToolCalls': 300}
        assert data['truncated'] is False
        assert data['toolCalls'] == [{
            'sessionId': 'ses_main', 'messageId': 'msg_1', 'callId': 'call_prt_1',
            'tool': 'bash', 'status': 'completed', 'createdAtMs': 1000,
        }]

    def test_invalid_session_id(self, client):
        """Test malformed ids are rejected with 400."""
        response = client.get('/api/tool-calls/bad.id')

        assert response.status_code == 400
        assert response.json() == {'ok': False, 'sessionId': 'bad.id', 'toolCalls': []}

    def test_unknown_session(self, client):
        """Test unknown sessions return 404."""
        response = client.get('/api/tool-calls/ses_nope')

        assert response.status_code == 404
        assert response.json()['ok'] is False

    @patch('src.omo_dashboard.routes.dashboard.derive_tool_calls_with_fallback')
    def test_storage_unavailable(self, mock_derive, client):
        """Test unreadable storage returns 503."""
        mock_derive.return_value = derive_failed('storage_missing')

        response = client.get('/api/tool-calls/ses_main')

        assert response.status_code == 503
        assert response.json() == {'ok': False, 'sessionId': 'ses_main', 'toolCalls': []}


class TestLogs:
    """Tests for the log routes."""

    def test_get_logs(self, client):
        """Test recent logs and the namespace list are returned."""
        response = client.get('/api/logs?count=5')

        assert response.status_code == 200
        data = response.json()
        assert isinstance(data['logs'], list)
        assert set(data['namespaces']) == {'storage', 'derive', 'api', 'paths'}

    @patch('src.omo_dashboard.routes.logs.get_buffer_handler')
    def test_get_logs_namespace_filter(self, mock_handler, client):
        """Test the namespace filter is passed to the buffer."""
        mock_handler.return_value.get_history.return_value = []

        response = client.get('/api/logs?count=5&namespace=storage')

        assert response.status_code == 200
        mock_handler.return_value.get_history.assert_called_once_with(5, 'storage')

    @patch('src.omo_dashboard.routes.logs.set_log_level')
    def test_set_level(self, mock_set, client):
        """Test the log level can be changed."""
        response = client.post('/api/logs/level?level=debug')

        assert response.status_code == 200
        assert response.json() == {'ok': True, 'level': 'DEBUG'}
        mock_set.assert_called_once_with('debug')

    def test_invalid_level(self, client):
        """Test unknown levels are rejected."""
        response = client.post('/api/logs/level?level=LOUD')

        assert response.status_code == 400
