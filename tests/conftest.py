"""Shared pytest fixtures for the reconciler tests."""

from unittest.mock import AsyncMock, Mock

import pytest

from gitlab_reconciler.client import GitLabClient
from gitlab_reconciler.config import ClientConfig, GitLabConfig, PollingConfig
from gitlab_reconciler.exceptions import (
    ClientError,
    ResourceNotFoundError,
    ServerError,
)


@pytest.fixture
def gitlab_config():
    """Create a test GitLab connection configuration."""
    return GitLabConfig(
        token="test-token", base_url="https://gitlab.example.com/api/v4"
    )


@pytest.fixture
def client_config():
    """Create a client configuration that retries without waiting."""
    return ClientConfig(
        timeout_seconds=5,
        retry_attempts=2,
        retry_delay=0.0,
        rate_limit_per_minute=10_000,
        page_size=20,
    )


@pytest.fixture
def fast_polling():
    """Polling configuration short enough for unit tests."""
    return PollingConfig(interval=0.01, initial_delay=0.0, timeout=1.0)


@pytest.fixture
def mock_client():
    """Create a mock GitLab client with the JSON helpers stubbed."""
    client = Mock(spec=GitLabClient)
    client.page_size = 20
    client.get_json = AsyncMock()
    client.post_json = AsyncMock()
    client.put_json = AsyncMock()
    client.delete = AsyncMock(return_value=None)
    client.get_page = AsyncMock()
    return client


@pytest.fixture
def not_found():
    """A 404 failure as raised by the client."""
    return ResourceNotFoundError("GET /groups/42 failed: not found", 404, '{"message":"404 Group Not Found"}')


@pytest.fixture
def server_error():
    """A 500 failure as raised by the client."""
    return ServerError("Server error: 500", 500, "boom")


@pytest.fixture
def forbidden():
    """A 400 failure that is not a missing entity."""
    return ClientError("Client error: 400", 400, '{"message":"bad request"}')


@pytest.fixture
def sample_group():
    """Create a sample group entity as returned by the API."""
    return {
        "id": 42,
        "name": "Platform",
        "path": "platform",
        "full_path": "acme/platform",
        "full_name": "Acme / Platform",
        "web_url": "https://gitlab.example.com/groups/acme/platform",
        "description": "Platform team",
        "lfs_enabled": True,
        "request_access_enabled": False,
        "visibility": "private",
        "subgroup_creation_level": "maintainer",
        "project_creation_level": "developer",
        "parent_id": 7,
        "runners_token": "GR1348941secret",
        "marked_for_deletion_on": None,
    }


@pytest.fixture
def sample_hook():
    """Create a sample project hook entity as returned by the API."""
    return {
        "id": 7,
        "url": "https://ci.example.com/hook",
        "project_id": 3,
        "push_events": True,
        "push_events_branch_filter": "",
        "issues_events": False,
        "confidential_issues_events": False,
        "merge_requests_events": True,
        "tag_push_events": False,
        "note_events": False,
        "confidential_note_events": False,
        "job_events": False,
        "pipeline_events": True,
        "wiki_page_events": False,
        "deployment_events": False,
        "releases_events": True,
        "enable_ssl_verification": True,
        "created_at": "2024-01-01T00:00:00.000Z",
    }
