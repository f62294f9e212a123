"""Shared fixtures for credential authority tests."""

import pytest

from authority.server.app import create_app
from authority.server.settings import AuthorityServerSettings
from authority.tests.helpers import TEST_PRIVATE_KEY
from shared.auth.keys import write_private_key
from shared.auth.settings import AuthSettings


@pytest.fixture
def private_key_path(tmp_path):
    path = tmp_path / "private.key"
    write_private_key(path, TEST_PRIVATE_KEY)
    return path


@pytest.fixture
def server_settings(private_key_path):
    return AuthorityServerSettings(private_key_path=str(private_key_path), port=0, host="127.0.0.1")


@pytest.fixture
def auth_settings():
    return AuthSettings(protocol_id=7, game_server_addr="127.0.0.1:5000")


@pytest.fixture
def app(server_settings, auth_settings):
    return create_app(settings=server_settings, auth_settings=auth_settings)
