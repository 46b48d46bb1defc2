"""
Tests for the command line interface.
"""

import json

import pytest
from click.testing import CliRunner

from authproxy import __version__
from authproxy.cli import main
from authproxy.config import reset_config


@pytest.fixture
def runner():
    yield CliRunner()
    reset_config()


@pytest.fixture
def env(tmp_path):
    return {
        "AUTH_API_URL": "http://127.0.0.1:1/",
        "AUTH_PROXY_CONFIG": str(tmp_path / "authProxyConfig.json"),
        "AUTH_PROXY_USER_KEY": "",
    }


class TestCli:
    """Tests for commands that need no server."""

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_device_id(self, runner, env, tmp_path):
        result = runner.invoke(main, ["device-id"], env=env)

        assert result.exit_code == 0
        stored = json.loads((tmp_path / "authProxyConfig.json").read_text())
        assert stored["deviceGuid"] in result.output

    def test_device_id_stable(self, runner, env):
        first = runner.invoke(main, ["device-id"], env=env)
        second = runner.invoke(main, ["device-id"], env=env)

        assert first.output.splitlines()[0] == second.output.splitlines()[0]

    def test_login_without_key(self, runner, env):
        result = runner.invoke(main, ["login"], env=env)

        assert result.exit_code == 1
        assert "User key must be not empty" in result.output

    def test_reset_password_invalid_phone(self, runner, env):
        result = runner.invoke(main, ["reset-password", "not-a-phone"], env=env)

        assert result.exit_code == 1
