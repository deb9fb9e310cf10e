"""Unit tests for the blender-relay CLI."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
from click.testing import CliRunner

from blender_relay.cli import main
from blender_relay.errors import MaxReconnectAttemptsExceeded, RemoteError


def _mock_session(**operations) -> MagicMock:
    session = MagicMock()
    session.wait_connected = AsyncMock()
    session.close = AsyncMock()
    for name, mock in operations.items():
        setattr(session, name, mock)
    return session


class TestServe:
    def test_serve_uses_options(self):
        runner = CliRunner()

        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(
                main, ["serve", "--port", "4100", "--backend-url", "ws://blender:9000"]
            )

        assert result.exit_code == 0, result.output
        _, kwargs = mock_run.call_args
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 4100
        relay = mock_run.call_args[0][0].state.relay
        assert relay.config.backend_url == "ws://blender:9000"

    def test_serve_rejects_bad_environment(self):
        runner = CliRunner()

        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(main, ["serve"], env={"BLENDER_RELAY_PORT": "http"})

        assert result.exit_code != 0
        assert "BLENDER_RELAY_PORT" in result.output
        mock_run.assert_not_called()


class TestHealth:
    def test_healthy(self):
        runner = CliRunner()
        response = httpx.Response(
            200, json={"status": "ok", "backendConnected": True, "activeConnections": 2}
        )

        with patch("blender_relay.cli.httpx.AsyncClient") as mock_client_cls:
            mock_client_cls.return_value.__aexit__.return_value = False
            mock_client = mock_client_cls.return_value.__aenter__.return_value
            mock_client.get = AsyncMock(return_value=response)
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 0
        assert "backend connected, 2 active connection(s)" in result.output
        mock_client.get.assert_called_once_with("http://localhost:3001/health")

    def test_unreachable(self):
        runner = CliRunner()

        with patch("blender_relay.cli.httpx.AsyncClient") as mock_client_cls:
            mock_client_cls.return_value.__aexit__.return_value = False
            mock_client = mock_client_cls.return_value.__aenter__.return_value
            mock_client.get = AsyncMock(side_effect=httpx.ConnectError("refused"))
            result = runner.invoke(main, ["health", "--url", "http://relay:1"])

        assert result.exit_code == 1
        assert "Cannot connect to relay at http://relay:1" in result.output


class TestClientCommands:
    def test_send_interprets_and_issues(self):
        runner = CliRunner()
        session = _mock_session(issue_command=AsyncMock(return_value={"content": []}))

        with patch("blender_relay.cli.ClientSession", return_value=session):
            result = runner.invoke(main, ["send", "create a red cube"])

        assert result.exit_code == 0, result.output
        command = session.issue_command.call_args[0][0]
        assert command.action == "create_cube"
        assert command.parameters["color"] == "red"
        assert '"content": []' in result.output
        session.close.assert_awaited_once()

    def test_send_failure_exits_nonzero(self):
        runner = CliRunner()
        session = _mock_session(
            issue_command=AsyncMock(side_effect=RemoteError("Unsupported command: unknown"))
        )

        with patch("blender_relay.cli.ClientSession", return_value=session):
            result = runner.invoke(main, ["send", "sing a song"])

        assert result.exit_code == 1
        assert "Failed: Unsupported command: unknown" in result.output

    def test_send_relay_unreachable(self):
        runner = CliRunner()
        session = _mock_session()
        session.wait_connected = AsyncMock(side_effect=MaxReconnectAttemptsExceeded(5))

        with patch("blender_relay.cli.ClientSession", return_value=session):
            result = runner.invoke(main, ["send", "add a light"])

        assert result.exit_code == 1
        assert "Maximum reconnection attempts reached" in result.output

    def test_render_writes_file(self, tmp_path):
        runner = CliRunner()
        session = _mock_session(
            request_render=AsyncMock(return_value="data:image/png;base64,aGVsbG8=")
        )
        output = tmp_path / "scene.png"

        with patch("blender_relay.cli.ClientSession", return_value=session):
            result = runner.invoke(
                main, ["render", "--width", "320", "--height", "240", "--output", str(output)]
            )

        assert result.exit_code == 0, result.output
        session.request_render.assert_awaited_once_with((320, 240))
        assert output.read_bytes() == b"hello"
