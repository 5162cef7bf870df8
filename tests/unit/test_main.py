"""Tests for the command line entry point."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import structlog

from wryft_chat.__main__ import main, parse_args, run_client

CONFIG = """
api:
  base_url: "http://localhost:3001/api"
  token: "test-token"
gateway:
  url: "ws://localhost:3001/ws"
user:
  id: "u1"
  username: "alice"
  discriminator: "0001"
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG)
    return path


class TestParseArgs:
    """Tests for argument parsing."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("WRYFT_CONFIG", raising=False)
        args = parse_args([])

        assert args.config == Path("config/config.yaml")
        assert args.channel is None
        assert not args.debug
        assert not args.dry_run
        assert args.format is None

    def test_config_path_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WRYFT_CONFIG", "/etc/wryft/chat.yaml")

        assert parse_args([]).config == Path("/etc/wryft/chat.yaml")

    def test_all_options(self) -> None:
        args = parse_args(
            ["-c", "chat.yaml", "--channel", "dm:d42", "-d", "--dry-run", "--format", "json"]
        )

        assert args.config == Path("chat.yaml")
        assert args.channel == "dm:d42"
        assert args.debug
        assert args.dry_run
        assert args.format == "json"

    def test_invalid_format_rejected(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["--format", "xml"])


class TestRunClient:
    """Tests for the client runner."""

    @pytest.mark.asyncio
    async def test_dry_run_validates_config(self, config_file: Path) -> None:
        assert await run_client(config_file, "srv1/general", dry_run=True) == 0

    @pytest.mark.asyncio
    async def test_format_flag_overrides_config(self, config_file: Path) -> None:
        with patch("wryft_chat.utils.logging.configure_logging") as configure:
            assert await run_client(config_file, None, dry_run=True, log_format="json") == 0

        assert configure.call_args.kwargs["log_format"] == "json"

    @pytest.mark.asyncio
    async def test_missing_config_file(self, tmp_path: Path) -> None:
        assert await run_client(tmp_path / "missing.yaml", "srv1/general") == 1

    @pytest.mark.asyncio
    async def test_invalid_channel_key(self, config_file: Path) -> None:
        assert await run_client(config_file, "general", dry_run=True) == 1

    @pytest.mark.asyncio
    async def test_channel_required_unless_dry_run(self, config_file: Path) -> None:
        assert await run_client(config_file, None) == 2

    @pytest.mark.asyncio
    async def test_starts_client(self, config_file: Path) -> None:
        client = AsyncMock()
        with patch(
            "wryft_chat.core.client.create_client", AsyncMock(return_value=client)
        ) as factory:
            assert await run_client(config_file, "srv1/general") == 0

        factory.assert_awaited_once()
        client.start.assert_awaited_once()
        # Session log fields do not outlive the client
        assert structlog.contextvars.get_contextvars() == {}

    @pytest.mark.asyncio
    async def test_startup_failure_exit_code(self, config_file: Path) -> None:
        from wryft_chat.core.client import StartupError

        client = AsyncMock()
        client.start.side_effect = StartupError("Failed to open srv1/general")
        with patch("wryft_chat.core.client.create_client", AsyncMock(return_value=client)):
            assert await run_client(config_file, "srv1/general") == 1


class TestMain:
    """Tests for main()."""

    def test_main_dry_run(self, config_file: Path) -> None:
        assert main(["-c", str(config_file), "--dry-run"]) == 0
