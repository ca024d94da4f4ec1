"""
Unit tests for configuration and the CLI.
"""

import pytest

from smallchat import __version__
from smallchat import __main__ as cli
from smallchat.config import ChatConfig, DEFAULT_PORT, WELCOME_MESSAGE


class TestChatConfig:
    """Tests for ChatConfig."""

    def test_defaults(self):
        config = ChatConfig()

        assert config.host == "0.0.0.0"
        assert config.port == DEFAULT_PORT == 7711
        assert config.backlog == 511
        assert config.max_clients == 1000
        assert config.read_size == 255
        assert config.max_line == 255
        assert config.poll_timeout == 1.0
        assert config.line_mode is False
        assert config.welcome == WELCOME_MESSAGE
        config.validate()

    def test_welcome_banner(self):
        assert WELCOME_MESSAGE == "Welcome to Simple Chat! Use /nick <nick> to set your nick.\n"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SMALLCHAT_HOST", "127.0.0.1")
        monkeypatch.setenv("SMALLCHAT_PORT", "9000")
        monkeypatch.setenv("SMALLCHAT_MAX_CLIENTS", "10")
        monkeypatch.setenv("SMALLCHAT_LOG_LEVEL", "DEBUG")

        config = ChatConfig.from_env()

        assert config.host == "127.0.0.1"
        assert config.port == 9000
        assert config.max_clients == 10
        assert config.log_level == "DEBUG"

    def test_from_env_defaults(self, monkeypatch):
        for name in ("SMALLCHAT_HOST", "SMALLCHAT_PORT", "SMALLCHAT_MAX_CLIENTS", "SMALLCHAT_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        assert ChatConfig.from_env() == ChatConfig()

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 70000},
        {"backlog": 0},
        {"max_clients": 0},
        {"read_size": 0},
        {"max_line": 0},
        {"poll_timeout": 0},
        {"log_level": "LOUD"},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ValueError):
            ChatConfig(**overrides).validate()

    def test_port_zero_allowed(self):
        """Port 0 lets the OS choose, which the tests rely on."""
        ChatConfig(port=0).validate()


class TestCLI:
    """Tests for the command-line entry point."""

    def test_parser_defaults(self):
        args = cli.build_parser(ChatConfig()).parse_args([])

        assert args.host == "0.0.0.0"
        assert args.port == 7711
        assert args.max_clients == 1000
        assert args.line_mode is False
        assert args.log_level == "INFO"

    def test_parser_overrides(self):
        args = cli.build_parser(ChatConfig()).parse_args(
            ["--host", "127.0.0.1", "-p", "9000", "--max-clients", "5", "--line-mode", "-l", "debug"]
        )

        assert args.host == "127.0.0.1"
        assert args.port == 9000
        assert args.max_clients == 5
        assert args.line_mode is True
        assert args.log_level == "DEBUG"

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_invalid_config_exits_1(self, monkeypatch, capsys):
        monkeypatch.setattr(cli, "setup_console", lambda: None)

        assert cli.main(["--port", "70000"]) == 1
        assert "Invalid port" in capsys.readouterr().err

    def test_bind_failure_exits_1(self, monkeypatch, capsys):
        monkeypatch.setattr(cli, "setup_console", lambda: None)
        calls = []

        class FailingServer:
            def __init__(self, config):
                calls.append(config)

            def run(self):
                from smallchat.errors import ListenerError
                raise ListenerError(calls[0].host, calls[0].port, "Address already in use")

        monkeypatch.setattr(cli, "ChatServer", FailingServer)

        assert cli.main(["--port", "7711"]) == 1
        assert "Address already in use" in capsys.readouterr().err
