"""
Unit tests for ServerConfig and the command line.
"""

import pytest

from tinyhttp.__main__ import build_parser, main
from tinyhttp.config import ServerConfig
from tinyhttp.exceptions import ConfigurationError


class TestServerConfig:
    """Tests for defaults and validate()."""

    def test_defaults(self):
        config = ServerConfig()
        assert config.host == "127.0.0.1"
        assert config.port == 4221
        assert config.buffer_size == 4096
        assert config.keep_alive is True
        assert config.directory is None
        config.validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 65536},
        {"backlog": 0},
        {"buffer_size": 512},
        {"timeout": 0},
        {"keep_alive_timeout": -1},
        {"max_header_size": 10},
        {"max_body_size": -1},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
        {"directory": "/definitely/not/here"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ConfigurationError):
            ServerConfig(**overrides).validate()

    def test_directory_must_be_directory(self, tmp_path):
        file_path = tmp_path / "plain.txt"
        file_path.write_text("x")
        with pytest.raises(ConfigurationError):
            ServerConfig(directory=str(file_path)).validate()

    def test_existing_directory(self, tmp_path):
        ServerConfig(directory=str(tmp_path)).validate()


class TestFromEnv:
    """Tests for ServerConfig.from_env()."""

    def test_reads_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TINYHTTP_PORT", "8080")
        monkeypatch.setenv("TINYHTTP_HOST", "0.0.0.0")
        monkeypatch.setenv("TINYHTTP_DIRECTORY", str(tmp_path))
        monkeypatch.setenv("TINYHTTP_LOG_LEVEL", "debug")

        config = ServerConfig.from_env()

        assert config.port == 8080
        assert config.host == "0.0.0.0"
        assert config.directory == str(tmp_path)
        assert config.log_level == "DEBUG"

    def test_defaults_without_environment(self, monkeypatch):
        for name in ("TINYHTTP_PORT", "TINYHTTP_HOST", "TINYHTTP_DIRECTORY"):
            monkeypatch.delenv(name, raising=False)
        assert ServerConfig.from_env().port == 4221

    def test_bad_number(self, monkeypatch):
        monkeypatch.setenv("TINYHTTP_PORT", "eighty")
        with pytest.raises(ConfigurationError):
            ServerConfig.from_env()


class TestCommandLine:
    """Tests for the argparse front end."""

    def test_flags(self, tmp_path):
        args = build_parser(ServerConfig()).parse_args(
            ["--directory", str(tmp_path), "-p", "9000", "-l", "debug", "--log-format", "json"]
        )
        assert args.directory == str(tmp_path)
        assert args.port == 9000
        assert args.log_level == "DEBUG"
        assert args.log_format == "json"

    def test_defaults_from_config(self):
        args = build_parser(ServerConfig(port=1234)).parse_args([])
        assert args.port == 1234
        assert args.directory is None

    def test_missing_directory_exits_1(self, capsys, monkeypatch):
        monkeypatch.delenv("TINYHTTP_PORT", raising=False)
        assert main(["--directory", "/definitely/not/here"]) == 1
        assert "Directory does not exist" in capsys.readouterr().err

    def test_bind_failure_exits_1(self, capsys, monkeypatch):
        import socket

        monkeypatch.delenv("TINYHTTP_PORT", raising=False)
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]

            assert main(["--port", str(port), "--log-level", "CRITICAL"]) == 1

        assert "Failed to bind" in capsys.readouterr().err
