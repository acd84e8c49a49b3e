import pytest
from typer.testing import CliRunner

from simpledb.cli import app
from simpledb.config import loadSettings, parse_bool

runner = CliRunner()


def test_priority_cli_over_env_over_config(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "\n".join([
            'host: "1.1.1.1"',
            "port: 1111",
            'username: "cfg_user"',
            'password: "cfg_pass"',
            f'db_name: "{tmp_path / "cfg.db"}"',
        ]),
        encoding="utf-8",
    )

    # ENV overrides config
    monkeypatch.setenv("SIMPLEDB_HOST", "2.2.2.2")
    monkeypatch.setenv("SIMPLEDB_PORT", "2222")
    monkeypatch.setenv("SIMPLEDB_USERNAME", "env_user")
    monkeypatch.setenv("SIMPLEDB_PASSWORD", "env_pass")

    # CLI overrides env
    result = runner.invoke(
        app,
        [
            "--config", str(cfg),
            "--log-dir", str(tmp_path / "logs"),
            "--host", "3.3.3.3",
            "--port", "3333",
            "--username", "cli_user",
            "--password", "cli_pass",
            "check-db",
        ],
    )
    assert result.exit_code == 0
    assert "host=3.3.3.3 port=3333" in result.stdout
    assert f"db_name={tmp_path / 'cfg.db'}" in result.stdout
    assert "username=cli_user password=***" in result.stdout
    assert "sources=['config', 'env', 'cli']" in result.stdout


def test_env_overrides_config_values(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yml"
    cfg.write_text("pool_size: 7\ndev_mode: false\nacquire_timeout: 2.5\n", encoding="utf-8")
    monkeypatch.setenv("SIMPLEDB_POOL_SIZE", "12")
    monkeypatch.setenv("SIMPLEDB_DEV_MODE", "yes")

    loaded = loadSettings(config_path=str(cfg), cli_overrides={})

    assert loaded.settings.pool_size == 12
    assert loaded.settings.dev_mode is True
    assert loaded.settings.acquire_timeout == 2.5
    assert loaded.sources_used == ["config", "env"]


def test_defaults_without_any_source(monkeypatch):
    for name in ("SIMPLEDB_HOST", "SIMPLEDB_DB_NAME", "SIMPLEDB_POOL_SIZE", "SIMPLEDB_DRIVER", "SIMPLEDB_DEV_MODE"):
        monkeypatch.delenv(name, raising=False)

    loaded = loadSettings(config_path=None, cli_overrides={"host": None})

    assert loaded.settings.driver == "sqlite"
    assert loaded.settings.pool_size == 100
    assert loaded.settings.acquire_timeout == 5.0
    assert loaded.settings.dev_mode is False


def test_invalid_boolean_env_value_is_rejected():
    assert parse_bool("TRUE") is True
    assert parse_bool("n") is False
    with pytest.raises(ValueError):
        parse_bool("sometimes")


def test_quoted_boolean_in_config_is_parsed(tmp_path, monkeypatch):
    monkeypatch.delenv("SIMPLEDB_DEV_MODE", raising=False)
    cfg = tmp_path / "config.yml"
    cfg.write_text('dev_mode: "false"\n', encoding="utf-8")

    loaded = loadSettings(config_path=str(cfg), cli_overrides={})

    assert loaded.settings.dev_mode is False

    cfg.write_text('dev_mode: "yes"\n', encoding="utf-8")
    assert loadSettings(config_path=str(cfg), cli_overrides={}).settings.dev_mode is True

    cfg.write_text('dev_mode: "sometimes"\n', encoding="utf-8")
    with pytest.raises(ValueError):
        loadSettings(config_path=str(cfg), cli_overrides={})
