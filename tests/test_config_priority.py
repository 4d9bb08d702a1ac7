from __future__ import annotations

from typer.testing import CliRunner

from gatekeeper.config import load_settings
from gatekeeper.main import app

runner = CliRunner()


def test_defaults_when_nothing_is_configured(monkeypatch):
    for name in ("GATEKEEPER_DATA_DIR", "GATEKEEPER_AUTHORIZED_KEYS", "GATEKEEPER_BIN_PATH", "GATEKEEPER_LOG_DIR", "GATEKEEPER_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    loaded = load_settings(config_path=None, cli_overrides={})

    assert loaded.sources_used == []
    assert loaded.settings.authorized_keys_path == "~/.ssh/authorized_keys"
    assert loaded.settings.log_level == "INFO"


def test_priority_cli_over_env_over_config(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "\n".join([
            f'data_dir: "{tmp_path / "cfg_data"}"',
            f'authorized_keys_path: "{tmp_path / "cfg_keys"}"',
            'bin_path: "/opt/cfg/shell"',
            f'log_dir: "{tmp_path / "logs"}"',
        ]),
        encoding="utf-8",
    )

    # ENV overrides config
    monkeypatch.setenv("GATEKEEPER_BIN_PATH", "/opt/env/shell")
    monkeypatch.setenv("GATEKEEPER_AUTHORIZED_KEYS", str(tmp_path / "env_keys"))

    # CLI overrides env
    result = runner.invoke(
        app,
        ["--config", str(cfg), "--authorized-keys", str(tmp_path / "cli_keys"), "user", "list"],
    )
    assert result.exit_code == 0
    assert f"data_dir={tmp_path / 'cfg_data'}" in result.stdout
    assert f"authorized_keys={tmp_path / 'cli_keys'}" in result.stdout
    assert "bin_path=/opt/env/shell" in result.stdout
    assert "sources=['config', 'env', 'cli']" in result.stdout
