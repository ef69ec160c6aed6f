"""Tests for YAML settings and secrets loading."""
from pathlib import Path

from nomadchat.config import load_config


def test_defaults_when_files_missing(tmp_path):
    cfg = load_config(settings_path=tmp_path / "nomadchat.settings.yaml")
    assert cfg.server.port == 8000
    assert cfg.hub.max_receive_message_size == 52428800
    assert cfg.push.enabled is True
    assert cfg.secrets.vapid.private_key is None
    assert Path(cfg.database.path) == tmp_path / "nomadchat.duckdb"


def test_settings_and_secrets_are_merged(tmp_path):
    settings_file = tmp_path / "nomadchat.settings.yaml"
    settings_file.write_text(
        "server:\n"
        "  port: 9000\n"
        "  allowed_origins: ['https://chat.example.com']\n"
        "logging:\n"
        "  level: debug\n"
        "push:\n"
        "  subject: mailto:ops@example.com\n"
        "  public_key: BPublic\n",
        encoding="utf-8",
    )
    (tmp_path / "nomadchat.secrets.yaml").write_text(
        "vapid:\n"
        "  private_key: vapid-private\n"
        "encryption:\n"
        "  key: fernet-key\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)
    assert cfg.server.port == 9000
    assert cfg.server.allowed_origins == ["https://chat.example.com"]
    assert cfg.logging.level == "debug"
    assert cfg.push.subject == "mailto:ops@example.com"
    assert cfg.push.public_key == "BPublic"
    assert cfg.secrets.vapid.private_key == "vapid-private"
    assert cfg.secrets.encryption.key == "fernet-key"


def test_explicit_secrets_path(tmp_path):
    secrets_file = tmp_path / "elsewhere.yaml"
    secrets_file.write_text("vapid:\n  private_key: other\n", encoding="utf-8")
    cfg = load_config(settings_path=tmp_path / "missing.yaml", secrets_path=secrets_file)
    assert cfg.secrets.vapid.private_key == "other"


def test_relative_database_path_resolves_from_settings_dir(tmp_path):
    settings_file = tmp_path / "nomadchat.settings.yaml"
    settings_file.write_text("database:\n  path: data/chat.duckdb\n", encoding="utf-8")
    cfg = load_config(settings_path=settings_file)
    assert Path(cfg.database.path) == tmp_path / "data" / "chat.duckdb"


def test_memory_database_path_is_kept(tmp_path):
    settings_file = tmp_path / "nomadchat.settings.yaml"
    settings_file.write_text("database:\n  path: ':memory:'\n", encoding="utf-8")
    assert load_config(settings_path=settings_file).database.path == ":memory:"
