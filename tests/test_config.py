"""Tests for configuration loading and file helpers."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from devgrid_auth.config import atomic_write, get_data_dir, load_auth_config
from devgrid_auth.exceptions import ConfigError


def _write_config(path: Path, **auth: str) -> Path:
    path.write_text(json.dumps({"auth": auth}), encoding="utf-8")
    return path


@pytest.mark.usefixtures("isolated_data_dir")
class TestLoadAuthConfig:
    def test_packaged_config_loads_but_is_incomplete(self) -> None:
        config = load_auth_config()
        assert "domain" in config.missing_fields()
        with pytest.raises(ConfigError):
            config.require()

    def test_explicit_path(self, tmp_path: Path) -> None:
        path = _write_config(
            tmp_path / "auth.json",
            domain="auth.example.com",
            clientId="abc",
            audience="api",
            scope="openid profile",
        )
        config = load_auth_config(path)
        assert config.require().client_id == "abc"

    def test_path_from_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write_config(tmp_path / "auth.json", domain="from-file")
        monkeypatch.setenv("DEVGRID_AUTH_CONFIG", str(path))
        assert load_auth_config().domain == "from-file"

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write_config(tmp_path / "auth.json", domain="from-file", clientId="file-id")
        monkeypatch.setenv("DEVGRID_AUTH_DOMAIN", "from-env")
        config = load_auth_config(path)
        assert config.domain == "from-env"
        assert config.client_id == "file-id"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_auth_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "auth.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid auth config"):
            load_auth_config(path)

    def test_auth_section_must_be_object(self, tmp_path: Path) -> None:
        path = tmp_path / "auth.json"
        path.write_text(json.dumps({"auth": "nope"}), encoding="utf-8")
        with pytest.raises(ConfigError, match="must be an object"):
            load_auth_config(path)


class TestPaths:
    def test_data_dir_follows_xdg(self, isolated_data_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("devgrid_auth.config.platform.system", lambda: "Linux")
        path = get_data_dir()
        assert path == isolated_data_dir / "devgrid-auth"
        assert path.is_dir()


class TestAtomicWrite:
    def test_writes_content(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "file.txt"
        atomic_write(target, "hello")
        assert target.read_text(encoding="utf-8") == "hello"

    def test_applies_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "secret"
        atomic_write(target, "s3cret", mode=0o600)
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        atomic_write(tmp_path / "a.txt", "1")
        atomic_write(tmp_path / "a.txt", "2")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a.txt"]
