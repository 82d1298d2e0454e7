from pathlib import Path

import logging

import pytest

import onetune.config as config_module
from onetune.bootstrap import BootstrapError, Bootstrapper
from onetune.config import AppConfig


def test_bootstrapper_raises_when_storage_directory_unwritable(
    tmp_path: Path, monkeypatch
) -> None:
    storage_root = tmp_path / "storage"
    config = AppConfig(storage_root=storage_root, client_id="client")

    original_ensure = config_module._ensure_writable_directory

    def fake_ensure(path: Path) -> bool:
        if path.resolve() == storage_root.resolve():
            return False
        return original_ensure(path)

    monkeypatch.setattr(config_module, "_ensure_writable_directory", fake_ensure)

    bootstrapper = Bootstrapper(config)

    with pytest.raises(BootstrapError) as excinfo:
        bootstrapper.initialize()

    assert "storage" in str(excinfo.value).lower()


def test_bootstrapper_rejects_directory_as_token_cache(tmp_path: Path) -> None:
    config = AppConfig(storage_root=tmp_path / "storage", client_id="client")
    config.token_cache_file.mkdir(parents=True)

    with pytest.raises(BootstrapError) as excinfo:
        Bootstrapper(config).initialize()

    assert "token cache" in str(excinfo.value).lower()


def test_bootstrapper_warns_without_client_id(tmp_path: Path, caplog) -> None:
    config = AppConfig(storage_root=tmp_path / "storage")

    with caplog.at_level(logging.WARNING):
        Bootstrapper(config).initialize()

    assert (tmp_path / "storage").is_dir()
    assert config_module.CLIENT_ID_ENV in caplog.text
