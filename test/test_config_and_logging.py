import logging
from decimal import Decimal
from pathlib import Path

import pytest

from roc.config import Settings, get_app_paths
from roc.domain.errors import InvalidRate
from roc.logging_config import DOMAIN_LOGS, setup_logging


def test_settings_from_env():
    s = Settings.from_env({"ROC_DB_PATH": "/tmp/x.db", "ROC_DEFAULT_FX_RATE": "36.5", "ROC_LOCK_TIMEOUT": "2"})
    assert s.db_path == Path("/tmp/x.db")
    assert s.default_fx_rate == Decimal("36.5")
    assert s.fx_timeout == 10.0
    assert s.lock_timeout == 2.0

    assert Settings.from_env({}) == Settings()
    with pytest.raises(InvalidRate):
        Settings.from_env({"ROC_DEFAULT_FX_RATE": "-1"})


def test_app_paths_are_created(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("APPDATA", str(tmp_path))
    paths = get_app_paths("RocTest")
    assert paths.logs_dir.is_dir()
    assert paths.exports_dir.is_dir()
    assert paths.db_path.parent == paths.base_dir


def test_setup_logging_writes_domain_files(tmp_path: Path):
    root = logging.getLogger()
    saved = root.handlers[:]
    saved_level = root.level
    root.handlers = []
    try:
        setup_logging(tmp_path)
        logging.getLogger("roc.wallets").info("wallet_credit wallet_id=1")
        for h in root.handlers:
            h.flush()
        for name, filename in DOMAIN_LOGS.items():
            assert (tmp_path / filename).exists()
        assert "wallet_credit" in (tmp_path / "wallets.log").read_text(encoding="utf-8")
        assert "wallet_credit" in (tmp_path / "app.log").read_text(encoding="utf-8")
    finally:
        for h in root.handlers:
            h.close()
        root.handlers = saved
        root.setLevel(saved_level)
        for name in DOMAIN_LOGS:
            logger = logging.getLogger(name)
            for h in logger.handlers:
                h.close()
            logger.handlers = []
