import json
import logging
from pathlib import Path

import pytest

from alem.config import AppSettings, get_app_paths, load_settings
from alem.domain.errors import ValidationError
from alem.logging_config import JsonFormatter, setup_logging


def test_load_settings_defaults():
    assert load_settings({}) == AppSettings(currency="ETB", default_pack_size=12, low_stock_default=12)


def test_load_settings_from_environment():
    settings = load_settings({"ALEM_CURRENCY": " usd ", "ALEM_PACK_SIZE": "30", "ALEM_LOW_STOCK_DEFAULT": "60"})

    assert settings == AppSettings(currency="USD", default_pack_size=30, low_stock_default=60)


@pytest.mark.parametrize("env", [
    {"ALEM_PACK_SIZE": "dozen"},
    {"ALEM_PACK_SIZE": "0"},
    {"ALEM_LOW_STOCK_DEFAULT": "-3"},
])
def test_load_settings_rejects_bad_numbers(env):
    with pytest.raises(ValidationError):
        load_settings(env)


def test_app_paths_honour_home_override(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("ALEM_HOME", str(tmp_path / "alem"))

    paths = get_app_paths()

    assert paths.base_dir == tmp_path / "alem"
    assert paths.db_path == tmp_path / "alem" / "alem.db"
    assert paths.logs_dir.is_dir()
    assert paths.exports_dir.is_dir()


def test_json_formatter_emits_one_object_per_record():
    record = logging.LogRecord("alem.sales", logging.INFO, __file__, 1, "sale_created sale_id=%s", (7,), None)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "alem.sales"
    assert payload["message"] == "sale_created sale_id=7"
    assert payload["event"] == "sale_created"
    assert payload["fields"] == {"sale_id": "7"}
    assert "ts" in payload


def test_sales_channel_writes_its_own_file(tmp_path: Path):
    logger = logging.getLogger("alem.sales")
    before = list(logger.handlers)
    try:
        setup_logging(tmp_path / "logs")
        setup_logging(tmp_path / "logs")
        added = [h for h in logger.handlers if h not in before]
        assert len(added) == 1

        logger.info("sale_created sale_id=%s", 42)
        added[0].flush()

        lines = (tmp_path / "logs" / "sales.log").read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[-1])["message"] == "sale_created sale_id=42"
    finally:
        for name in ("alem.sales", "alem.credit"):
            lg = logging.getLogger(name)
            for h in list(lg.handlers):
                if h not in before:
                    lg.removeHandler(h)
                    h.close()
