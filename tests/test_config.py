import json

import httpx
import pytest
from pydantic import ValidationError

from catalog_etl.config import ASMR100_API_URL, ASMR200_API_URL, Settings, load_settings, resolve_base_url, save_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in (
        "CATALOG_ACCOUNT",
        "CATALOG_PASSWORD",
        "CATALOG_MAX_WORKER",
        "CATALOG_MAX_FAILED_RETRY",
        "CATALOG_BASE_URL",
        "CATALOG_PAGE_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_when_file_missing(tmp_path):
    settings = load_settings(tmp_path / "missing.json")
    assert settings.account == "guest"
    assert settings.max_workers == 6
    assert settings.max_failed_retry == 3
    assert settings.channel_capacity == 5


def test_reads_legacy_config_keys(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "account": "alice",
                "password": "hunter2",
                "max_worker": 10,
                "batch_task_count": 1,
                "download_dir": "data",
                "meta_data_db": "asmr.db",
                "max_failed_retry": 5,
            }
        )
    )
    settings = load_settings(path)
    assert settings.account == "alice"
    assert settings.max_workers == 10
    assert settings.max_failed_retry == 5


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"account": "alice", "max_worker": 10}))
    monkeypatch.setenv("CATALOG_ACCOUNT", "bob")
    monkeypatch.setenv("CATALOG_MAX_WORKER", "2")
    monkeypatch.setenv("CATALOG_PAGE_LIMIT", "4")

    settings = load_settings(path)

    assert settings.account == "bob"
    assert settings.max_workers == 2
    assert settings.page_limit == 4


def test_rejects_invalid_values(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"max_worker": 0}))
    with pytest.raises(ValidationError):
        load_settings(path)


def test_safe_dict_masks_password():
    data = Settings(password="hunter2").safe_dict()
    assert data["password"] == "*******"
    assert data["max_worker"] == 6


def test_save_then_load(tmp_path):
    path = save_settings(Settings(account="carol", max_workers=4), tmp_path / "config.json")
    assert json.loads(path.read_text())["max_worker"] == 4
    assert load_settings(path).account == "carol"


def test_explicit_base_url_skips_probe():
    def handler(request):
        raise AssertionError("probe must not run")

    client = httpx.Client(transport=httpx.MockTransport(handler))
    assert resolve_base_url(Settings(base_url="http://mirror.test/"), client) == "http://mirror.test"


def test_probe_picks_primary_mirror_when_site_is_up():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    assert resolve_base_url(Settings(), client) == ASMR100_API_URL


@pytest.mark.parametrize("outcome", ["status", "error"])
def test_probe_falls_back_when_site_is_down(outcome):
    def handler(request):
        if outcome == "error":
            raise httpx.ConnectError("unreachable", request=request)
        return httpx.Response(503)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    assert resolve_base_url(Settings(), client) == ASMR200_API_URL
