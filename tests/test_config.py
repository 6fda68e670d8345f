from __future__ import annotations

from pathlib import Path

import pytest

from status_board.config import DEFAULT_CONFIG_PATH, DashboardConfig, load_config
from status_board.probe import build_probe_target


def test_default_catalog_loads_in_order() -> None:
    config = load_config(str(DEFAULT_CONFIG_PATH))

    categories = config.service_categories()
    assert [c.name for c in categories] == ["Core Services", "API Endpoints", "Database & Infrastructure"]

    services = config.services()
    assert len(services) == 8
    assert services[0].name == "Plazen Website"
    assert services[-1].name == "Database Connection"
    assert services[-1].kind == "database"
    assert all(s.category for s in services)

    names = [s.name for s in services]
    assert len(names) == len(set(names))
    for service in services:
        assert service.url.startswith(("http://", "https://"))
        assert "/favicon.ico?_=" in build_probe_target(service.url)


def test_default_timings() -> None:
    config = load_config(str(DEFAULT_CONFIG_PATH))
    assert config.probe_timeout_ms == 10_000
    assert config.refresh_interval_ms == 60_000
    assert config.probe_path == "/favicon.ico"


def test_duplicate_service_names_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "categories:\n"
        "  - name: A\n"
        "    services:\n"
        "      - {name: Same, url: https://a.example}\n"
        "  - name: B\n"
        "    services:\n"
        "      - {name: Same, url: https://b.example}\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError, match="Duplicate service entry"):
        load_config(str(path))


def test_unknown_kind_rejected() -> None:
    with pytest.raises(ValueError):
        DashboardConfig(categories=[{"name": "A", "services": [{"name": "x", "url": "https://x", "kind": "queue"}]}])


def test_non_mapping_yaml_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError, match="must be a mapping"):
        load_config(str(path))


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("probe_timeout_ms: 5000\ncategories: []\n", encoding="utf-8")
    monkeypatch.setenv("STATUS_BOARD_CONFIG", str(path))
    monkeypatch.setenv("STATUS_BOARD_PROBE_TIMEOUT_MS", "2500")
    monkeypatch.setenv("STATUS_BOARD_REFRESH_INTERVAL_MS", "15000")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = load_config()
    assert config.probe_timeout_ms == 2500
    assert config.refresh_interval_ms == 15000
    assert config.log_level == "DEBUG"
    assert config.services() == ()


def test_malformed_url_is_accepted_at_load_time() -> None:
    # URL problems are isolated per service at check time, not at startup.
    config = DashboardConfig(categories=[{"name": "A", "services": [{"name": "x", "url": "not a url"}]}])
    assert config.services()[0].url == "not a url"
