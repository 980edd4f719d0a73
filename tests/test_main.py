import argparse

from mapscraper.main import build_config, render_table
from mapscraper.models import PlaceRecord


def _args(**overrides):
    defaults = dict(
        config=None, headless=None, workers=None, no_parallel=False,
        proxy_file=None, debug=False,
    )
    defaults.update(overrides)
    return argparse.Namespace(**defaults)


def test_cli_flags_override_environment(monkeypatch):
    monkeypatch.setenv("MAX_WORKERS", "2")
    monkeypatch.delenv("PROXY_ENABLED", raising=False)

    config = build_config(_args(workers=40, no_parallel=True, proxy_file="pool.txt", headless=False, debug=True))

    assert config.max_workers == 10
    assert config.parallel_enabled is False
    assert config.proxy_enabled is True
    assert config.proxy_source_path == "pool.txt"
    assert config.headless is False
    assert config.log_level == "DEBUG"


def test_cli_uses_yaml_config(tmp_path):
    path = tmp_path / "scraper.yaml"
    path.write_text("items_per_worker: 3\nmax_workers: 4\n")

    config = build_config(_args(config=str(path)))
    assert config.items_per_worker == 3
    assert config.max_workers == 4


def test_render_table():
    records = [
        PlaceRecord(name="Kopi Kenangan", rating=4.6, review_count=1204, latitude=-6.2, longitude=106.8),
        PlaceRecord(address="Jl. Sudirman No. 5"),
    ]
    table = render_table(records, "2 results")
    assert table.row_count == 2
    assert table.title == "2 results"
