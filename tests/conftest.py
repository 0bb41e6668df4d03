import faulthandler
import sys
import time
from pathlib import Path

import pytest

from core.config import ENV_POKEMON_TCG_API_KEY, ENV_SUPABASE_KEY, ENV_SUPABASE_URL, Config


@pytest.fixture
def clean_env(monkeypatch):
    """Remove credential variables so Config reads only the file and defaults."""
    for name in ENV_SUPABASE_URL + ENV_SUPABASE_KEY + ENV_POKEMON_TCG_API_KEY:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def temp_config(tmp_path, clean_env):
    """
    Provide a fresh Config with validation.

    This fixture GUARANTEES a clean config or fails loudly.
    """
    config_path = tmp_path / f"config_{id(tmp_path)}_{time.time_ns()}.json"
    config = Config(config_file=config_path)

    assert config.supabase_url == "", \
        f"FIXTURE CONTAMINATED! supabase_url={config.supabase_url}, file={config.config_file}"
    assert config.burst_size == 5, \
        f"FIXTURE CONTAMINATED! burst_size={config.burst_size}, file={config.config_file}"

    return config


def pytest_collection_modifyitems(config, items):
    """Assign tier markers based on test location."""
    slow_files = {
        "test_price_update_worker.py",
    }

    for item in items:
        path = Path(str(item.fspath)).as_posix()
        filename = Path(path).name

        if "/tests/integration/" in path:
            item.add_marker(pytest.mark.integration)
            continue

        if "/tests/unit/" in path or "/api/tests/" in path:
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)

        if filename in slow_files:
            item.add_marker(pytest.mark.slow)


def pytest_sessionstart(session):  # pragma: no cover - test harness init
    """Dump all thread stacks on a hang; the queue worker runs in a thread."""
    faulthandler.enable(file=sys.stderr, all_threads=True)
