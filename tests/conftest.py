# tests/conftest.py
import os
import tempfile
from decimal import getcontext, ROUND_HALF_UP

import pytest

from taxfolio import config as app_config


@pytest.fixture(scope="session", autouse=True)
def set_decimal_precision_session_wide():
    """
    Set global decimal precision and rounding for all tests in the session.
    This mirrors taxfolio.main.setup_decimal_context.
    """
    getcontext().prec = app_config.INTERNAL_CALCULATION_PRECISION

    valid_rounding_modes = ["ROUND_CEILING", "ROUND_DOWN", "ROUND_FLOOR", "ROUND_HALF_DOWN",
                            "ROUND_HALF_EVEN", "ROUND_HALF_UP", "ROUND_UP", "ROUND_05UP"]
    if app_config.DECIMAL_ROUNDING_MODE in valid_rounding_modes:
        getcontext().rounding = app_config.DECIMAL_ROUNDING_MODE
    else:
        getcontext().rounding = ROUND_HALF_UP


@pytest.fixture
def temp_data_dir():
    """
    Creates a temporary directory for test input/output files.
    Yields the path to this directory.
    Cleans up the directory after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        os.makedirs(os.path.join(tmpdir, "cache"), exist_ok=True)
        yield tmpdir


@pytest.fixture
def mock_config_paths(temp_data_dir, monkeypatch):
    """
    Points the file and database locations in taxfolio.config at temp_data_dir.
    Returns the paths for explicit use in tests.
    """
    paths_dict = {
        "transactions": os.path.join(temp_data_dir, "transactions.csv"),
        "database_url": f"sqlite:///{os.path.join(temp_data_dir, 'taxfolio.db')}",
        "ecb_cache": os.path.join(temp_data_dir, "cache", "ecb_exchange_rates.json"),
        "pdf": os.path.join(temp_data_dir, "report.pdf"),
        "temp_dir_root": temp_data_dir,
    }
    monkeypatch.setattr(app_config, "TRANSACTIONS_FILE_PATH", paths_dict["transactions"])
    monkeypatch.setattr(app_config, "DATABASE_URL", paths_dict["database_url"])
    monkeypatch.setattr(app_config, "ECB_RATES_CACHE_FILE_PATH", paths_dict["ecb_cache"])
    return paths_dict
