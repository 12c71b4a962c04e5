"""Root fixtures for all tests."""

import os
from pathlib import Path

import pytest

from solarmon.calibration import CalibrationSample


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Clear solarmon env vars and reset config singleton before each test."""
    env_prefixes = (
        "SOLAR",
        "VENDOR_",
        "DEVICE_",
        "HISTORY_",
        "REMOTE_",
        "SITE_",
        "STATE_DIR",
        "OUT_DIR",
    )

    for key in list(os.environ.keys()):
        for prefix in env_prefixes:
            if key.startswith(prefix):
                monkeypatch.delenv(key, raising=False)
                break

    # Never pick up a developer's solarmon.conf
    monkeypatch.setenv("SOLARMON_CONFIG", str(tmp_path / "absent.conf"))

    import solarmon.env

    solarmon.env._config = None

    yield

    solarmon.env._config = None


@pytest.fixture
def tmp_state_dir(tmp_path):
    """Create temp directory for state files (DB, tokens)."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def tmp_out_dir(tmp_path):
    """Create temp directory for rendered output."""
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    return out_dir


@pytest.fixture
def configured_env(tmp_state_dir, tmp_out_dir, monkeypatch):
    """Set up test environment with temp directories."""
    monkeypatch.setenv("STATE_DIR", str(tmp_state_dir))
    monkeypatch.setenv("OUT_DIR", str(tmp_out_dir))
    import solarmon.env

    solarmon.env._config = None
    return {"state_dir": tmp_state_dir, "out_dir": tmp_out_dir}


@pytest.fixture
def db_path(tmp_state_dir):
    """Database path in temp state directory."""
    return tmp_state_dir / "device_data.db"


@pytest.fixture
def initialized_db(db_path, configured_env):
    """Fresh database with migrations applied."""
    from solarmon.db import init_db

    init_db(db_path)
    return db_path


@pytest.fixture
def six_knot_samples():
    """Six evenly spaced samples across 10-14V."""
    return [
        CalibrationSample(10.0, 0),
        CalibrationSample(10.8, 20),
        CalibrationSample(11.6, 40),
        CalibrationSample(12.4, 60),
        CalibrationSample(13.2, 80),
        CalibrationSample(14.0, 100),
    ]


@pytest.fixture
def sample_history_rows():
    """Vendor history rows as returned by the data history endpoint."""
    return [
        {
            "deviceSn": "SN123",
            "deviceDataTime": "2024-01-15 10:00:00",
            "pvTotalPower": "1250",
            "emsPower": "-300.5",
            "emsVoltage": "12.0",
            "acROutVolt": "230.1",
            "acROutCurr": "2.15",
        },
        {
            "deviceSn": "SN123",
            "deviceDataTime": "2024-01-15 10:05:00",
            "pvTotalPower": "",
            "emsPower": "120",
            "emsVoltage": "13.0",
            "acROutVolt": "229.8",
            "acROutCurr": "bad",
        },
    ]


@pytest.fixture
def project_root():
    return Path(__file__).parent.parent
