"""Turn vendor history rows into stored device records."""

import math
from pathlib import Path
from typing import Any, Iterable, Optional

from .calibration import CalibrationEngine
from .db import DeviceRecord, SqliteSampleSource, replace_device_history
from . import log


def parse_float(value: Any) -> float:
    """Parse a vendor numeric string; blanks and junk become 0.0."""
    if value is None or value == "":
        return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        log.warn(f"Could not parse float: {value!r}, using 0.0")
        return 0.0
    if not math.isfinite(parsed):
        log.warn(f"Non-finite value: {value!r}, using 0.0")
        return 0.0
    return parsed


def round_float(value: float, precision: int) -> float:
    """Round half away from zero to a fixed number of decimals."""
    ratio = 10 ** precision
    return math.copysign(math.floor(abs(value) * ratio + 0.5), value) / ratio


def build_device_record(row: dict[str, Any], engine: CalibrationEngine) -> DeviceRecord:
    """Map one vendor row to a DeviceRecord with a calibrated percentage."""
    ac_volts = parse_float(row.get("acROutVolt"))
    ac_amps = parse_float(row.get("acROutCurr"))
    battery_voltage = parse_float(row.get("emsVoltage"))

    return DeviceRecord(
        device_sn=row.get("deviceSn", ""),
        data_time=row.get("deviceDataTime", ""),
        pv_input_power_w=parse_float(row.get("pvTotalPower")),
        battery_power_w=parse_float(row.get("emsPower")),
        battery_voltage_v=battery_voltage,
        ac_output_voltage=ac_volts,
        ac_output_current=ac_amps,
        load_power_w=round_float(ac_volts * ac_amps, 2),
        battery_percentage=engine.calibrate(battery_voltage),
    )


def build_device_records(
    rows: Iterable[dict[str, Any]],
    engine: CalibrationEngine,
) -> list[DeviceRecord]:
    """Convert a batch of vendor rows.

    Any calibration error aborts the whole batch.
    """
    return [build_device_record(row, engine) for row in rows]


def ingest_history(
    rows: Iterable[dict[str, Any]],
    db_path: Optional[Path] = None,
) -> int:
    """
    Calibrate and store a batch of vendor history rows.

    The previous history is replaced in a single transaction.

    Returns:
        Number of rows stored
    """
    engine = CalibrationEngine(SqliteSampleSource(db_path))
    records = build_device_records(rows, engine)
    count = replace_device_history(records, db_path)
    log.info(f"Stored {count} device history rows")
    return count
