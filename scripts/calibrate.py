#!/usr/bin/env python3
"""
Manage battery calibration samples.

Usage:
    calibrate.py add VOLTAGE PERCENTAGE
    calibrate.py update ID VOLTAGE PERCENTAGE
    calibrate.py list
    calibrate.py estimate VOLTAGE
"""

import json
import sys
from pathlib import Path
from typing import Optional

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from solarmon.calibration import CalibrationEngine, CalibrationError
from solarmon.db import (
    SqliteSampleSource,
    get_calibration_records,
    init_db,
    insert_calibration_sample,
    update_calibration_sample,
)
from solarmon.formatters import format_method
from solarmon import log

USAGE = __doc__.split("Usage:", 1)[1].rstrip()


def _print_records() -> None:
    print(json.dumps([r.to_dict() for r in get_calibration_records()], indent=2))


def main(argv: Optional[list[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(f"Usage:{USAGE}")
        return 2

    command, params = args[0], args[1:]

    try:
        if command == "add" and len(params) == 2:
            voltage, percentage = float(params[0]), int(params[1])
        elif command == "update" and len(params) == 3:
            record_id, voltage, percentage = int(params[0]), float(params[1]), int(params[2])
        elif command == "estimate" and len(params) == 1:
            voltage = float(params[0])
        elif command == "list" and not params:
            pass
        else:
            print(f"Usage:{USAGE}")
            return 2
    except ValueError as e:
        log.error(f"Invalid argument: {e}")
        return 2

    init_db()

    if command == "add":
        record_id = insert_calibration_sample(voltage, percentage)
        log.info(f"Recorded calibration sample #{record_id}: {voltage}V = {percentage}%")
        _print_records()
    elif command == "update":
        record = update_calibration_sample(record_id, voltage, percentage)
        if record is None:
            log.error(f"No calibration sample with id {record_id}")
            return 1
        print(json.dumps(record.to_dict(), indent=2))
    elif command == "list":
        _print_records()
    else:
        engine = CalibrationEngine(SqliteSampleSource())
        try:
            method = engine.current_method()
            percentage = engine.calibrate(voltage)
        except CalibrationError as e:
            log.exception("Calibration failed", e)
            return 1
        log.info(f"{voltage}V -> {percentage}% ({format_method(method)})")
        print(percentage)

    return 0


if __name__ == "__main__":
    sys.exit(main())
