#!/usr/bin/env python3
"""
Collect device history from the vendor cloud API.

Logs in (or reuses/refreshes stored tokens), fetches one page of history
for the configured device and replaces the stored history with it. Every
row's battery percentage is calibrated from its battery voltage.

Usage: collect_history.py [YYYY-MM-DD]   (defaults to today)
"""

import asyncio
import sys
from datetime import date
from pathlib import Path
from typing import Optional

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from solarmon.calibration import CalibrationError
from solarmon.db import init_db
from solarmon.env import get_config
from solarmon.ingest import ingest_history
from solarmon import log
from solarmon.vendor import (
    VendorAPIError,
    fetch_device_history,
    get_access_token,
    make_client,
)


async def collect(date_str: str) -> int:
    """
    Fetch and store one page of history.

    Returns:
        Exit code (0 = success, 1 = failure)
    """
    cfg = get_config()
    if not cfg.device_sn:
        log.error("DEVICE_SN is not configured")
        return 1

    init_db()

    try:
        async with make_client(cfg) as client:
            token = await get_access_token(client, cfg)
            rows = await fetch_device_history(
                client, token, cfg.device_sn, date_str,
                page_num=1, page_size=cfg.history_page_size, cfg=cfg,
            )
    except VendorAPIError as e:
        log.exception("Fetching device history failed", e)
        return 1

    log.info(f"Fetched {len(rows)} rows for {cfg.device_sn} on {date_str}")

    try:
        ingest_history(rows)
    except CalibrationError as e:
        log.exception("Calibrating device history failed", e)
        return 1

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    date_str = args[0] if args else date.today().isoformat()
    return asyncio.run(collect(date_str))


if __name__ == "__main__":
    sys.exit(main())
