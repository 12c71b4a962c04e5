#!/usr/bin/env python3
"""
Render charts and the static HTML site from the SQLite database.
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from solarmon.calibration import CalibrationError
from solarmon.charts import render_all_charts
from solarmon.db import init_db
from solarmon.env import get_config
from solarmon import log
from solarmon.html import write_site


def main() -> int:
    """Render charts and pages."""
    init_db()
    cfg = get_config()

    log.info("Rendering site...")
    try:
        charts = render_all_charts()
    except CalibrationError as e:
        log.exception("Reading calibration samples failed", e)
        return 1

    pages = write_site()
    log.info(f"Wrote {len(charts)} charts and {len(pages)} pages to {cfg.out_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
