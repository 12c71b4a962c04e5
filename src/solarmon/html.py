"""HTML rendering helpers using Jinja2 templates."""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from .calibration import select_method
from .db import get_calibration_records, get_device_history, get_latest_device_record
from .env import get_config
from .formatters import (
    format_method,
    format_percentage,
    format_power,
    format_value,
    format_voltage,
)
from . import log


# Singleton Jinja2 environment
_jinja_env: Optional[Environment] = None


def get_jinja_env() -> Environment:
    """Get or create the singleton Jinja2 environment.

    Templates load from src/solarmon/templates/ with autoescape enabled.
    """
    global _jinja_env
    if _jinja_env is not None:
        return _jinja_env

    env = Environment(
        loader=PackageLoader("solarmon", "templates"),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )

    env.filters["format_value"] = format_value
    env.filters["format_voltage"] = format_voltage
    env.filters["format_percentage"] = format_percentage
    env.filters["format_power"] = format_power
    env.filters["format_method"] = format_method

    _jinja_env = env
    return env


def build_page_context(db_path: Optional[Path] = None) -> dict[str, Any]:
    """Collect everything the index page shows."""
    cfg = get_config()
    records = get_calibration_records(db_path)
    history = get_device_history(page_size=cfg.history_page_size, db_path=db_path)

    return {
        "title": cfg.site_title,
        "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "method": select_method(len(records)),
        "sample_count": len(records),
        "samples": records,
        "latest": get_latest_device_record(db_path),
        "history": history,
        "charts": {
            "calibration": "assets/calibration_{theme}.svg",
            "history": "assets/battery_history_{theme}.svg",
        },
    }


def render_index(context: dict[str, Any]) -> str:
    return get_jinja_env().get_template("index.html").render(**context)


def write_site(
    db_path: Optional[Path] = None,
    out_dir: Optional[Path] = None,
) -> list[Path]:
    """Render the static site into out_dir.

    Returns:
        Paths of written pages
    """
    if out_dir is None:
        out_dir = get_config().out_dir
    out_dir.mkdir(parents=True, exist_ok=True)

    index_path = out_dir / "index.html"
    index_path.write_text(render_index(build_page_context(db_path)))
    log.debug(f"Wrote {index_path}")
    return [index_path]
