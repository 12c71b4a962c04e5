"""Environment variable parsing and configuration.

Values come from the process environment, optionally seeded from a
``solarmon.conf`` file of shell-style ``KEY=value`` lines. Variables already
set in the environment always win over the file.
"""

import os
import re
from pathlib import Path
from typing import Optional

CONFIG_FILE_NAME = "solarmon.conf"

_KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _parse_config_value(raw: str) -> str:
    """Parse the value part of a KEY=value line.

    Quoted values keep everything inside the first pair of quotes.
    Unquoted values drop an inline comment introduced by whitespace + '#'.
    """
    value = raw.strip()
    if not value:
        return ""

    if value[0] in ("'", '"'):
        quote = value[0]
        end = value.find(quote, 1)
        if end == -1:
            return value[1:]
        return value[1:end]

    match = re.search(r"\s#", value)
    if match:
        value = value[:match.start()]
    return value.strip()


def _default_config_path() -> Path:
    """Config file location: $SOLARMON_CONFIG or <project root>/solarmon.conf."""
    override = os.environ.get("SOLARMON_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path(__file__).resolve().parent.parent.parent / CONFIG_FILE_NAME


def _load_config_file(config_path: Optional[Path] = None) -> int:
    """Load KEY=value pairs into os.environ without overriding existing vars.

    Returns:
        Number of variables that were set from the file
    """
    if config_path is None:
        config_path = _default_config_path()

    if not config_path.is_file():
        return 0

    loaded = 0
    for line in config_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()

        key, sep, raw_value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not _KEY_PATTERN.match(key):
            continue

        if key not in os.environ:
            os.environ[key] = _parse_config_value(raw_value)
            loaded += 1

    return loaded


def get_str(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get string env var."""
    return os.environ.get(key, default)


def get_int(key: str, default: int) -> int:
    """Get integer env var."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def get_bool(key: str, default: bool = False) -> bool:
    """Get boolean env var (0/1, true/false, yes/no)."""
    val = os.environ.get(key, "").lower()
    if not val:
        return default
    return val in ("1", "true", "yes", "on")


def get_float(key: str, default: float) -> float:
    """Get float env var."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


def get_path(key: str, default: str) -> Path:
    """Get path env var, expanding user and making absolute."""
    val = os.environ.get(key, default)
    return Path(val).expanduser().resolve()


class Config:
    """Configuration loaded from environment variables."""

    def __init__(self):
        # Diagnostics
        self.solar_debug = get_bool("SOLAR_DEBUG", False)
        self.solar_quiet = get_bool("SOLAR_QUIET", False)

        # Vendor cloud API
        self.vendor_base_url = get_str(
            "VENDOR_BASE_URL", "https://shine-api.felicitysolar.com"
        )
        self.vendor_username = get_str("VENDOR_USERNAME")
        self.vendor_password = get_str("VENDOR_PASSWORD")
        self.device_sn = get_str("DEVICE_SN")
        self.history_page_size = get_int("HISTORY_PAGE_SIZE", 10)

        # Timeouts and retries
        self.remote_timeout_s = get_int("REMOTE_TIMEOUT_S", 10)
        self.remote_retry_attempts = get_int("REMOTE_RETRY_ATTEMPTS", 2)
        self.remote_retry_backoff_s = get_int("REMOTE_RETRY_BACKOFF_S", 4)

        # Paths
        self.state_dir = get_path("STATE_DIR", "./data/state")
        self.out_dir = get_path("OUT_DIR", "./out")

        # Site
        self.site_title = get_str("SITE_TITLE", "Solar Battery Monitor")


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _load_config_file()
        _config = Config()
    return _config
