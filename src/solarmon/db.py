"""SQLite storage for calibration samples and device history.

Schema design:
- battery_calibration: every submitted (voltage, percentage) sample
- device_data: the most recent vendor history batch, with the calibrated
  battery percentage computed at ingest time

Migration system:
- Schema version tracked in db_meta table
- Migrations stored as SQL files in src/solarmon/migrations/
- Files named: NNN_description.sql (e.g., 001_initial_schema.sql)
- Applied in order on database init
"""

import math
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

from .calibration import CalibrationSample, StoreReadError, StoreScanError
from .env import get_config
from . import log


# Path to migrations directory (relative to this file)
MIGRATIONS_DIR = Path(__file__).parent / "migrations"

DEFAULT_PAGE_SIZE = 10
DEFAULT_PAGE_NUM = 1

DEVICE_COLUMNS = (
    "device_sn",
    "data_time",
    "pv_input_power_w",
    "battery_power_w",
    "battery_voltage_v",
    "ac_output_voltage",
    "ac_output_current",
    "load_power_w",
    "battery_percentage",
)


@dataclass(frozen=True)
class CalibrationRecord:
    """A stored calibration sample with its row identity."""

    id: int
    voltage: float
    percentage: int
    timestamp: Optional[str] = None

    def to_sample(self) -> CalibrationSample:
        return CalibrationSample(voltage=self.voltage, percentage=self.percentage)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "voltage": self.voltage,
            "percentage": self.percentage,
            "timestamp": self.timestamp,
        }


@dataclass
class DeviceRecord:
    """One row of device history."""

    device_sn: str
    data_time: str
    pv_input_power_w: float
    battery_power_w: float
    battery_voltage_v: float
    ac_output_voltage: float
    ac_output_current: float
    load_power_w: float
    battery_percentage: int
    id: Optional[int] = None

    def as_row(self) -> tuple:
        return tuple(getattr(self, col) for col in DEVICE_COLUMNS)


# =============================================================================
# File-based Migration System
# =============================================================================


def _get_migration_files() -> list[tuple[int, Path]]:
    """Get all migration files sorted by version number."""
    if not MIGRATIONS_DIR.exists():
        return []

    migrations = []
    for sql_file in MIGRATIONS_DIR.glob("*.sql"):
        try:
            version = int(sql_file.stem.split("_")[0])
        except (ValueError, IndexError):
            log.warn(f"Skipping invalid migration filename: {sql_file.name}")
            continue
        migrations.append((version, sql_file))

    return sorted(migrations, key=lambda x: x[0])


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Get current schema version, 0 for a fresh database."""
    try:
        row = conn.execute(
            "SELECT value FROM db_meta WHERE key = 'schema_version'"
        ).fetchone()
        return int(row[0]) if row else 0
    except sqlite3.OperationalError:
        return 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO db_meta (key, value) VALUES ('schema_version', ?)",
        (str(version),)
    )


def _apply_migrations(conn: sqlite3.Connection) -> None:
    """Apply pending migrations from SQL files."""
    current_version = _get_schema_version(conn)
    migrations = _get_migration_files()

    if not migrations:
        raise RuntimeError(
            f"No migration files found in {MIGRATIONS_DIR}. "
            "Expected at least 001_initial_schema.sql"
        )

    for version, sql_file in migrations:
        if version <= current_version:
            continue

        log.info(f"Applying migration {sql_file.name}")
        try:
            conn.executescript(sql_file.read_text())
            _set_schema_version(conn, version)
            conn.commit()
            log.debug(f"Migration {version} applied successfully")
        except Exception as e:
            conn.rollback()
            raise RuntimeError(f"Migration {sql_file.name} failed: {e}") from e


# =============================================================================
# Database Connection & Initialization
# =============================================================================


def get_db_path() -> Path:
    """Get database file path."""
    return get_config().state_dir / "device_data.db"


def init_db(db_path: Optional[Path] = None) -> None:
    """Create the database if needed and apply pending migrations.

    Safe to call multiple times.
    """
    if db_path is None:
        db_path = get_db_path()

    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        _apply_migrations(conn)
        conn.commit()
        log.debug(
            f"Database initialized at {db_path} (schema v{_get_schema_version(conn)})"
        )
    finally:
        conn.close()


def get_schema_version(db_path: Optional[Path] = None) -> int:
    """Schema version of the database, or 0 if it doesn't exist yet."""
    if db_path is None:
        db_path = get_db_path()
    if not db_path.exists():
        return 0
    with get_connection(db_path, readonly=True) as conn:
        return _get_schema_version(conn)


@contextmanager
def get_connection(
    db_path: Optional[Path] = None,
    readonly: bool = False
) -> Iterator[sqlite3.Connection]:
    """Context manager for database connections.

    Commits on clean exit and rolls back on error unless readonly.

    Yields:
        sqlite3.Connection with Row factory enabled
    """
    if db_path is None:
        db_path = get_db_path()

    if readonly:
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    else:
        conn = sqlite3.connect(db_path)

    conn.row_factory = sqlite3.Row

    try:
        yield conn
        if not readonly:
            conn.commit()
    except Exception:
        if not readonly:
            conn.rollback()
        raise
    finally:
        conn.close()


def vacuum_db(db_path: Optional[Path] = None) -> None:
    """Compact database and rebuild indexes."""
    if db_path is None:
        db_path = get_db_path()

    conn = sqlite3.connect(db_path)
    try:
        conn.execute("VACUUM")
        conn.execute("ANALYZE")
        log.info("Database vacuumed and analyzed")
    finally:
        conn.close()


# =============================================================================
# Calibration samples
# =============================================================================


def insert_calibration_sample(
    voltage: float,
    percentage: int,
    db_path: Optional[Path] = None,
) -> int:
    """Store a calibration sample.

    Returns:
        Row id of the new sample
    """
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            "INSERT INTO battery_calibration (voltage, percentage) VALUES (?, ?)",
            (voltage, percentage)
        )
        record_id = cursor.lastrowid
    log.debug(f"Stored calibration sample #{record_id}: {voltage}V = {percentage}%")
    return record_id


def update_calibration_sample(
    record_id: int,
    voltage: float,
    percentage: int,
    db_path: Optional[Path] = None,
) -> Optional[CalibrationRecord]:
    """Overwrite an existing calibration sample.

    Returns:
        The updated record, or None if no sample has that id
    """
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            "UPDATE battery_calibration SET voltage = ?, percentage = ? WHERE id = ?",
            (voltage, percentage, record_id)
        )
        log.debug(f"Calibration update for #{record_id}, rows affected: {cursor.rowcount}")
        if cursor.rowcount == 0:
            return None
        row = conn.execute(
            "SELECT id, voltage, percentage, timestamp FROM battery_calibration WHERE id = ?",
            (record_id,)
        ).fetchone()
    return _record_from_row(row)


def _record_from_row(row: sqlite3.Row) -> CalibrationRecord:
    return CalibrationRecord(
        id=row["id"],
        voltage=row["voltage"],
        percentage=row["percentage"],
        timestamp=row["timestamp"],
    )


def get_calibration_records(db_path: Optional[Path] = None) -> list[CalibrationRecord]:
    """All calibration samples in insertion order."""
    with get_connection(db_path, readonly=True) as conn:
        rows = conn.execute(
            "SELECT id, voltage, percentage, timestamp FROM battery_calibration ORDER BY id"
        ).fetchall()
    return [_record_from_row(row) for row in rows]


def _scan_sample(row: sqlite3.Row) -> CalibrationSample:
    """Interpret a row as a sample, refusing anything that isn't numeric."""
    voltage, percentage = row["voltage"], row["percentage"]

    if not isinstance(voltage, (int, float)) or not math.isfinite(voltage):
        raise StoreScanError(f"row {row['id']}: voltage {voltage!r} is not a finite number")
    if not isinstance(percentage, int):
        raise StoreScanError(f"row {row['id']}: percentage {percentage!r} is not an integer")

    return CalibrationSample(voltage=float(voltage), percentage=percentage)


class SqliteSampleSource:
    """Reads calibration samples from the battery_calibration table.

    Every read opens a fresh read-only connection, so inserts made in between
    calls are visible on the next read.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path

    def read_samples(self) -> list[CalibrationSample]:
        try:
            with get_connection(self.db_path, readonly=True) as conn:
                rows = conn.execute(
                    "SELECT id, voltage, percentage FROM battery_calibration ORDER BY id"
                ).fetchall()
        except sqlite3.Error as e:
            log.error(f"Error querying calibration data: {e}")
            raise StoreReadError(f"calibration samples unavailable: {e}") from e

        return [_scan_sample(row) for row in rows]


# =============================================================================
# Device history
# =============================================================================


def replace_device_history(
    records: Iterable[DeviceRecord],
    db_path: Optional[Path] = None,
) -> int:
    """Swap the stored device history for a new batch in one transaction.

    Clears all rows and resets the AUTOINCREMENT counter so ids restart at 1.

    Returns:
        Number of rows inserted
    """
    placeholders = ", ".join("?" for _ in DEVICE_COLUMNS)
    rows = [record.as_row() for record in records]

    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM device_data")
        conn.execute("DELETE FROM sqlite_sequence WHERE name = 'device_data'")
        conn.executemany(
            f"INSERT INTO device_data ({', '.join(DEVICE_COLUMNS)}) VALUES ({placeholders})",
            rows
        )

    log.debug(f"Replaced device history with {len(rows)} rows")
    return len(rows)


def _device_from_row(row: sqlite3.Row) -> DeviceRecord:
    return DeviceRecord(id=row["id"], **{col: row[col] for col in DEVICE_COLUMNS})


def get_all_device_history(db_path: Optional[Path] = None) -> list[DeviceRecord]:
    """All stored device rows in id order."""
    with get_connection(db_path, readonly=True) as conn:
        rows = conn.execute(
            f"SELECT id, {', '.join(DEVICE_COLUMNS)} FROM device_data ORDER BY id"
        ).fetchall()
    return [_device_from_row(row) for row in rows]


def _positive_int(value: Union[str, int, None], default: int) -> int:
    """Parse a pagination value, falling back for blanks, junk and values < 1."""
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def get_device_history(
    date_str: Optional[str] = None,
    page_num: Union[str, int, None] = None,
    page_size: Union[str, int, None] = None,
    db_path: Optional[Path] = None,
) -> list[DeviceRecord]:
    """
    Fetch one page of device history, optionally for a single day.

    Args:
        date_str: Day to filter on (YYYY-MM-DD), or None/"" for all days
        page_num: 1-based page number (default 1)
        page_size: Rows per page (default 10)
        db_path: Optional path override

    Returns:
        Rows for the requested page
    """
    size = _positive_int(page_size, DEFAULT_PAGE_SIZE)
    num = _positive_int(page_num, DEFAULT_PAGE_NUM)
    offset = (num - 1) * size

    query = f"SELECT id, {', '.join(DEVICE_COLUMNS)} FROM device_data"
    args: list[Any] = []

    if date_str:
        query += " WHERE strftime('%Y-%m-%d', data_time) = ?"
        args.append(date_str)

    query += " ORDER BY id LIMIT ? OFFSET ?"
    args.extend([size, offset])

    with get_connection(db_path, readonly=True) as conn:
        rows = conn.execute(query, args).fetchall()
    return [_device_from_row(row) for row in rows]


def get_latest_device_record(db_path: Optional[Path] = None) -> Optional[DeviceRecord]:
    """Most recent row by data_time, or None if the history is empty."""
    with get_connection(db_path, readonly=True) as conn:
        row = conn.execute(
            f"SELECT id, {', '.join(DEVICE_COLUMNS)} FROM device_data "
            "ORDER BY data_time DESC, id DESC LIMIT 1"
        ).fetchone()
    return _device_from_row(row) if row else None
