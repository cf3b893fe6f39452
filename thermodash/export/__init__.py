"""Export of the loaded attendance records.

Records are written as an indented JSON array using the backend's field
names, so an export parses back into the exact same records.

Example:
    >>> from thermodash.export import export_records, export_filename
    >>> text = export_records(state.records)
    >>> export_filename()
    'attendance_2024-01-01.json'
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from pathlib import Path

from thermodash.dashboard.models import AttendanceRecord


def export_records(records: list[AttendanceRecord]) -> str:
    """Serialize records to an indented JSON array."""
    data = [record.model_dump(mode="json") for record in records]
    return json.dumps(data, indent=2, ensure_ascii=False)


def load_records(text: str) -> list[AttendanceRecord]:
    """Parse an export back into records.

    Raises:
        ValueError: If the text is not a JSON array of records
    """
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("Attendance export must be a JSON array")
    return [AttendanceRecord.model_validate(item) for item in data]


def export_filename(day: date | None = None) -> str:
    """Name of the export file, dated in UTC unless ``day`` is given."""
    if day is None:
        day = datetime.now(timezone.utc).date()
    return f"attendance_{day.isoformat()}.json"


def write_export(
    records: list[AttendanceRecord],
    directory: str | Path,
    day: date | None = None,
) -> Path:
    """Write an export file into ``directory``.

    Returns:
        Path to the written file
    """
    path = Path(directory) / export_filename(day)
    with open(path, "w", encoding="utf-8") as f:
        f.write(export_records(records))
    return path


__all__ = ["export_records", "load_records", "export_filename", "write_export"]
