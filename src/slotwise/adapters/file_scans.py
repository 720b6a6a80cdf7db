"""File-based scan log adapter."""

import json
from datetime import date
from pathlib import Path


class FileScanLog:
    """
    File-based record of completed scans.

    Implements ScanLog protocol. Each day gets a JSON file holding the
    scans run for it, oldest first.
    """

    def __init__(self, scan_dir: Path | str):
        self.scan_dir = Path(scan_dir).expanduser()

    def _path_for_date(self, target_date: date) -> Path:
        return self.scan_dir / f"{target_date.isoformat()}.json"

    def read(self, target_date: date) -> list[dict]:
        """Scans recorded for a date. Empty if none."""
        path = self._path_for_date(target_date)
        if not path.exists():
            return []
        return json.loads(path.read_text())

    def append(self, target_date: date, record: dict) -> None:
        self.scan_dir.mkdir(parents=True, exist_ok=True)
        records = self.read(target_date)
        records.append(record)
        self._path_for_date(target_date).write_text(json.dumps(records, indent=2))

    def exists(self, target_date: date) -> bool:
        """Check if any scan ran for a date."""
        return self._path_for_date(target_date).exists()
