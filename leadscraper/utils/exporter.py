"""
Export scraped data to CSV and JSON.

``CsvBuffer`` appends rows as sessions finish so a crash loses at most
one buffer's worth of records; ``export_all`` writes the final,
de-duplicated files at the end of a run.
"""

import json
import threading
from pathlib import Path
from typing import Dict, List

import pandas as pd
from loguru import logger

from leadscraper.models.business import CSV_COLUMNS, Business


def _ensure_dir(path: Path) -> None:
    """Create parent directories if they don't exist."""
    path.parent.mkdir(parents=True, exist_ok=True)


def _frame(data: List[Business]) -> pd.DataFrame:
    return pd.DataFrame([b.to_csv_row() for b in data], columns=CSV_COLUMNS)


class CsvBuffer:
    """
    Thread-safe append-to-CSV buffer.

    Rows are held in memory and written every ``buffer_size`` records; the
    header is written only when the file is new or empty.
    """

    def __init__(self, path: Path, buffer_size: int = 10) -> None:
        self.path = Path(path)
        self.buffer_size = max(1, buffer_size)
        self.written = 0
        self._pending: List[Business] = []
        self._lock = threading.Lock()

    def __enter__(self) -> "CsvBuffer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.flush()

    def add(self, business: Business) -> None:
        with self._lock:
            self._pending.append(business)
            if len(self._pending) >= self.buffer_size:
                self._flush_locked()

    def extend(self, businesses: List[Business]) -> None:
        for business in businesses:
            self.add(business)

    def flush(self) -> int:
        with self._lock:
            return self._flush_locked()

    def _flush_locked(self) -> int:
        if not self._pending:
            return 0
        _ensure_dir(self.path)
        write_header = not self.path.exists() or self.path.stat().st_size == 0
        df = _frame(self._pending)
        df.to_csv(
            self.path,
            mode="a",
            header=write_header,
            index=False,
            encoding="utf-8",
        )
        count = len(self._pending)
        self.written += count
        self._pending = []
        logger.debug("CSV buffer flushed ({} rows)  ->  {}", count, self.path)
        return count


def export_to_csv(data: List[Business], output_path: Path) -> Path:
    """Write *data* as one CSV in ``CSV_COLUMNS`` order (UTF-8)."""
    _ensure_dir(output_path)
    _frame(data).to_csv(output_path, index=False, encoding="utf-8")
    logger.info("CSV written ({} rows)  ->  {}", len(data), output_path)
    return output_path


def export_to_json(data: List[Business], output_path: Path) -> Path:
    """Write full records, every field group included, as a JSON array."""
    _ensure_dir(output_path)
    payload = [business.model_dump(mode="json") for business in data]
    output_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    logger.info("JSON written ({} records)  ->  {}", len(payload), output_path)
    return output_path


def export_all(
    data: List[Business],
    output_dir: Path,
    run_name: str,
) -> Dict[str, Path]:
    """
    Write the run's final files into *output_dir*.

    ``<run>_leads.csv`` / ``<run>_leads.json`` hold every business;
    ``<run>_no_website.csv`` holds only those without a website, the
    ones worth contacting first.
    """
    stem = run_name.strip().replace(" ", "_").lower()
    return {
        "csv": export_to_csv(data, output_dir / f"{stem}_leads.csv"),
        "json": export_to_json(data, output_dir / f"{stem}_leads.json"),
        "no_website_csv": export_to_csv(
            [b for b in data if not b.has_website],
            output_dir / f"{stem}_no_website.csv",
        ),
    }
