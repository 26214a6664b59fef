import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .errors import ValidationError
from .exporter import export
from .interfaces import ResultSink
from .models import Job

# table/column names end up in SQL identifiers on the sink side
IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_]+$")


def validate_identifier(name: str) -> str:
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name):
        raise ValidationError(f"invalid identifier: {name!r}")
    return name


class JsonDirectorySink(ResultSink):
    """File-backed sink: <root>/<job_id>.json blobs and <root>/<table>.jsonl rows."""

    def __init__(self, root: str = "exports"):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, job_id: str, blob: bytes) -> None:
        (self.root / f"{validate_identifier(job_id.replace('-', '_'))}.json").write_bytes(blob)

    def append_rows(self, table: str, rows: Iterable[Dict[str, Any]]) -> int:
        path = self.root / f"{validate_identifier(table)}.jsonl"
        n = 0
        with open(path, "a", encoding="utf-8") as f:
            for row in rows:
                f.write(json.dumps(row, ensure_ascii=False, default=str) + "\n")
                n += 1
        return n


def persist_job(job: Job, sink: ResultSink, table: Optional[str] = None,
                column_map: Optional[Dict[str, str]] = None) -> int:
    """
    Save the job's JSON export and, when `table` is given, append one row per
    successful result. `column_map` maps selector id -> column name; without it
    every selector id is used as its own column. Returns the number of rows written.
    """
    sink.save(job.id, export(job, "json").content)
    if table is None:
        return 0

    validate_identifier(table)
    if column_map is None:
        column_map = {k: k for r in job.results for k in r.data}
    for col in column_map.values():
        validate_identifier(col)

    scraped_at = datetime.now(timezone.utc).isoformat()
    rows = []
    for r in job.results:
        if not r.success:
            continue
        row: Dict[str, Any] = {}
        for selector_id, col in column_map.items():
            if selector_id in r.data:
                value = r.data[selector_id]
                row[col] = json.dumps(value, ensure_ascii=False) if isinstance(value, list) else value
        row["source_url"] = r.url
        row["scraped_at"] = scraped_at
        rows.append(row)
    return sink.append_rows(table, rows)
