import io
import json
from dataclasses import dataclass
from typing import Any, Dict, List

import pandas as pd

from .errors import ExportError
from .models import Job, JobStatus, Result

FORMATS = {
    "json": ("application/json", "json"),
    "csv": ("text/csv; charset=utf-8", "csv"),
    "excel": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
}
FIXED_COLUMNS = ["index", "url", "success", "error", "timestamp", "statusCode", "responseTimeMs"]
LIST_DELIMITER = ";"


@dataclass(frozen=True)
class ExportPayload:
    content: bytes
    content_type: str
    filename: str


def selector_columns(results: List[Result]) -> List[str]:
    """Union of data keys across results, in first-seen order."""
    seen: Dict[str, None] = {}
    for r in results:
        for k in r.data:
            seen.setdefault(k, None)
    return list(seen)


def column_name(key: str) -> str:
    # selector ids share the header row with the fixed columns
    return f"data.{key}" if key in FIXED_COLUMNS else key


def _cell(value: Any, delimiter: str) -> Any:
    if value is None:
        return ""
    if isinstance(value, list):
        return delimiter.join("" if v is None else str(v) for v in value)
    return value


def to_frame(results: List[Result], delimiter: str = LIST_DELIMITER) -> pd.DataFrame:
    keys = selector_columns(results)
    rows = []
    for r in sorted(results, key=lambda r: (r.index, r.url)):
        row = {
            "index": r.index,
            "url": r.url,
            "success": r.success,
            "error": r.error or "",
            "timestamp": r.timestamp,
            "statusCode": _cell(r.metadata.get("statusCode"), delimiter),
            "responseTimeMs": _cell(r.metadata.get("responseTimeMs"), delimiter),
        }
        for k in keys:
            row[column_name(k)] = _cell(r.data.get(k), delimiter)
        rows.append(row)
    return pd.DataFrame(rows, columns=FIXED_COLUMNS + [column_name(k) for k in keys])


def export(job: Job, fmt: str, list_delimiter: str = LIST_DELIMITER) -> ExportPayload:
    fmt = (fmt or "").lower()
    if fmt not in FORMATS:
        raise ExportError(f"unsupported export format: {fmt!r} (use one of {', '.join(FORMATS)})")
    if job.status is not JobStatus.COMPLETED:
        raise ExportError(f"only completed jobs can be exported (job {job.id} is {job.status.value})")

    content_type, ext = FORMATS[fmt]
    filename = f"job-{job.id}-results.{ext}"
    try:
        if fmt == "json":
            content = json.dumps([r.to_dict() for r in job.results], ensure_ascii=False, indent=2).encode("utf-8")
        elif fmt == "csv":
            content = to_frame(job.results, list_delimiter).to_csv(index=False).encode("utf-8")
        else:
            buf = io.BytesIO()
            with pd.ExcelWriter(buf, engine="openpyxl") as writer:
                to_frame(job.results, list_delimiter).to_excel(writer, index=False, sheet_name="results")
            content = buf.getvalue()
    except (TypeError, ValueError, OSError) as e:
        raise ExportError(f"failed to serialize job {job.id} as {fmt}: {e}") from e
    return ExportPayload(content=content, content_type=content_type, filename=filename)
