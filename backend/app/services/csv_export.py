from __future__ import annotations

import csv
import re
from io import BytesIO, StringIO

from fastapi.responses import StreamingResponse

BOM = "\ufeff"
SEP = ";"


def _field(value, quoting: int) -> str:
    buf = StringIO()
    csv.writer(buf, delimiter=SEP, quoting=quoting, lineterminator="\n").writerow([value])
    return buf.getvalue()[:-1]


def escape_csv(value) -> str:
    # the writer emits "" for a lone empty field
    if value is None or value == "":
        return ""
    return _field(value, csv.QUOTE_MINIMAL)


def quote_always(value) -> str:
    return _field("" if value is None else value, csv.QUOTE_ALL)


def render_csv(rows: list[list], header: list[str] | None = None, quoted_columns: tuple[int, ...] = ()) -> bytes:
    """BOM-prefixed `;` separated text. Columns in quoted_columns are quoted on every data row."""
    out = StringIO()
    out.write(BOM)
    writer = csv.writer(out, delimiter=SEP, lineterminator="\n")
    if header:
        writer.writerow(header)
    for row in rows:
        cells = ["" if v is None else v for v in row]
        if quoted_columns:
            out.write(
                SEP.join(quote_always(v) if i in quoted_columns else escape_csv(v) for i, v in enumerate(cells)) + "\n"
            )
        else:
            writer.writerow(cells)
    return out.getvalue().rstrip("\n").encode("utf-8")


def safe_filename(v: str) -> str:
    s = (v or "").strip()
    s = re.sub(r"\s+", "_", s)
    s = re.sub(r"[^A-Za-z0-9._-]+", "_", s)
    s = re.sub(r"_+", "_", s).strip("_")
    return s[:80] or "export"


def csv_response(filename: str, payload: bytes) -> StreamingResponse:
    return StreamingResponse(
        BytesIO(payload),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{safe_filename(filename)}"'},
    )


def plain_number(v: float) -> str:
    """1500.0 -> "1500", 12.5 -> "12.5"."""
    f = float(v or 0)
    if f == int(f):
        return str(int(f))
    return str(round(f, 2))
