"""Entry list and result CSV handling.

Both file kinds are header driven: the first line names the columns and the
column order in the file does not matter. Result files gain a ``penalty``
column exactly once, when they are uploaded; penalties are then accumulated
in place by :func:`apply_penalty`.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple, Union

from .errors import ConflictError, IOFailureError, MalformedError, NotFoundError

logger = logging.getLogger(__name__)

ENTRY_LIST_COLUMNS = ("driver", "team", "car", "race_number", "class")
RESULT_COLUMNS = (
    "pos",
    "startPos",
    "participant",
    "car",
    "class",
    "totalTime",
    "bestLapTime",
    "bestCleanLapTime",
    "laps",
    "penalty",
)
PENALTY_COLUMN = "penalty"
# Result files as exported by the timing software, before the penalty column is added.
UPLOAD_RESULT_COLUMNS = tuple(c for c in RESULT_COLUMNS if c != PENALTY_COLUMN)

PathLike = Union[str, Path]


def atomic_write(path: PathLike, text: str) -> None:
    """Write ``text`` to ``path`` via a temporary file and ``os.replace``."""
    target = Path(path)
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", dir=target.parent, prefix=f".{target.name}.", suffix=".tmp",
            delete=False, encoding="utf-8", newline="",
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(text)
        os.replace(tmp_name, target)
    except OSError as exc:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise IOFailureError(f"can not write {target}", context={"path": str(target)}) from exc


def _read_text(path: PathLike) -> str:
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except FileNotFoundError as exc:
        raise NotFoundError(f"file {path} not found", context={"path": str(path)}) from exc
    except OSError as exc:
        raise IOFailureError(f"can not read {path}", context={"path": str(path)}) from exc
    return _decode(raw, str(path))


def _decode(raw: bytes, source: str) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise MalformedError(f"{source} is not valid UTF-8") from exc


def _read_records(text: str, columns: Sequence[str], source: str) -> Tuple[List[str], List[List[str]]]:
    """Return ``(header, records)`` after checking the header against ``columns``."""
    try:
        reader = csv.reader(io.StringIO(text, newline=""))
        header = next(reader, None)
        if not header:
            raise MalformedError(f"{source} has no header line")
        header = [h.strip() for h in header]
        if len(set(header)) != len(header):
            raise MalformedError(f"{source} has duplicate columns in header {header}")
        missing = [c for c in columns if c not in header]
        unknown = [h for h in header if h not in columns]
        if missing or unknown:
            raise MalformedError(
                f"{source} header does not match, missing {missing} unknown {unknown}",
                context={"missing": missing, "unknown": unknown},
            )
        records: List[List[str]] = []
        for record in reader:
            if not record:
                continue
            if len(record) != len(header):
                raise MalformedError(
                    f"{source} line {reader.line_num} has {len(record)} fields, expected {len(header)}"
                )
            records.append(record)
    except csv.Error as exc:
        raise MalformedError(f"{source} is not a valid CSV file: {exc}") from exc
    return header, records


def _to_rows(header: List[str], records: Iterable[List[str]]) -> List[Dict[str, str]]:
    return [dict(zip(header, record)) for record in records]


def rows_to_csv(columns: Sequence[str], rows: Iterable[Dict[str, str]]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=list(columns), lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def parse_entry_list(raw: bytes, source: str = "entry list") -> List[Dict[str, str]]:
    header, records = _read_records(_decode(raw, source), ENTRY_LIST_COLUMNS, source)
    return _to_rows(header, records)


def parse_result(raw: bytes, source: str = "result", uploaded: bool = False) -> List[Dict[str, str]]:
    """Parse result CSV bytes.

    ``uploaded`` selects the timing software schema, which has no penalty
    column yet.
    """
    columns = UPLOAD_RESULT_COLUMNS if uploaded else RESULT_COLUMNS
    header, records = _read_records(_decode(raw, source), columns, source)
    return _to_rows(header, records)


def read_entry_list(path: PathLike) -> List[Dict[str, str]]:
    logger.debug("read entry list %s", path)
    header, records = _read_records(_read_text(path), ENTRY_LIST_COLUMNS, str(path))
    return _to_rows(header, records)


def read_result(path: PathLike) -> List[Dict[str, str]]:
    logger.debug("read result %s", path)
    header, records = _read_records(_read_text(path), RESULT_COLUMNS, str(path))
    return _to_rows(header, records)


def add_penalty_column(rows: Iterable[Dict[str, str]]) -> List[Dict[str, str]]:
    """Return copies of freshly uploaded result rows with ``penalty`` set to ``0``."""
    return [{**row, PENALTY_COLUMN: "0"} for row in rows]


def _check_unique(rows: List[Dict[str, str]], key: str, source: str) -> None:
    seen: Dict[str, int] = {}
    for row in rows:
        value = row.get(key, "")
        seen[value] = seen.get(value, 0) + 1
    dups = sorted(v for v, cnt in seen.items() if cnt > 1)
    if dups:
        logger.warning("%s: %s values not unique: %s", source, key, dups)
        raise ConflictError(
            f"{key} names in {source} are not unique: {', '.join(dups)}",
            context={"duplicates": dups},
        )


def check_unique_teams(rows: List[Dict[str, str]], source: str = "entry list") -> None:
    _check_unique(rows, "team", source)


def check_unique_participants(rows: List[Dict[str, str]], source: str = "result") -> None:
    _check_unique(rows, "participant", source)


def parse_penalty_seconds(value: Union[str, int], what: str = "penalty") -> int:
    """Return a non-negative whole number of seconds or raise ``MalformedError``."""
    try:
        seconds = int(str(value).strip())
    except ValueError as exc:
        raise MalformedError(f"{what} {value!r} is not a whole number of seconds") from exc
    if seconds < 0:
        raise MalformedError(f"{what} {value!r} must not be negative")
    return seconds


def apply_penalty(file_path: PathLike, position: str, penalty_seconds: Union[str, int]) -> str:
    """Add ``penalty_seconds`` to the row finishing at ``position``.

    ``position`` is compared against the stored ``pos`` column as a string.
    A stored ``"0"`` is replaced, any other value is accumulated. The whole
    file is rewritten. Returns the new stored penalty.

    Raises:
        NotFoundError: no row has that position, or the file is missing.
        ConflictError: more than one row has that position.
        MalformedError: a penalty value does not parse.
        IOFailureError: the file can not be read or written.
    """
    addend = parse_penalty_seconds(penalty_seconds)
    source = str(file_path)
    header, records = _read_records(_read_text(file_path), RESULT_COLUMNS, source)
    pos_idx = header.index("pos")
    penalty_idx = header.index(PENALTY_COLUMN)

    matches = [record for record in records if record[pos_idx] == position]
    if not matches:
        raise NotFoundError(f"no result at pos {position} in {source}", context={"pos": position})
    if len(matches) > 1:
        raise ConflictError(
            f"{len(matches)} results at pos {position} in {source}", context={"pos": position}
        )

    record = matches[0]
    current = record[penalty_idx]
    if current == "0":
        total = addend
    else:
        stored = parse_penalty_seconds(current, what="stored penalty")
        total = stored + addend
        logger.info("pos %s, penalty %s + %s = %s", position, stored, addend, total)
    record[penalty_idx] = str(total)

    atomic_write(file_path, rows_to_csv(header, _to_rows(header, records)))
    return record[penalty_idx]


__all__ = [
    "ENTRY_LIST_COLUMNS",
    "RESULT_COLUMNS",
    "UPLOAD_RESULT_COLUMNS",
    "PENALTY_COLUMN",
    "atomic_write",
    "rows_to_csv",
    "parse_entry_list",
    "parse_result",
    "read_entry_list",
    "read_result",
    "add_penalty_column",
    "check_unique_teams",
    "check_unique_participants",
    "parse_penalty_seconds",
    "apply_penalty",
]
