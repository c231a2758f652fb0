"""Race result calculation: penalties, per-class ranking and time display."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Union

from .errors import MalformedError

logger = logging.getLogger(__name__)

MS_PER_SECOND = 1000
SECONDS_PER_HOUR = 3600
NO_DRIVER = "N/A"


def format_clock(milliseconds: Union[str, int]) -> str:
    """Return ``HH:MM:SS.mmm`` for a millisecond count.

    An empty string stays empty (no lap set). Hours are not wrapped.
    """
    if milliseconds == "":
        return ""
    try:
        ms = int(milliseconds)
    except (TypeError, ValueError) as exc:
        raise MalformedError(f"time {milliseconds!r} is not a number of milliseconds") from exc
    if ms < 0:
        raise MalformedError(f"time {milliseconds!r} must not be negative")
    seconds, millis = divmod(ms, MS_PER_SECOND)
    hours, seconds = divmod(seconds, SECONDS_PER_HOUR)
    minutes, seconds = divmod(seconds, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def _as_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def result_sort_key(row: Dict) -> tuple:
    """Rank key: more laps first, then lower total time.

    Unparseable laps or times count as zero.
    """
    return (-_as_int(row.get("laps")), _as_int(row.get("totalTime")))


def rank_rows(rows: Iterable[Dict]) -> List[Dict]:
    return sorted(rows, key=result_sort_key)


def _display_row(line: Dict[str, str], drivers: Dict[str, Dict[str, str]]) -> Dict[str, str]:
    team = line.get("participant", "")
    entry = drivers.get(team)
    return {
        "pos": line.get("pos", ""),
        "startPos": line.get("startPos", ""),
        "driver": entry["driver"] if entry else NO_DRIVER,
        "team": team,
        "raceNumber": entry["race_number"] if entry else "",
        "car": line.get("car", ""),
        "class": line.get("class", ""),
        "totalTime": line.get("totalTime", ""),
        "bestLapTime": line.get("bestLapTime", ""),
        "bestCleanLapTime": line.get("bestCleanLapTime", ""),
        "laps": line.get("laps", ""),
        "penalty": line.get("penalty", "0"),
    }


def with_penalty(row: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of ``row`` with the penalty folded into ``totalTime``."""
    penalty = row.get("penalty", "0")
    if penalty == "0":
        return dict(row)
    try:
        seconds = int(penalty)
    except ValueError as exc:
        raise MalformedError(f"penalty {penalty!r} of {row.get('team')} is not a number") from exc
    # No recorded time (DNF) counts as zero, as in the rank key
    total = _as_int(row.get("totalTime"))
    adjusted = total + seconds * MS_PER_SECOND
    logger.debug("total time: %s + %s = %s", total, seconds * MS_PER_SECOND, adjusted)
    return {**row, "totalTime": str(adjusted)}


def _formatted(rows: Iterable[Dict[str, str]]) -> List[Dict[str, str]]:
    return [
        {**row, "bestLapTime": format_clock(row["bestLapTime"]), "totalTime": format_clock(row["totalTime"])}
        for row in rows
    ]


def build_session_views(
    result_rows: Iterable[Dict[str, str]],
    entry_list: Iterable[Dict[str, str]],
) -> tuple[Dict[str, List[Dict]], Dict[str, List[Dict]]]:
    """Return ``(plain, with_penalty)`` class -> rows maps for one session.

    The plain view keeps upload order; the with-penalty view is ranked.
    """
    drivers: Dict[str, Dict[str, str]] = {}
    for entry in entry_list:
        drivers.setdefault(entry.get("team", ""), entry)

    plain: Dict[str, List[Dict]] = {}
    for line in result_rows:
        plain.setdefault(line.get("class", ""), []).append(_display_row(line, drivers))

    penalized = {k: rank_rows(with_penalty(r) for r in rows) for k, rows in plain.items()}
    return (
        {k: _formatted(rows) for k, rows in plain.items()},
        {k: _formatted(rows) for k, rows in penalized.items()},
    )


def build_race_result(
    qualy_rows: Iterable[Dict[str, str]],
    race_rows: Iterable[Dict[str, str]],
    entry_list: Iterable[Dict[str, str]],
    season_name: Optional[str] = None,
    race_name: Optional[str] = None,
) -> Dict:
    """Join qualifying and race rows with the entry list.

    Returns a dict with ``race_result``/``race_result_with_penalty`` and the
    mirrored ``qualy_result``/``qualy_result_with_penalty`` maps, each keyed by
    class name.
    """
    entries = list(entry_list)
    qualy, qualy_pen = build_session_views(qualy_rows, entries)
    race, race_pen = build_session_views(race_rows, entries)
    return {
        "season_name": season_name,
        "race_name": race_name,
        "qualy_result": qualy,
        "qualy_result_with_penalty": qualy_pen,
        "race_result": race,
        "race_result_with_penalty": race_pen,
    }


__all__ = [
    "format_clock",
    "result_sort_key",
    "rank_rows",
    "with_penalty",
    "build_session_views",
    "build_race_result",
]
