import copy
import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from . import csvfiles
from .csvfiles import atomic_write
from .errors import ConflictError, IOFailureError, MalformedError, NotFoundError
from .scoring import build_race_result

logger = logging.getLogger(__name__)

ENTRY_LIST_FILENAME = "entry_list.csv"
QUALY_RESULT_FILENAME = "qualy_result.csv"
RACE_RESULT_FILENAME = "race_result.csv"


_UNSAFE_DIR_CHARS = re.compile(r"[^\w\-]+")


def name_to_dir(name: str) -> str:
    """Directory name for a season or race display name.

    Spaces, path separators, dots and other punctuation all become ``_`` so the
    result is always a single path component.
    """
    return _UNSAFE_DIR_CHARS.sub("_", name.replace(" ", "_").lower())


def _find_race_in(season: Dict[str, Any], race_name: str) -> Optional[Dict[str, Any]]:
    for race in season.get("races", []) or []:
        if race.get("name") == race_name:
            return race
    return None


class RaceDataStore:
    """Season -> race directory backed by a JSON index file.

    The index maps season name to ``{"entryListFile": str, "races": [...]}``
    where each race is ``{"name", "qualyResultFile", "raceResultFile"}``. It is
    read once on construction and rewritten after every change. CSV files live
    under ``data_dir/<season_dir>/[<race_dir>/]``.
    """

    def __init__(self, data_dir: Union[str, Path], index_file: Union[str, Path]) -> None:
        self.data_dir = Path(data_dir)
        self.index_file = Path(index_file)
        self._lock = threading.RLock()
        self._seasons: Dict[str, Dict[str, Any]] = {}
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailureError(f"can not create data dir {self.data_dir}") from exc
        if self.index_file.exists():
            self._seasons = self._read_index()
        else:
            self._write_index({})

    # Index file

    def _read_index(self) -> Dict[str, Dict[str, Any]]:
        try:
            text = self.index_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise IOFailureError(f"can not read race data file {self.index_file}") from exc
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise MalformedError(f"race data file {self.index_file} is not valid JSON") from exc
        if not isinstance(data, dict):
            raise MalformedError(f"race data file {self.index_file} does not hold a season map")
        seasons: Dict[str, Dict[str, Any]] = {}
        for name, season in data.items():
            season = season or {}
            seasons[name] = {
                "entryListFile": season.get("entryListFile", "") or "",
                "races": [
                    {
                        "name": r.get("name", ""),
                        "qualyResultFile": r.get("qualyResultFile", "") or "",
                        "raceResultFile": r.get("raceResultFile", "") or "",
                    }
                    for r in (season.get("races") or [])
                ],
            }
        logger.info("loaded %d seasons from %s", len(seasons), self.index_file)
        return seasons

    def _write_index(self, seasons: Dict[str, Dict[str, Any]]) -> None:
        self._mkdir(self.index_file.parent)
        atomic_write(self.index_file, json.dumps(seasons, indent=3))

    def _commit(self, seasons: Dict[str, Dict[str, Any]]) -> None:
        """Persist ``seasons`` and make it the live map."""
        self._write_index(seasons)
        self._seasons = seasons

    # Lookups

    def _season(self, seasons: Dict[str, Dict[str, Any]], season_name: str) -> Dict[str, Any]:
        season = seasons.get(season_name)
        if season is None:
            raise NotFoundError(f"season {season_name} not found", context={"season": season_name})
        return season

    def _race(self, season: Dict[str, Any], season_name: str, race_name: str) -> Dict[str, Any]:
        race = _find_race_in(season, race_name)
        if race is None:
            raise NotFoundError(
                f"race {race_name} in season {season_name} not found",
                context={"season": season_name, "race": race_name},
            )
        return race

    def _inside_data_dir(self, path: Path) -> Path:
        root = self.data_dir.resolve()
        resolved = path.resolve()
        if resolved == root or root not in resolved.parents:
            raise MalformedError(f"{path} is outside the data dir {self.data_dir}", context={"path": str(path)})
        return path

    def season_dir(self, season_name: str) -> Path:
        return self._inside_data_dir(self.data_dir / name_to_dir(season_name))

    def race_dir(self, season_name: str, race_name: str) -> Path:
        return self._inside_data_dir(self.season_dir(season_name) / name_to_dir(race_name))

    def list_seasons(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._seasons)

    def get_entry_list_path(self, season_name: str) -> str:
        with self._lock:
            return self._season(self._seasons, season_name)["entryListFile"]

    def get_result_paths(self, season_name: str, race_name: str) -> Tuple[str, str]:
        """Return ``(qualy_result_file, race_result_file)``."""
        with self._lock:
            season = self._season(self._seasons, season_name)
            race = self._race(season, season_name, race_name)
            return race["qualyResultFile"], race["raceResultFile"]

    # Mutations

    def _mkdir(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailureError(f"can not create directory {path}", context={"path": str(path)}) from exc

    def add_season(self, name: str) -> None:
        if not name or not name.strip():
            raise MalformedError("season name must not be empty")
        with self._lock:
            if name in self._seasons:
                raise ConflictError(f"season name {name} is not unique", context={"season": name})
            for other in self._seasons:
                if name_to_dir(other) == name_to_dir(name):
                    raise ConflictError(
                        f"season name {name} collides with season {other}",
                        context={"season": name, "existing": other},
                    )
            self._mkdir(self.season_dir(name))
            seasons = copy.deepcopy(self._seasons)
            seasons[name] = {"entryListFile": "", "races": []}
            self._commit(seasons)
        logger.info("added season %s", name)

    def add_race(self, season_name: str, race_name: str) -> None:
        if not race_name or not race_name.strip():
            raise MalformedError("race name must not be empty")
        with self._lock:
            seasons = copy.deepcopy(self._seasons)
            season = self._season(seasons, season_name)
            for race in season["races"]:
                if race["name"] == race_name:
                    raise ConflictError(
                        f"race name {race_name} is not unique",
                        context={"season": season_name, "race": race_name},
                    )
                if name_to_dir(race["name"]) == name_to_dir(race_name):
                    raise ConflictError(
                        f"race name {race_name} collides with race {race['name']}",
                        context={"season": season_name, "race": race_name},
                    )
            self._mkdir(self.race_dir(season_name, race_name))
            season["races"].append({"name": race_name, "qualyResultFile": "", "raceResultFile": ""})
            self._commit(seasons)
        logger.info("season %s add race %s", season_name, race_name)

    def remove_race(self, season_name: str, race_name: str) -> None:
        with self._lock:
            seasons = copy.deepcopy(self._seasons)
            season = self._season(seasons, season_name)
            race = self._race(season, season_name, race_name)
            season["races"].remove(race)
            self._commit(seasons)
            # Result files stay on disk; only a directory that never got any is dropped
            race_dir = self.race_dir(season_name, race_name)
            if race_dir.is_dir() and not any(race_dir.iterdir()):
                race_dir.rmdir()
        logger.info("season %s removed race %s", season_name, race_name)

    def add_entry_list(self, season_name: str, raw: bytes) -> str:
        """Validate and store an entry list; returns the stored file path."""
        with self._lock:
            seasons = copy.deepcopy(self._seasons)
            season = self._season(seasons, season_name)
            rows = csvfiles.parse_entry_list(raw, source=f"entry list of {season_name}")
            csvfiles.check_unique_teams(rows, source=f"entry list of {season_name}")

            self._mkdir(self.season_dir(season_name))
            path = self.season_dir(season_name) / ENTRY_LIST_FILENAME
            atomic_write(path, csvfiles.rows_to_csv(csvfiles.ENTRY_LIST_COLUMNS, rows))
            season["entryListFile"] = str(path)
            self._commit(seasons)
        logger.info("entry list %s with %d entries added to season %s", path, len(rows), season_name)
        return str(path)

    def add_results(self, season_name: str, race_name: str, qualy_raw: bytes, race_raw: bytes) -> Tuple[str, str]:
        """Validate and store qualifying and race results.

        Both files are checked before either is written, so a rejected upload
        leaves nothing behind. Returns ``(qualy_path, race_path)``.
        """
        logger.info("add result to season %s race %s", season_name, race_name)
        with self._lock:
            seasons = copy.deepcopy(self._seasons)
            season = self._season(seasons, season_name)
            race = self._race(season, season_name, race_name)

            payloads: List[Tuple[Path, List[Dict[str, str]]]] = []
            race_dir = self.race_dir(season_name, race_name)
            for filename, raw, label in (
                (QUALY_RESULT_FILENAME, qualy_raw, "qualy result"),
                (RACE_RESULT_FILENAME, race_raw, "race result"),
            ):
                source = f"{label} of {season_name}/{race_name}"
                rows = csvfiles.parse_result(raw, source=source, uploaded=True)
                csvfiles.check_unique_participants(rows, source=source)
                payloads.append((race_dir / filename, csvfiles.add_penalty_column(rows)))

            self._mkdir(race_dir)
            for path, rows in payloads:
                atomic_write(path, csvfiles.rows_to_csv(csvfiles.RESULT_COLUMNS, rows))
            race["qualyResultFile"] = str(payloads[0][0])
            race["raceResultFile"] = str(payloads[1][0])
            self._commit(seasons)
        return race["qualyResultFile"], race["raceResultFile"]

    def add_penalty(self, season_name: str, race_name: str, penalty: str, position: str) -> str:
        """Add ``penalty`` seconds to ``position`` in the race result.

        Returns the accumulated penalty now stored for that position.
        """
        with self._lock:
            season = self._season(self._seasons, season_name)
            race = self._race(season, season_name, race_name)
            path = race["raceResultFile"]
            if not path:
                raise NotFoundError(
                    f"race {race_name} in season {season_name} has no results",
                    context={"season": season_name, "race": race_name},
                )
            total = csvfiles.apply_penalty(path, position, penalty)
        logger.info(
            "season %s race %s: penalty %s added to pos %s, now %s",
            season_name, race_name, penalty, position, total,
        )
        return total

    # Views

    def get_entry_list(self, season_name: str) -> List[Dict[str, str]]:
        path = self.get_entry_list_path(season_name)
        if not path:
            raise NotFoundError(f"no entry list found for season {season_name}", context={"season": season_name})
        return csvfiles.read_entry_list(path)

    def get_race_result(self, season_name: str, race_name: str) -> Dict[str, Any]:
        with self._lock:
            qualy_path, race_path = self.get_result_paths(season_name, race_name)
            if not qualy_path or not race_path:
                raise NotFoundError(
                    f"race {race_name} in season {season_name} has no results",
                    context={"season": season_name, "race": race_name},
                )
            entry_list = self.get_entry_list(season_name)
            qualy_rows = csvfiles.read_result(qualy_path)
            race_rows = csvfiles.read_result(race_path)
        return build_race_result(
            qualy_rows, race_rows, entry_list, season_name=season_name, race_name=race_name
        )


__all__ = ["RaceDataStore", "name_to_dir"]
