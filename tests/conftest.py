import pathlib
import sys

import pytest

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

from raceboard import create_app
from raceboard.datastore import RaceDataStore

RESULT_HEADER = "pos,startPos,participant,car,class,totalTime,bestLapTime,bestCleanLapTime,laps\n"

ENTRY_LIST_CSV = (
    "driver,team,car,race_number,class\n"
    "Alice,Red,Porsche 911 GT3 R,7,GT3\n"
    "Bob,Blue,Audi R8 LMS,12,GT3\n"
    "Carla,Green,BMW M4 GT4,33,GT4\n"
).encode()

QUALY_CSV = (
    RESULT_HEADER
    + "1,1,Blue,Audi R8 LMS,GT3,600000,88500,88500,6\n"
    + "2,2,Red,Porsche 911 GT3 R,GT3,601000,88700,88900,6\n"
    + "3,3,Green,BMW M4 GT4,GT4,620000,95000,95100,6\n"
).encode()

RACE_CSV = (
    RESULT_HEADER
    + "1,2,Red,Porsche 911 GT3 R,GT3,3600000,89000,89100,40\n"
    + "2,1,Blue,Audi R8 LMS,GT3,3601500,88800,88900,40\n"
    + "3,3,Green,BMW M4 GT4,GT4,3650000,95500,95600,37\n"
    + "4,4,Yellow,Ginetta G55,GT4,0,,,0\n"
).encode()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    # Keep create_app() away from any config.yml or data dir in the working copy
    monkeypatch.setenv("RACEBOARD_CONFIG", str(tmp_path / "missing.yml"))
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("RACE_DATA_FILE", str(tmp_path / "race_data.json"))
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    yield


@pytest.fixture()
def index_file(tmp_path):
    return tmp_path / "race_data.json"


@pytest.fixture()
def store(tmp_path, index_file):
    return RaceDataStore(tmp_path / "data", index_file)


@pytest.fixture()
def loaded_store(store):
    """Store with season 2024, an entry list and Round1 results."""
    store.add_season("2024")
    store.add_entry_list("2024", ENTRY_LIST_CSV)
    store.add_race("2024", "Round1")
    store.add_results("2024", "Round1", QUALY_CSV, RACE_CSV)
    return store


@pytest.fixture()
def app():
    app = create_app()
    app.config.update({"TESTING": True})
    return app


@pytest.fixture()
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture()
def entry_list_csv():
    return ENTRY_LIST_CSV


@pytest.fixture()
def qualy_csv():
    return QUALY_CSV


@pytest.fixture()
def race_csv():
    return RACE_CSV


@pytest.fixture()
def result_csv():
    """Build uploaded result CSV bytes from row strings."""
    def _build(*lines):
        return (RESULT_HEADER + "".join(line + "\n" for line in lines)).encode()
    return _build
