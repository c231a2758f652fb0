import pytest

from raceboard.errors import MalformedError
from raceboard.scoring import (
    build_race_result,
    format_clock,
    rank_rows,
    result_sort_key,
    with_penalty,
)


ENTRIES = [
    {"driver": "Alice", "team": "Red", "car": "Porsche", "race_number": "7", "class": "GT3"},
    {"driver": "Bob", "team": "Blue", "car": "Audi", "race_number": "12", "class": "GT3"},
]


def _row(pos, team, klass, total, laps, penalty="0", best="90000"):
    return {
        "pos": str(pos),
        "startPos": str(pos),
        "participant": team,
        "car": "Car",
        "class": klass,
        "totalTime": total,
        "bestLapTime": best,
        "bestCleanLapTime": best,
        "laps": laps,
        "penalty": penalty,
    }


def test_format_clock():
    assert format_clock(0) == "00:00:00.000"
    assert format_clock("0") == "00:00:00.000"
    assert format_clock(3661001) == "01:01:01.001"
    assert format_clock("") == ""


def test_format_clock_does_not_wrap_hours():
    assert format_clock(100 * 3600 * 1000 + 59 * 60 * 1000 + 59 * 1000 + 999) == "100:59:59.999"


@pytest.mark.parametrize("value", ["abc", "12.5", "-1"])
def test_format_clock_rejects_bad_values(value):
    with pytest.raises(MalformedError):
        format_clock(value)


def test_more_laps_ranks_first_regardless_of_time():
    rows = [{"laps": "10", "totalTime": "5000"}, {"laps": "12", "totalTime": "9000"}]
    assert rank_rows(rows)[0]["laps"] == "12"


def test_equal_laps_lower_time_ranks_first():
    rows = [{"laps": "5", "totalTime": "4000"}, {"laps": "5", "totalTime": "3000"}]
    assert [r["totalTime"] for r in rank_rows(rows)] == ["3000", "4000"]


def test_unparseable_fields_sort_as_zero():
    assert result_sort_key({"laps": "", "totalTime": "n/a"}) == (0, 0)
    rows = [{"laps": "x", "totalTime": "1"}, {"laps": "1", "totalTime": "999999"}]
    assert rank_rows(rows)[0]["laps"] == "1"


def test_with_penalty_adds_seconds():
    row = {"team": "Red", "totalTime": "60000", "penalty": "2"}
    adjusted = with_penalty(row)
    assert adjusted["totalTime"] == "62000"
    assert format_clock(adjusted["totalTime"]) == "00:01:02.000"
    # Source row is left alone
    assert row["totalTime"] == "60000"


def test_with_penalty_zero_is_unchanged():
    row = {"team": "Red", "totalTime": "60000", "penalty": "0"}
    assert with_penalty(row) == row


def test_with_penalty_bad_value_raises():
    with pytest.raises(MalformedError):
        with_penalty({"team": "Red", "totalTime": "60000", "penalty": "soon"})


def test_build_race_result_resolves_drivers_and_groups_by_class():
    race_rows = [
        _row(1, "Red", "GT3", "3600000", "40"),
        _row(2, "Blue", "GT3", "3601500", "40"),
        _row(3, "Ghost", "GT4", "3700000", "39"),
    ]
    result = build_race_result([], race_rows, ENTRIES, season_name="2024", race_name="Round1")

    assert result["season_name"] == "2024"
    assert result["race_name"] == "Round1"
    assert set(result["race_result"]) == {"GT3", "GT4"}
    assert set(result["race_result_with_penalty"]) == {"GT3", "GT4"}

    gt3 = result["race_result"]["GT3"]
    assert [(r["driver"], r["raceNumber"]) for r in gt3] == [("Alice", "7"), ("Bob", "12")]
    assert gt3[0]["totalTime"] == "01:00:00.000"
    assert gt3[1]["totalTime"] == "01:00:01.500"
    assert gt3[0]["bestLapTime"] == "00:01:30.000"

    ghost = result["race_result"]["GT4"][0]
    assert ghost["driver"] == "N/A"
    assert ghost["raceNumber"] == ""


def test_penalty_reorders_only_the_penalty_view():
    race_rows = [
        _row(1, "Red", "GT3", "3600000", "40", penalty="5"),
        _row(2, "Blue", "GT3", "3601500", "40"),
    ]
    result = build_race_result([], race_rows, ENTRIES)

    plain = result["race_result"]["GT3"]
    ranked = result["race_result_with_penalty"]["GT3"]
    assert [r["team"] for r in plain] == ["Red", "Blue"]
    assert [r["team"] for r in ranked] == ["Blue", "Red"]
    assert ranked[1]["totalTime"] == "01:00:05.000"
    assert plain[0]["totalTime"] == "01:00:00.000"
    # Same rows in both views
    assert sorted(r["team"] for r in plain) == sorted(r["team"] for r in ranked)


def test_qualifying_view_mirrors_race_view():
    qualy_rows = [
        _row(1, "Blue", "GT3", "600000", "6", best="88000"),
        _row(2, "Red", "GT3", "599000", "6", best="88500", penalty="3"),
    ]
    result = build_race_result(qualy_rows, [], ENTRIES)

    assert result["race_result"] == {}
    assert [r["driver"] for r in result["qualy_result"]["GT3"]] == ["Bob", "Alice"]
    ranked = result["qualy_result_with_penalty"]["GT3"]
    assert [r["driver"] for r in ranked] == ["Bob", "Alice"]
    assert ranked[1]["totalTime"] == "00:10:02.000"


def test_empty_best_lap_stays_empty():
    result = build_race_result([], [_row(4, "Red", "GT4", "0", "0", best="")], ENTRIES)
    row = result["race_result_with_penalty"]["GT4"][0]
    assert row["bestLapTime"] == ""
    assert row["totalTime"] == "00:00:00.000"


def test_with_penalty_on_missing_time_counts_from_zero():
    row = {"team": "Blue", "totalTime": "", "penalty": "5"}
    assert with_penalty(row)["totalTime"] == "5000"


def test_views_do_not_share_rows():
    result = build_race_result([], [_row(1, "Red", "GT3", "60000", "3")], ENTRIES)
    plain = result["race_result"]["GT3"][0]
    ranked = result["race_result_with_penalty"]["GT3"][0]
    assert plain == ranked
    assert plain is not ranked
