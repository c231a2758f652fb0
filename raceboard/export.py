"""CSV export of a ranked, penalty adjusted split."""

import csv
from typing import Dict, TextIO

EXPORT_HEADER = "split pos, race pos,laps,race number,team,driver,penalty,ziel zeit\n"


def export_csv(race_result: Dict, class_name: str, output_stream: TextIO) -> int:
    """Write the with-penalty rows of ``class_name`` to ``output_stream``.

    Rows without a completed lap are left out and the split position counts
    only the rows written. Returns the number of rows written.
    """
    output_stream.write(EXPORT_HEADER)
    writer = csv.writer(output_stream, lineterminator="\n")
    rows = (race_result.get("race_result_with_penalty") or {}).get(class_name, [])
    split_pos = 0
    for row in rows:
        try:
            laps = int(row.get("laps") or 0)
        except ValueError:
            laps = 0
        if laps == 0:
            continue
        # TODO: drop entrants with less than 50% of the winner's laps
        split_pos += 1
        writer.writerow([
            split_pos,
            row.get("pos", ""),
            row.get("laps", ""),
            row.get("raceNumber", ""),
            row.get("team", ""),
            row.get("driver", ""),
            row.get("penalty", ""),
            row.get("totalTime", ""),
        ])
    return split_pos


__all__ = ["EXPORT_HEADER", "export_csv"]
