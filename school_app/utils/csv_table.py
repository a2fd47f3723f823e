import csv
from typing import List


def read_csv_lines(raw_text: str) -> List[List[str]]:
    """
    Split pasted or uploaded CSV text into trimmed fields, one list per non-blank line.

    Every line is read on its own, so an unbalanced quote damages only that line.
    """
    lines = [line for line in (raw_text or "").strip().splitlines() if line.strip()]
    return [[field.strip() for field in next(csv.reader([line]))] for line in lines]
