"""
Dataset loading for credentials and seat ids.

Both files are read once before the run. Any problem raises DatasetError,
which aborts the run before the first actor launches.
"""

import csv
import io
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from holdrace.core.exceptions import DatasetError
from holdrace.core.logging import get_logger

logger = get_logger(__name__)

TOKEN_COLUMN = "token"


class SeatDataset(BaseModel):
    performanceSeatIds: list[int] = Field(..., min_length=1)


def _read_text(path: str, what: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise DatasetError(f"cannot read {what} file {path}: {e}") from e


def parse_tokens_csv(text: str) -> tuple[str, ...]:
    """Tokens from the `token` column; rows with a blank token are skipped."""
    reader = csv.reader(io.StringIO(text.strip()))
    header = next(reader, None)
    if not header:
        raise DatasetError("tokens.csv must have header + at least 1 row")

    header = [column.strip() for column in header]
    if TOKEN_COLUMN not in header:
        raise DatasetError(f'tokens.csv must have header column named "{TOKEN_COLUMN}"')
    token_idx = header.index(TOKEN_COLUMN)

    tokens = []
    for row in reader:
        if token_idx >= len(row):
            continue
        token = row[token_idx].strip()
        if token:
            tokens.append(token)

    if not tokens:
        raise DatasetError("tokens.csv has no tokens")
    return tuple(tokens)


def parse_seat_json(text: str) -> tuple[int, ...]:
    try:
        dataset = SeatDataset.model_validate_json(text)
    except ValidationError as e:
        raise DatasetError(
            'seat_ids.json must contain { "performanceSeatIds": [ ... ] } '
            f"with at least one integer ({e.error_count()} error(s))"
        ) from e
    if len(set(dataset.performanceSeatIds)) != len(dataset.performanceSeatIds):
        raise DatasetError("seat_ids.json must not list the same seat id twice")
    return tuple(dataset.performanceSeatIds)


def load_tokens(path: str) -> tuple[str, ...]:
    tokens = parse_tokens_csv(_read_text(path, "token"))
    logger.info("tokens_loaded", path=path, count=len(tokens))
    return tokens


def load_seat_ids(path: str) -> tuple[int, ...]:
    seat_ids = parse_seat_json(_read_text(path, "seat id"))
    logger.info("seat_ids_loaded", path=path, count=len(seat_ids))
    return seat_ids
