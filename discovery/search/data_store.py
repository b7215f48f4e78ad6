from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from .config import DEFAULT_SEARCH_CONFIG

logger = logging.getLogger(__name__)

SERVICE_PROVIDERS = "service_providers"
MARKETPLACE_LISTINGS = "marketplace_listings"
EVENTS = "events"
SELLER_REVIEWS = "seller_reviews"


class QueryError(Exception):
    pass


@dataclass
class QueryResult:
    records: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _clean_value(value: Any) -> Any:
    if isinstance(value, (float, np.floating)) and np.isnan(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def _cell_contains(value: Any, needle: str) -> bool:
    if isinstance(value, (list, tuple)):
        return any(needle in str(v).lower() for v in value if v is not None)
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return False
    return needle in str(value).lower()


class RecordStore:
    """
    Read-only view over the backend tables.

    Each table is a JSON array of objects in ``data_dir/<table>.json``,
    loaded into a DataFrame on first use. Query failures are reported on the
    returned ``QueryResult`` rather than raised.
    """

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)
        self._tables: dict[str, pd.DataFrame] = {}

    def _load(self, table: str) -> pd.DataFrame:
        if table not in self._tables:
            path = self.data_dir / f"{table}.json"
            if not path.is_file():
                raise QueryError(f"unknown table {table!r}")
            try:
                with path.open(encoding="utf-8") as fh:
                    rows = json.load(fh)
            except (OSError, json.JSONDecodeError) as exc:
                raise QueryError(f"could not read {path.name}: {exc}") from exc
            if not isinstance(rows, list):
                raise QueryError(f"{path.name} is not a list of records")
            self._tables[table] = pd.DataFrame.from_records(rows)
        return self._tables[table]

    def _apply(
        self,
        df: pd.DataFrame,
        eq: dict[str, Any] | None,
        contains: tuple[str, list[str]] | None,
    ) -> pd.DataFrame:
        mask = pd.Series(True, index=df.index)

        for column, value in (eq or {}).items():
            if column not in df.columns:
                raise QueryError(f"unknown column {column!r}")
            mask = mask & (df[column] == value)

        if contains:
            text, columns = contains
            # Every term has to appear in at least one of the columns.
            for term in text.lower().split():
                any_match = pd.Series(False, index=df.index)
                for column in columns:
                    if column in df.columns:
                        any_match = any_match | df[column].apply(
                            lambda cell, t=term: _cell_contains(cell, t)
                        )
                mask = mask & any_match

        return df.loc[mask]

    def select(
        self,
        table: str,
        eq: dict[str, Any] | None = None,
        contains: tuple[str, list[str]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> QueryResult:
        """
        Select rows from ``table``.

        ``eq`` maps columns to required values. ``contains`` is a
        ``(text, columns)`` pair: each word of ``text`` must appear,
        case-insensitively, in at least one of ``columns``. ``order_by``
        sorts stably with missing values last.
        """
        try:
            df = self._load(table)
            if df.empty:
                return QueryResult()
            rows = self._apply(df, eq, contains)
            if order_by:
                if order_by not in rows.columns:
                    raise QueryError(f"unknown column {order_by!r}")
                rows = rows.sort_values(
                    order_by,
                    ascending=not descending,
                    kind="stable",
                    na_position="last",
                )
            if limit is not None:
                rows = rows.head(limit)
        except QueryError as exc:
            logger.warning("Query on %s failed: %s", table, exc)
            return QueryResult(error=str(exc))

        records = [
            {k: _clean_value(v) for k, v in row.items()}
            for row in rows.to_dict(orient="records")
        ]
        return QueryResult(records=records)

    def count(self, table: str, eq: dict[str, Any] | None = None) -> int:
        result = self.select(table, eq=eq)
        return len(result.records)


_store: RecordStore | None = None


def get_store() -> RecordStore:
    """Return the process-wide store, creating it on first call."""
    global _store
    if _store is None:
        _store = RecordStore(DEFAULT_SEARCH_CONFIG.data_dir)
    return _store


def set_store(store: RecordStore | None) -> None:
    global _store
    _store = store
