"""
Result table helpers.

Everything here works on the flat per-offer table produced by the scraper
(one row per offer, columns in farescope.schemas.RESULT_COLUMNS).
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, Mapping, Optional, Union

import pandas as pd

from farescope.schemas import RESULT_COLUMNS

if TYPE_CHECKING:
    from farescope.services.trip_query import TripQuery

logger = logging.getLogger(__name__)


# Airline cells Google renders for price-graph widgets and sold-out dates
PLACEHOLDER_PATTERN = r"Price graph|Price unavailable|^\s*$"

BEST_DATE_METHODS = ("min", "mean", "median")


def empty_results_frame() -> pd.DataFrame:
    return pd.DataFrame(columns=RESULT_COLUMNS)


def rows_to_frame(rows: Iterable[dict]) -> pd.DataFrame:
    rows = list(rows)
    if not rows:
        return empty_results_frame()
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def filter_placeholder_rows(data: pd.DataFrame) -> pd.DataFrame:
    """
    Drop placeholder offers: rows without a price and rows whose airline cell
    is empty or one of Google's placeholder labels.
    """
    if data.empty or "airlines" not in data.columns:
        return data

    airlines = data["airlines"]
    is_placeholder = airlines.fillna("").astype(str).str.contains(
        PLACEHOLDER_PATTERN, case=False, regex=True
    )
    keep = ~is_placeholder
    if "price" in data.columns:
        keep &= data["price"].notna()

    dropped = int((~keep).sum())
    if dropped:
        logger.debug(f"Filtered {dropped} placeholder rows")
    return data[keep]


@dataclass
class FlightResults:
    """Merged table for several fetched queries, keeping the queries by name."""
    data: pd.DataFrame
    queries: Dict[str, "TripQuery"] = field(default_factory=dict)
    # Per-query LegResult lists, when produced by the scraper
    leg_results: Dict[str, list] = field(default_factory=dict)

    def __str__(self) -> str:
        lines = ["Flight Results", "=============="]
        if self.data.empty:
            lines.append("No flight data available")
        else:
            lines.append(f"Total flights: {len(self.data)}")
            origins = self.data["origin"].dropna().unique()
            destinations = self.data["destination"].dropna().unique()
            lines.append(f"Origins: {', '.join(origins)}")
            lines.append(f"Destinations: {', '.join(destinations)}")
        if self.queries:
            lines.append(f"Individual queries: {', '.join(self.queries)}")
        return "\n".join(lines)


def merge_results(
    queries: Mapping[str, "TripQuery"],
    leg_results: Optional[Mapping[str, list]] = None,
) -> FlightResults:
    frames = [q.data for q in queries.values() if q.data is not None and not q.data.empty]
    if frames:
        merged = pd.concat(frames, ignore_index=True)
    else:
        merged = empty_results_frame()
    return FlightResults(data=merged, queries=dict(queries), leg_results=dict(leg_results or {}))


def _as_frame(results: Union[pd.DataFrame, FlightResults, "TripQuery"]) -> pd.DataFrame:
    if isinstance(results, pd.DataFrame):
        return results
    data = getattr(results, "data", None)
    if isinstance(data, pd.DataFrame):
        return data
    raise TypeError("results must be a DataFrame, a FlightResults or a TripQuery")


def find_best_dates(
    results: Union[pd.DataFrame, FlightResults, "TripQuery"],
    n: int = 10,
    by: str = "min",
) -> pd.DataFrame:
    """
    Rank departure dates by price, cheapest first.

    Args:
        results: Fetched data (table, FlightResults or TripQuery)
        n: Number of dates to return
        by: "min", "mean" or "median" price across the day's offers

    Returns:
        DataFrame with columns departure_date, price, n_routes
    """
    if by not in BEST_DATE_METHODS:
        raise ValueError(f"by must be one of {', '.join(BEST_DATE_METHODS)}, got {by!r}")

    data = filter_placeholder_rows(_as_frame(results))
    if data.empty:
        return pd.DataFrame(columns=["departure_date", "price", "n_routes"])

    prices = data.assign(price=pd.to_numeric(data["price"]))
    grouped = prices.groupby("departure_date")
    ranked = pd.DataFrame({
        "price": grouped["price"].agg(by),
        "n_routes": grouped["origin"].nunique(),
    }).reset_index()

    ranked = ranked.sort_values(["price", "departure_date"], kind="stable")
    return ranked.head(n).reset_index(drop=True)


def summarize_prices(
    results: Union[pd.DataFrame, FlightResults, "TripQuery"],
    round_prices: bool = True,
) -> pd.DataFrame:
    """
    Wide price table: one row per origin, one column per departure date
    holding that day's cheapest price, plus an average_price column.
    """
    data = filter_placeholder_rows(_as_frame(results))
    if data.empty:
        return pd.DataFrame(columns=["origin", "average_price"])

    prices = data.assign(price=pd.to_numeric(data["price"]))
    wide = prices.pivot_table(
        index="origin",
        columns="departure_date",
        values="price",
        aggfunc="min",
    )
    wide = wide.reindex(sorted(wide.columns), axis=1)
    wide["average_price"] = wide.mean(axis=1)
    if round_prices:
        wide = wide.round(0)

    wide.columns.name = None
    return wide.reset_index()
