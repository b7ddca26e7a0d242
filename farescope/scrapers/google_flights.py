import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Union

from farescope.config import Settings, get_settings
from farescope.errors import (
    InsufficientContentTimeout,
    NavigationFailure,
    NoFlightDataFound,
)
from farescope.scrapers.browser import BrowserSession, PlaywrightSession, SessionFactory, open_session
from farescope.scrapers.extractors import FlightRecord, parse_page
from farescope.services.results import FlightResults, merge_results, rows_to_frame
from farescope.services.trip_query import Leg, TripQuery

logger = logging.getLogger(__name__)


# Failure reason classification
FailureReason = Literal[
    "success",
    "no_results",
    "timeout",
    "blocked",
    "navigation_error",
    "parse_error",
    "unknown",
]


@dataclass
class LegResult:
    """Outcome of scraping one leg, with failure classification."""
    leg: Leg
    url: str
    status: FailureReason
    records: List[FlightRecord] = field(default_factory=list)
    error_message: Optional[str] = None
    duration_ms: int = 0
    scraped_at: datetime = field(default_factory=datetime.now)

    @property
    def is_success(self) -> bool:
        return self.status == "success"

    @property
    def has_records(self) -> bool:
        return len(self.records) > 0

    def rows(self) -> List[dict]:
        return [record.to_row(self.scraped_at) for record in self.records]


class GoogleFlightsScraper:
    """
    Drives a browser session through every leg of a trip query.

    Per leg: navigate -> wait for content -> extract text -> parse -> append.
    A failing leg is reported in its LegResult and never stops the legs after
    it; only a session that cannot start aborts a query.
    """

    # Blocked/rate-limited detection
    BLOCKED_PATTERNS = [
        "unusual traffic",
        "automated requests",
        "verify you're not a robot",
        "access denied",
    ]

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory or (lambda: PlaywrightSession(self.settings))

    @staticmethod
    def _elapsed_ms(start: datetime) -> int:
        return int((datetime.now() - start).total_seconds() * 1000)

    def _detect_blocked(self, text: str) -> bool:
        text_lower = text.lower()
        return any(pattern in text_lower for pattern in self.BLOCKED_PATTERNS)

    async def _wait_for_content(self, session: BrowserSession) -> str:
        """
        Poll the page text until it has more than min_content_lines lines.

        Returns early on a block page so it can be classified.

        Raises:
            InsufficientContentTimeout: the attempts ran out first
        """
        attempts = self.settings.max_poll_attempts
        line_count = 0
        for attempt in range(1, attempts + 1):
            text = await session.get_body_text()
            line_count = len(text.split("\n")) if text else 0

            if line_count > self.settings.min_content_lines:
                logger.debug(f"Content ready after {attempt} attempt(s): {line_count} lines")
                return text
            if text and self._detect_blocked(text):
                return text

            if attempt < attempts:
                await asyncio.sleep(self.settings.poll_interval_seconds)

        raise InsufficientContentTimeout(
            f"Page did not load sufficient content: {line_count} lines after {attempts} attempts"
        )

    async def scrape_leg(self, session: BrowserSession, leg: Leg, url: str) -> LegResult:
        """Scrape one leg. Never raises for page-level problems."""
        start_time = datetime.now()

        def failed(status: FailureReason, message: str) -> LegResult:
            return LegResult(
                leg=leg,
                url=url,
                status=status,
                error_message=message,
                duration_ms=self._elapsed_ms(start_time),
            )

        try:
            await session.navigate(url)
            if self.settings.settle_seconds:
                await asyncio.sleep(self.settings.settle_seconds)
            text = await self._wait_for_content(session)
        except NavigationFailure as e:
            return failed("navigation_error", str(e))
        except InsufficientContentTimeout as e:
            return failed("timeout", str(e))
        except Exception as e:
            logger.exception(f"Unexpected error loading {leg.origin}->{leg.destination}")
            return failed("unknown", f"Unexpected error: {e}")

        if self._detect_blocked(text):
            return failed("blocked", "Detected rate limiting or block from Google")

        try:
            records = parse_page(text, leg.date)
        except NoFlightDataFound as e:
            return failed("no_results", str(e))
        except Exception as e:
            logger.exception(f"Parser failed for {leg.origin}->{leg.destination} on {leg.date}")
            return failed("parse_error", f"Parser error: {e}")

        if not records:
            return failed("no_results", "Not enough flight data on the page to form an offer")

        return LegResult(
            leg=leg,
            url=url,
            status="success",
            records=records,
            duration_ms=self._elapsed_ms(start_time),
        )

    async def fetch_query(self, query: TripQuery, session: BrowserSession) -> List[LegResult]:
        """
        Scrape every leg of a query on an open session, strictly in order.

        The query's data table is replaced with the rows of all legs.
        """
        total = len(query.legs)
        results: List[LegResult] = []

        for i, (leg, url) in enumerate(zip(query.legs, query.urls), start=1):
            logger.info(f"Segment {i}/{total}: {leg.origin} -> {leg.destination} on {leg.date.isoformat()}")

            result = await self.scrape_leg(session, leg, url)
            results.append(result)

            if result.is_success:
                logger.info(f"Segment {i}/{total}: {len(result.records)} offers")
            else:
                logger.warning(f"Segment {i}/{total} failed ({result.status}): {result.error_message}")

            if i < total and self.settings.leg_pause_seconds:
                await asyncio.sleep(self.settings.leg_pause_seconds)

        rows = [row for result in results for row in result.rows()]
        query.data = rows_to_frame(rows)

        succeeded = sum(1 for r in results if r.is_success)
        logger.info(f"Retrieved {len(rows)} offers from {succeeded}/{total} legs")
        return results

    async def fetch(self, query: TripQuery) -> List[LegResult]:
        """Open a session, scrape the whole query, close the session."""
        async with open_session(self.session_factory) as session:
            return await self.fetch_query(query, session)


def _name_queries(
    queries: Union[TripQuery, Iterable[TripQuery], Mapping[str, TripQuery]],
) -> Dict[str, TripQuery]:
    if isinstance(queries, TripQuery):
        queries = [queries]
    if isinstance(queries, Mapping):
        return dict(queries)

    named: Dict[str, TripQuery] = {}
    for i, query in enumerate(queries, start=1):
        name = query.legs[0].origin if query.legs else f"query_{i}"
        if name in named:
            name = f"{name}_{i}"
        named[name] = query
    return named


async def fetch_flights(
    queries: Union[TripQuery, Iterable[TripQuery], Mapping[str, TripQuery]],
    settings: Optional[Settings] = None,
    session_factory: Optional[SessionFactory] = None,
    share_session: bool = True,
    max_concurrency: int = 1,
) -> FlightResults:
    """
    Fetch one or more queries and merge their tables.

    With share_session every query runs back-to-back on one browser session.
    Otherwise each query gets its own session and up to max_concurrency
    queries run at the same time.

    Raises:
        SessionInitFailure: a browser session could not be started
    """
    named = _name_queries(queries)
    scraper = GoogleFlightsScraper(settings=settings, session_factory=session_factory)
    leg_results: Dict[str, List[LegResult]] = {}

    if len(named) > 1:
        logger.info(f"Fetching {len(named)} queries")

    if share_session:
        async with open_session(scraper.session_factory) as session:
            for i, (name, query) in enumerate(named.items(), start=1):
                leg_results[name] = await scraper.fetch_query(query, session)
                if i < len(named) and scraper.settings.leg_pause_seconds:
                    await asyncio.sleep(scraper.settings.leg_pause_seconds)
    else:
        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def run_one(name: str, query: TripQuery) -> None:
            async with semaphore:
                leg_results[name] = await scraper.fetch(query)

        tasks = [asyncio.create_task(run_one(name, query)) for name, query in named.items()]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # One query failed fatally: stop the others and wait for their sessions to close
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    return merge_results(named, leg_results=leg_results)


def run_fetch(
    queries: Union[TripQuery, Iterable[TripQuery], Mapping[str, TripQuery]],
    **kwargs,
) -> FlightResults:
    """Synchronous wrapper around fetch_flights() for scripts and notebooks."""
    return asyncio.run(fetch_flights(queries, **kwargs))
