"""
Tests for the Google Flights scraper.

Every test drives GoogleFlightsScraper through FakeSession, so no browser is
launched. Configured pauses are zero; only the batch tests give navigation a
short delay.
"""
import asyncio
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeSession, offer_lines, results_page, short_page
from farescope.errors import SessionInitFailure
from farescope.scrapers.google_flights import GoogleFlightsScraper, fetch_flights
from farescope.services.trip_query import define_query


def three_offer_page(price: str = "$450") -> str:
    return results_page([
        offer_lines(price=price),
        offer_lines(departure="11:30 AM", arrival="7:45 PM", airline="Emirates", price="$612"),
        offer_lines(departure="6:00 PM", arrival="2:00 PM+1", airline="Lufthansa", price="$700"),
    ])


class CountingSession(FakeSession):
    """FakeSession that tracks how many sessions are open at once in a shared gauge."""

    def __init__(self, pages, gauge):
        super().__init__(pages, delay=0.01)
        self.gauge = gauge

    async def start(self) -> None:
        await super().start()
        self.gauge["open"] += 1
        self.gauge["peak"] = max(self.gauge["peak"], self.gauge["open"])

    async def close(self) -> None:
        await super().close()
        self.gauge["open"] -= 1


def chain_query():
    return define_query(
        "JFK", "AMS", "2025-11-10",
        "AMS", "CDG", "2025-11-17",
        "CDG", "IST", "2025-11-25",
    )


def serve_all(query, page=None):
    return {url: page or three_offer_page() for url in query.urls}


class TestFetchQuery:
    """Tests for leg-by-leg fetching on one session."""

    @pytest.mark.asyncio
    async def test_all_legs_succeed(self, fast_settings):
        query = chain_query()
        session = FakeSession(serve_all(query))
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        results = await scraper.fetch(query)

        assert [r.status for r in results] == ["success"] * 3
        assert session.navigated == list(query.urls)
        assert session.close_calls == 1
        assert len(query.data) == 6

    @pytest.mark.asyncio
    async def test_rows_tagged_with_leg_dates(self, fast_settings):
        query = chain_query()
        session = FakeSession(serve_all(query))
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        await scraper.fetch(query)

        assert list(query.data["departure_date"].unique()) == ["2025-11-10", "2025-11-17", "2025-11-25"]
        assert query.data["origin"].iloc[0] == "JFK"

    @pytest.mark.asyncio
    async def test_timeout_on_one_leg_keeps_the_others(self, fast_settings):
        query = chain_query()
        pages = serve_all(query)
        pages[query.urls[1]] = short_page()
        session = FakeSession(pages)
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        results = await scraper.fetch_query(query, session)

        assert [r.status for r in results] == ["success", "timeout", "success"]
        assert "5 lines after 3 attempts" in results[1].error_message
        assert set(query.data["departure_date"]) == {"2025-11-10", "2025-11-25"}
        assert session.close_calls == 0
        assert len(session.navigated) == 3

    @pytest.mark.asyncio
    async def test_polls_until_content_ready(self, fast_settings):
        query = define_query("JFK", "IST", "2025-12-20")
        session = FakeSession({query.urls[0]: [short_page(), short_page(), three_offer_page()]})
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        results = await scraper.fetch(query)

        assert results[0].status == "success"
        assert session.text_calls == 3

    @pytest.mark.asyncio
    async def test_page_without_flights(self, fast_settings):
        query = define_query("JFK", "IST", "2025-12-20")
        page = "\n".join(["No flights match your search"] * 150)
        session = FakeSession({query.urls[0]: page})
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        results = await scraper.fetch(query)

        assert results[0].status == "no_results"
        assert query.data.empty

    @pytest.mark.asyncio
    async def test_single_offer_page_is_no_results(self, fast_settings):
        query = define_query("JFK", "IST", "2025-12-20")
        session = FakeSession({query.urls[0]: results_page([offer_lines()])})
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        results = await scraper.fetch(query)

        assert results[0].status == "no_results"

    @pytest.mark.asyncio
    async def test_blocked_page(self, fast_settings):
        query = define_query("JFK", "IST", "2025-12-20")
        page = "Our systems have detected unusual traffic from your computer network."
        session = FakeSession({query.urls[0]: page})
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        results = await scraper.fetch(query)

        assert results[0].status == "blocked"
        assert session.text_calls == 1

    @pytest.mark.asyncio
    async def test_navigation_error(self, fast_settings):
        query = define_query("JFK", "IST", "2025-12-20", "2025-12-25")
        session = FakeSession(serve_all(query), failing_urls=[query.urls[0]])
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        results = await scraper.fetch(query)

        assert [r.status for r in results] == ["navigation_error", "success"]
        assert "ERR_CONNECTION_RESET" in results[0].error_message

    @pytest.mark.asyncio
    async def test_parser_crash_is_parse_error(self, fast_settings):
        query = define_query("JFK", "IST", "2025-12-20")
        session = FakeSession(serve_all(query))
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        with patch(
            "farescope.scrapers.google_flights.parse_page",
            side_effect=RuntimeError("unexpected layout"),
        ):
            results = await scraper.fetch(query)

        assert results[0].status == "parse_error"
        assert "unexpected layout" in results[0].error_message

    @pytest.mark.asyncio
    async def test_refetch_replaces_data(self, fast_settings):
        query = define_query("JFK", "IST", "2025-12-20")
        session = FakeSession(serve_all(query))
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        await scraper.fetch(query)
        await scraper.fetch(query)

        assert len(query.data) == 2
        assert str(query).startswith("Flight Query( {2} RESULTS FOR:")

    @pytest.mark.asyncio
    async def test_pause_between_legs_only(self, fast_settings):
        fast_settings.leg_pause_seconds = 1.5
        query = chain_query()
        session = FakeSession(serve_all(query))
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        with patch("farescope.scrapers.google_flights.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await scraper.fetch_query(query, session)

        pauses = [c.args[0] for c in sleep.await_args_list if c.args[0] == 1.5]
        assert len(pauses) == 2


class TestSessionLifetime:
    """Tests for session acquisition and release."""

    @pytest.mark.asyncio
    async def test_init_failure_aborts_before_navigation(self, fast_settings):
        query = define_query("JFK", "IST", "2025-12-20")
        session = FakeSession(serve_all(query), start_error=RuntimeError("chromium missing"))
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        with pytest.raises(SessionInitFailure):
            await scraper.fetch(query)

        assert session.navigated == []
        assert session.close_calls == 1
        assert query.data.empty

    @pytest.mark.asyncio
    async def test_factory_failure(self, fast_settings):
        def broken_factory():
            raise OSError("no display")

        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=broken_factory)

        with pytest.raises(SessionInitFailure):
            await scraper.fetch(define_query("JFK", "IST", "2025-12-20"))

    @pytest.mark.asyncio
    async def test_session_closed_when_fetch_raises(self, fast_settings):
        query = define_query("JFK", "IST", "2025-12-20")
        session = FakeSession(serve_all(query))
        scraper = GoogleFlightsScraper(settings=fast_settings, session_factory=lambda: session)

        with patch.object(scraper, "scrape_leg", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                await scraper.fetch(query)

        assert session.close_calls == 1


class TestFetchFlights:
    """Tests for batch fetching across several queries."""

    @pytest.mark.asyncio
    async def test_shared_session(self, fast_settings):
        queries = [
            define_query("BOM", "JFK", "2025-12-18"),
            define_query("DEL", "JFK", "2025-12-18"),
        ]
        pages = {}
        for query in queries:
            pages.update(serve_all(query))
        sessions = []

        def factory():
            sessions.append(FakeSession(pages))
            return sessions[-1]

        results = await fetch_flights(queries, settings=fast_settings, session_factory=factory)

        assert len(sessions) == 1
        assert sessions[0].close_calls == 1
        assert list(results.queries) == ["BOM", "DEL"]
        assert len(results.data) == 4
        assert set(results.data["departure_date"]) == {"2025-12-18"}
        assert [r.status for r in results.leg_results["DEL"]] == ["success"]

    @pytest.mark.asyncio
    async def test_session_per_query(self, fast_settings):
        queries = {
            "BOM": define_query("BOM", "JFK", "2025-12-18"),
            "DEL": define_query("DEL", "JFK", "2025-12-19"),
        }
        pages = {}
        for query in queries.values():
            pages.update(serve_all(query))
        sessions = []

        def factory():
            sessions.append(FakeSession(pages))
            return sessions[-1]

        results = await fetch_flights(
            queries,
            settings=fast_settings,
            session_factory=factory,
            share_session=False,
            max_concurrency=2,
        )

        assert len(sessions) == 2
        assert all(s.close_calls == 1 for s in sessions)
        assert all(len(s.navigated) == 1 for s in sessions)
        assert len(results.data) == 4
        assert "Total flights: 4" in str(results)

    @pytest.mark.asyncio
    async def test_start_failure_stops_other_queries(self, fast_settings):
        slow_query = define_query("BOM", "JFK", "2025-12-18")
        failing_query = define_query("DEL", "JFK", "2025-12-18")
        slow = FakeSession(serve_all(slow_query), delay=0.2)
        failing = FakeSession(serve_all(failing_query), start_error=RuntimeError("chromium missing"))
        sessions = iter([slow, failing])

        with pytest.raises(SessionInitFailure):
            await fetch_flights(
                [slow_query, failing_query],
                settings=fast_settings,
                session_factory=lambda: next(sessions),
                share_session=False,
                max_concurrency=2,
            )

        assert slow.close_calls == 1
        assert failing.close_calls == 1
        assert slow.navigated == []

        await asyncio.sleep(0.3)
        assert slow.navigated == []
        assert slow_query.data.empty

    @pytest.mark.asyncio
    async def test_max_concurrency_limits_open_sessions(self, fast_settings):
        queries = [
            define_query(origin, "JFK", "2025-12-18")
            for origin in ("BOM", "DEL", "VNS", "PAT")
        ]
        pages = {}
        for query in queries:
            pages.update(serve_all(query))
        gauge = {"open": 0, "peak": 0}

        results = await fetch_flights(
            queries,
            settings=fast_settings,
            session_factory=lambda: CountingSession(pages, gauge),
            share_session=False,
            max_concurrency=2,
        )

        assert gauge["peak"] == 2
        assert gauge["open"] == 0
        assert len(results.data) == 8

    @pytest.mark.asyncio
    async def test_duplicate_origins_get_distinct_names(self, fast_settings):
        queries = [
            define_query("BOM", "JFK", "2025-12-18"),
            define_query("BOM", "JFK", "2025-12-19"),
        ]
        pages = {}
        for query in queries:
            pages.update(serve_all(query))

        results = await fetch_flights(
            queries, settings=fast_settings, session_factory=lambda: FakeSession(pages)
        )

        assert list(results.queries) == ["BOM", "BOM_2"]

    @pytest.mark.asyncio
    async def test_single_query(self, fast_settings):
        query = define_query("JFK", "IST", date(2025, 12, 20))
        session = FakeSession(serve_all(query))

        results = await fetch_flights(query, settings=fast_settings, session_factory=lambda: session)

        assert list(results.queries) == ["JFK"]
        assert results.queries["JFK"] is query
