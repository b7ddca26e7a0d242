"""Exceptions raised while building queries and scraping flights."""

from typing import Optional


class FarescopeError(Exception):
    """Base error for the package."""


class QueryError(FarescopeError, ValueError):
    """Raised when a trip query cannot be built from its inputs."""


class InvalidQueryShape(QueryError):
    """The token list does not describe any supported trip shape."""


class InvalidArgumentFormat(QueryError):
    """A location code or date token is malformed."""

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.position = position


class DateOrderingViolation(QueryError):
    """Leg dates are not strictly increasing."""


class ScrapeError(FarescopeError):
    """Base error for browser and page failures."""


class SessionInitFailure(ScrapeError):
    """The browser session could not be started. Fatal for the whole query."""


class NavigationFailure(ScrapeError):
    """The browser failed to load a leg URL."""


class InsufficientContentTimeout(ScrapeError):
    """The page never rendered enough text before polling gave up."""


class NoFlightDataFound(ScrapeError):
    """The rendered page carries no flight time markers at all."""
