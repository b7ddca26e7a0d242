from farescope.schemas.flight import FlightRow, RESULT_COLUMNS

__all__ = ["FlightRow", "RESULT_COLUMNS"]
