"""Calendar scan — calendars and upcoming events that complicate a tenant move."""

from .scanner import CalendarScanner, parse_event_time

__all__ = ["CalendarScanner", "parse_event_time"]
