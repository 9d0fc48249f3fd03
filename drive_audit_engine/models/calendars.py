"""
Calendar models — calendars on a user's list, notable events and the
per-user calendar report.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .results import RiskTier


@dataclass
class CalendarInfo:
    calendar_id: str
    name: str = ""
    primary: bool = False
    access_role: str = ""
    shared: bool = False           # listed with a role other than owner
    external: bool = False         # calendar address belongs to another domain
    risk_level: RiskTier = RiskTier.LOW
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "calendar_id": self.calendar_id,
            "name": self.name,
            "primary": self.primary,
            "access_role": self.access_role,
            "shared": self.shared,
            "external": self.external,
            "risk_level": self.risk_level.value,
            "error": self.error,
        }


@dataclass
class EventFinding:
    """An event that needs attention when the tenant moves."""
    event_id: str
    calendar_id: str
    summary: str = "Untitled Event"
    start: Optional[str] = None
    end: Optional[str] = None
    future: bool = False
    recurring: bool = False
    recurrence_rule: Optional[str] = None
    external_domains: list[str] = field(default_factory=list)
    cross_tenant: bool = False     # organised outside the domain
    attendee_count: int = 0
    has_meet: bool = False
    meeting_rooms: list[str] = field(default_factory=list)
    visibility: str = "default"
    organizer: Optional[str] = None
    creator: Optional[str] = None
    complexity: RiskTier = RiskTier.LOW

    @property
    def has_external_attendees(self) -> bool:
        return bool(self.external_domains)

    @property
    def notable(self) -> bool:
        return self.future or self.recurring or self.has_external_attendees or self.cross_tenant

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "calendar_id": self.calendar_id,
            "summary": self.summary,
            "start": self.start,
            "end": self.end,
            "future": self.future,
            "recurring": self.recurring,
            "recurrence_rule": self.recurrence_rule,
            "external_domains": list(self.external_domains),
            "cross_tenant": self.cross_tenant,
            "attendee_count": self.attendee_count,
            "has_meet": self.has_meet,
            "meeting_rooms": list(self.meeting_rooms),
            "visibility": self.visibility,
            "organizer": self.organizer,
            "creator": self.creator,
            "complexity": self.complexity.value,
        }


@dataclass
class UserCalendarReport:
    user_email: str
    calendars: list[CalendarInfo] = field(default_factory=list)
    events: list[EventFinding] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def future_events(self) -> list[EventFinding]:
        return [e for e in self.events if e.future]

    @property
    def recurring_events(self) -> list[EventFinding]:
        return [e for e in self.events if e.recurring]

    @property
    def external_meetings(self) -> list[EventFinding]:
        return [e for e in self.events if e.has_external_attendees]

    @property
    def cross_tenant_meetings(self) -> list[EventFinding]:
        return [e for e in self.events if e.cross_tenant]

    @property
    def external_domains(self) -> set[str]:
        return {d for e in self.events for d in e.external_domains}

    def complexity_distribution(self) -> dict[str, int]:
        """Future events per complexity tier."""
        counts = {tier.value: 0 for tier in RiskTier}
        for event in self.future_events:
            counts[event.complexity.value] += 1
        return counts

    def summary(self) -> dict:
        return {
            "total_calendars": len(self.calendars),
            "total_future_events": len(self.future_events),
            "total_recurring_events": len(self.recurring_events),
            "total_external_meetings": len(self.external_meetings),
            "total_cross_tenant_meetings": len(self.cross_tenant_meetings),
            "total_public_events": sum(1 for e in self.future_events if e.visibility == "public"),
            "complexity_distribution": self.complexity_distribution(),
        }

    def to_dict(self) -> dict:
        return {
            "user_email": self.user_email,
            "summary": self.summary(),
            "calendars": [c.to_dict() for c in self.calendars],
            "events": [e.to_dict() for e in self.events],
            "external_domains": sorted(self.external_domains),
            "error": self.error,
        }
