"""
Calendar scanner — per-user migration exposure of calendars and upcoming
events: recurring series, external attendees, meetings organised in other
tenants, rooms and public events.

A calendar whose events cannot be listed keeps its error and the scan moves
on; failures before any calendar is reached go on the report.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from ..api.resilience import ExternalAPIError
from ..config import EngineConfig
from ..models import CalendarInfo, EventFinding, UserCalendarReport, email_domain
from ..processing.batching import run_windowed
from ..processing.events import Observer, Stage, emit
from ..scoring.engine import calendar_risk, event_complexity

logger = logging.getLogger("drive_audit_engine.calendars")

# Google-hosted addresses that are neither people nor partner tenants
ROOM_DOMAIN = "resource.calendar.google.com"
GOOGLE_CALENDAR_DOMAIN = "calendar.google.com"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_event_time(value: Optional[str]) -> Optional[datetime]:
    """RFC 3339 dateTime or all-day date, as an aware UTC datetime."""
    if not value:
        return None
    try:
        if "T" not in value:
            day = date.fromisoformat(value)
            return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable event time {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_google_hosted(domain: str) -> bool:
    return domain == GOOGLE_CALENDAR_DOMAIN or domain.endswith("." + GOOGLE_CALENDAR_DOMAIN)


class CalendarScanner:
    def __init__(
        self,
        clients,
        config: EngineConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.clients = clients
        self.config = config
        self._sleep = sleep
        self._clock = clock

    def primary_domain_for(self, user_email: str) -> str:
        return (self.config.primary_domain or email_domain(user_email)).lower()

    # ─── Entry points ──────────────────────────────────────────────────────

    async def scan_users(
        self, user_emails: Sequence[str], observer: Optional[Observer] = None
    ) -> list[UserCalendarReport]:
        def failed(user_email: str, error: BaseException) -> UserCalendarReport:
            return UserCalendarReport(user_email=user_email, error=f"{type(error).__name__}: {error}")

        return await run_windowed(
            list(user_emails),
            lambda user_email: self.scan_user(user_email, observer),
            failed,
            size=self.config.processing.user_batch_size,
            pacing=self.config.processing.pacing_delay,
            sleep=self._sleep,
        )

    async def scan_user(self, user_email: str, observer: Optional[Observer] = None) -> UserCalendarReport:
        report = UserCalendarReport(user_email=user_email)
        emit(observer, Stage.CALENDAR_ANALYSIS_START, user_email)

        try:
            client = await self.clients.get(user_email)
            calendars = [c async for c in client.list_calendars()]
        except Exception as e:
            logger.error(f"Calendar scan for {user_email} could not start: {type(e).__name__}: {e}")
            report.error = f"{type(e).__name__}: {e}"
            emit(observer, Stage.ERROR, user_email, at="calendar_scan", error=str(e))
            return report

        domain = self.primary_domain_for(user_email)
        now = self._clock()
        horizon = now + timedelta(days=self.config.calendars.lookahead_days)

        for data in calendars:
            info = self.analyse_calendar(data, domain)
            report.calendars.append(info)
            try:
                async for event in client.list_events(info.calendar_id, now, horizon):
                    finding = self.analyse_event(event, info.calendar_id, domain, now)
                    if finding.notable:
                        report.events.append(finding)
            except (ExternalAPIError, httpx.HTTPError) as e:
                logger.warning(f"Events of calendar {info.calendar_id} unavailable for {user_email}: {e}")
                info.error = str(e)

        logger.info(
            f"{user_email}: {len(report.calendars)} calendars, "
            f"{len(report.future_events)} future events, "
            f"{len(report.external_meetings)} with external attendees"
        )
        emit(observer, Stage.CALENDAR_ANALYSIS_COMPLETE, user_email, summary=report.summary())
        return report

    # ─── Per-item analysis ─────────────────────────────────────────────────

    @staticmethod
    def analyse_calendar(data: dict, domain: str) -> CalendarInfo:
        calendar_id = data.get("id", "")
        access_role = data.get("accessRole", "")
        primary = bool(data.get("primary"))
        calendar_domain = email_domain(calendar_id)
        external = bool(calendar_domain) and calendar_domain != domain and not is_google_hosted(calendar_domain)
        return CalendarInfo(
            calendar_id=calendar_id,
            name=data.get("summary", ""),
            primary=primary,
            access_role=access_role,
            shared=access_role != "owner",
            external=external,
            risk_level=calendar_risk(access_role, primary),
        )

    @staticmethod
    def analyse_event(data: dict, calendar_id: str, domain: str, now: datetime) -> EventFinding:
        start = data.get("start") or {}
        end = data.get("end") or {}
        start_time = start.get("dateTime") or start.get("date")
        recurrence = data.get("recurrence") or []
        organizer = (data.get("organizer") or {}).get("email")
        started = parse_event_time(start_time)

        finding = EventFinding(
            event_id=data.get("id", ""),
            calendar_id=calendar_id,
            summary=data.get("summary") or "Untitled Event",
            start=start_time,
            end=end.get("dateTime") or end.get("date"),
            future=started is not None and started > now,
            recurring=bool(recurrence),
            recurrence_rule=recurrence[0] if recurrence else None,
            attendee_count=len(data.get("attendees") or []),
            has_meet=bool(data.get("hangoutLink")),
            visibility=data.get("visibility") or "default",
            organizer=organizer,
            creator=(data.get("creator") or {}).get("email"),
        )

        organizer_domain = email_domain(organizer)
        finding.cross_tenant = (
            bool(organizer_domain) and organizer_domain != domain and not is_google_hosted(organizer_domain)
        )

        for attendee in data.get("attendees") or []:
            address = attendee.get("email")
            if not address:
                continue
            attendee_domain = email_domain(address)
            if attendee.get("resource") or attendee_domain == ROOM_DOMAIN:
                finding.meeting_rooms.append(address)
            elif attendee_domain and attendee_domain != domain and not is_google_hosted(attendee_domain):
                if attendee_domain not in finding.external_domains:
                    finding.external_domains.append(attendee_domain)

        finding.complexity = event_complexity(finding)
        return finding
