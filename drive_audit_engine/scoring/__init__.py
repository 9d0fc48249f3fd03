"""Scoring package — risk tiers for files, drives, users and calendars."""

from .engine import (
    calendar_recommendations,
    calendar_risk,
    event_complexity,
    file_risk,
    file_risk_points,
    location_complexity,
    migration_complexity,
    migration_recommendations,
    my_drive_risk,
    overall_drive_risk,
    shared_drive_risk,
    sharing_risk,
    tier_for,
)

__all__ = [
    "calendar_recommendations",
    "calendar_risk",
    "event_complexity",
    "file_risk",
    "file_risk_points",
    "location_complexity",
    "migration_complexity",
    "migration_recommendations",
    "my_drive_risk",
    "overall_drive_risk",
    "shared_drive_risk",
    "sharing_risk",
    "tier_for",
]
