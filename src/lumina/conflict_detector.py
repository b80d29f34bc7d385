"""
Schedule conflict detection.

Checks proposed schedule entries against the user's existing events for
shared zone, shared day and overlapping time, and suggests a resolution for
each overlap found.
"""
import re
from datetime import date
from typing import List, Optional, Sequence, Set, Tuple

from lumina.models import ConflictResult, Resolution, ScheduleEntry, ScheduleEvent

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def parse_time_to_minutes(value: Optional[str]) -> Optional[int]:
    """Minutes since midnight for "HH:mm", else None (including "manual")."""
    if not value or value == "manual":
        return None
    match = _TIME_RE.match(value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    return f"{(minutes // 60) % 24:02d}:{minutes % 60:02d}"


def _split_range(start: int, end: int) -> List[Tuple[int, int]]:
    """A range whose end is not after its start wraps past midnight."""
    if end > start:
        return [(start, end)]
    return [(start, MINUTES_PER_DAY), (0, end)]


def time_ranges_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    for a_start, a_end in _split_range(start_a, end_a):
        for b_start, b_end in _split_range(start_b, end_b):
            if a_start < b_end and b_start < a_end:
                return True
    return False


def _weekday_of(label: str) -> Optional[str]:
    if not _ISO_DATE_RE.match(label):
        return None
    try:
        return _WEEKDAYS[date.fromisoformat(label).weekday()]
    except ValueError:
        return None


def _normalize_days(days: Sequence[str]) -> List[str]:
    seen: List[str] = []
    for day in days:
        normalized = day.strip().lower()
        if normalized not in seen:
            seen.append(normalized)
    return seen


def shared_days(proposed_days: Sequence[str], existing: ScheduleEvent) -> List[str]:
    """
    Days on which both run. An ISO date also matches a recurring existing
    event scheduled on that date's weekday.
    """
    existing_days: Set[str] = set(_normalize_days(existing.days))
    shared = []
    for day in _normalize_days(proposed_days):
        if day in existing_days:
            shared.append(day)
        elif existing.recurring and _weekday_of(day) in existing_days:
            shared.append(day)
    return shared


def zones_overlap(zone_a: str, zone_b: str) -> bool:
    a, b = zone_a.lower(), zone_b.lower()
    return a == "all" or b == "all" or a == b


def suggest_resolution(proposed: ScheduleEntry, existing: ScheduleEvent) -> Resolution:
    # A one-off entry only overrides a recurring event on its own dates
    if not proposed.recurring and existing.recurring:
        return Resolution.KEEP_BOTH
    if proposed.priority > existing.priority:
        return Resolution.REPLACE
    if existing.priority > proposed.priority:
        return Resolution.ADJUST_TIME
    return Resolution.REPLACE


def _dedupe(conflicts: List[ConflictResult]) -> List[ConflictResult]:
    seen = set()
    unique = []
    for conflict in conflicts:
        key = (conflict.existing_event_id, conflict.overlap_description)
        if key in seen:
            continue
        seen.add(key)
        unique.append(conflict)
    return unique


def detect_conflicts(
    proposed: Sequence[ScheduleEntry],
    existing: Sequence[ScheduleEvent]
) -> List[ConflictResult]:
    """
    Detect conflicts between proposed entries and the existing schedule.

    Returns:
        De-duplicated conflicts in proposal order
    """
    conflicts: List[ConflictResult] = []

    for entry in proposed:
        entry_start = parse_time_to_minutes(entry.start_time)
        entry_end = parse_time_to_minutes(entry.end_time)

        for event in existing:
            if not zones_overlap(entry.zone, event.zone):
                continue

            days = shared_days(entry.days, event)
            if not days:
                continue

            event_start = parse_time_to_minutes(event.start_time)
            event_end = parse_time_to_minutes(event.end_time)

            if None in (entry_start, entry_end, event_start, event_end):
                day_word = "day" if len(days) == 1 else "days"
                conflicts.append(ConflictResult(
                    existing_event_id=event.id,
                    existing_event_name=event.name,
                    overlap_description=(
                        f'"{entry.name}" and "{event.name}" are on the same {day_word} '
                        f'({", ".join(days)}) for zone "{event.zone}" but times could not be fully compared.'
                    ),
                    suggested_resolution=Resolution.KEEP_BOTH,
                ))
                continue

            if not time_ranges_overlap(entry_start, entry_end, event_start, event_end):
                continue

            days_label = ", ".join(days) if len(days) <= 3 else f"{len(days)} days"
            conflicts.append(ConflictResult(
                existing_event_id=event.id,
                existing_event_name=event.name,
                overlap_description=(
                    f'"{entry.name}" ({format_minutes(entry_start)}-{format_minutes(entry_end)}) '
                    f'overlaps with "{event.name}" ({format_minutes(event_start)}-{format_minutes(event_end)}) '
                    f'on {days_label} for zone "{event.zone}".'
                ),
                suggested_resolution=suggest_resolution(entry, event),
            ))

    return _dedupe(conflicts)
