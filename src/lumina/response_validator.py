"""
Normalization of Claude's JSON replies into typed responses.

The top-level discriminator (``intent`` for commands, ``responseType`` for
schedules) is the only field whose absence is fatal; everything else is
repaired with a safe default and clamped into its device range.
"""
from typing import Any, Dict, List, Optional, Sequence

import structlog

from lumina.conflict_detector import detect_conflicts
from lumina.models import (
    Color,
    CommandResponse,
    Complexity,
    ConflictResult,
    Intent,
    LightingCommand,
    Resolution,
    ResponseType,
    ScheduleCommandResponse,
    ScheduleEntry,
    ScheduleEvent,
    TriggerType,
    VarietyConfig,
)
from lumina.validators import clamp, clamp_byte, is_number, round_half_up
from lumina.variety_generator import colors_equal, generate_variety_plan

logger = structlog.get_logger()

PREVIEW_COLOR_COUNT = 9
MAX_COMMAND_COLORS = 3
MAX_CLARIFICATION_OPTIONS = 3
DEFAULT_CONFIDENCE = 0.8
MULTI_DAY_THRESHOLD = 4
VARIETY_MIN_ENTRIES = 3

DEFAULT_COMMAND_TEXT = "Here you go!"
DEFAULT_SCHEDULE_TEXT = "Here's what I've put together for your schedule."


class ResponseFormatError(Exception):
    """Claude's reply cannot be interpreted."""


# =============================================================================
# Field extractors
# =============================================================================

def _string_or(value: Any, default: Optional[str]) -> Optional[str]:
    return value if isinstance(value, str) else default


def _byte_or(value: Any, default: Optional[int]) -> Optional[int]:
    return clamp_byte(value) if is_number(value) else default


def _int_or(value: Any, default: int) -> int:
    return round_half_up(value) if is_number(value) else default


def _clamped_colors(value: Any, limit: int) -> List[Color]:
    """
    RGB triples from every entry holding at least three numbers, channels
    clamped to 0-255. A white channel, if any, is dropped.
    """
    if not isinstance(value, list):
        return []
    return [
        [clamp_byte(v) for v in c[:3]]
        for c in value
        if isinstance(c, list) and len(c) >= 3 and all(is_number(v) for v in c)
    ][:limit]


def _colors(value: Any, default: Color) -> List[Color]:
    """Up to three colors; the default only when none is numeric."""
    return _clamped_colors(value, MAX_COMMAND_COLORS) or [list(default)]


def normalize_preview_colors(value: Any) -> Optional[List[Color]]:
    """
    Exactly nine RGB triples padded with the last color, or None when no
    usable color was supplied.
    """
    colors = _clamped_colors(value, PREVIEW_COLOR_COUNT)
    if not colors:
        return None
    while len(colors) < PREVIEW_COLOR_COUNT:
        colors.append(list(colors[-1]))
    return colors


def normalize_clarification_options(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    options = [o for o in value if isinstance(o, str) and o][:MAX_CLARIFICATION_OPTIONS]
    return options or None


def normalize_confidence(value: Any) -> float:
    if not is_number(value):
        return DEFAULT_CONFIDENCE
    return float(clamp(value, 0.0, 1.0))


# =============================================================================
# Lighting commands
# =============================================================================

def normalize_lighting_command(raw: Any) -> LightingCommand:
    """Per-entry defaults; speed/intensity stay None when absent."""
    if not isinstance(raw, dict):
        raw = {}
    return LightingCommand(
        zone=_string_or(raw.get("zone"), "all"),
        effect=max(0, _int_or(raw.get("effect"), 0)),
        colors=_colors(raw.get("colors"), [255, 255, 255]),
        brightness=_byte_or(raw.get("brightness"), 200),
        speed=_byte_or(raw.get("speed"), None),
        intensity=_byte_or(raw.get("intensity"), None),
    )


def validate_command_response(json: Optional[Dict[str, Any]]) -> CommandResponse:
    """
    Normalize a single-command reply.

    Raises:
        ResponseFormatError: when the reply is not JSON or the intent is unknown
    """
    if json is None:
        raise ResponseFormatError("Claude did not return valid JSON")

    intent = json.get("intent")
    try:
        intent = Intent(intent)
    except ValueError:
        raise ResponseFormatError(f'Invalid intent: "{intent}"')

    commands = None
    if isinstance(json.get("commands"), list):
        commands = [normalize_lighting_command(c) for c in json["commands"]]

    return CommandResponse(
        intent=intent,
        response_text=_string_or(json.get("responseText"), DEFAULT_COMMAND_TEXT),
        commands=commands,
        preview_colors=normalize_preview_colors(json.get("previewColors")),
        clarification_options=normalize_clarification_options(json.get("clarificationOptions")),
        navigation_target=_string_or(json.get("navigationTarget"), None),
        save_as_favorite=_string_or(json.get("saveAsFavorite"), None),
        confidence=normalize_confidence(json.get("confidence")),
    )


def normalize_favorite_payload(raw: Any) -> Dict[str, Any]:
    """A stored favorite: ``{effectId, colors, brightness, speed?, intensity?}``."""
    if not isinstance(raw, dict):
        raw = {}
    payload: Dict[str, Any] = {
        "effectId": max(0, _int_or(raw.get("effectId"), 0)),
        "colors": _colors(raw.get("colors"), [255, 255, 255]),
        "brightness": _byte_or(raw.get("brightness"), 200),
    }
    for key in ("speed", "intensity"):
        value = _byte_or(raw.get(key), None)
        if value is not None:
            payload[key] = value
    return payload


# =============================================================================
# Schedules
# =============================================================================

def normalize_schedule_entry(raw: Any) -> ScheduleEntry:
    if not isinstance(raw, dict):
        raw = {}
    days = raw.get("days")
    recurring = raw.get("recurring")
    return ScheduleEntry(
        name=_string_or(raw.get("name"), "Scheduled Lighting"),
        zone=_string_or(raw.get("zone"), "all"),
        start_time=_string_or(raw.get("startTime"), None),
        end_time=_string_or(raw.get("endTime"), None),
        days=[d for d in days if isinstance(d, str)] if isinstance(days, list) else [],
        effect_id=max(0, _int_or(raw.get("effectId"), 0)),
        colors=_colors(raw.get("colors"), [255, 180, 100]),
        brightness=_byte_or(raw.get("brightness"), 200),
        speed=_byte_or(raw.get("speed"), 128),
        intensity=_byte_or(raw.get("intensity"), 128),
        recurring=recurring if isinstance(recurring, bool) else True,
        trigger_type=TriggerType.parse(raw.get("triggerType")),
        trigger_offset=_int_or(raw.get("triggerOffset"), 0),
        priority=_int_or(raw.get("priority"), 50),
    )


def _model_conflicts(value: Any) -> List[ConflictResult]:
    if not isinstance(value, list):
        return []
    conflicts = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        if not isinstance(raw.get("existingEventId"), str) or not isinstance(raw.get("overlapDescription"), str):
            continue
        try:
            resolution = Resolution(raw.get("suggestedResolution"))
        except ValueError:
            resolution = Resolution.REPLACE
        conflicts.append(ConflictResult(
            existing_event_id=raw["existingEventId"],
            existing_event_name=_string_or(raw.get("existingEventName"), "Unknown"),
            overlap_description=raw["overlapDescription"],
            suggested_resolution=resolution,
        ))
    return conflicts


def validate_schedule_response(
    json: Optional[Dict[str, Any]],
    existing_schedule: Sequence[ScheduleEvent]
) -> ScheduleCommandResponse:
    """
    Normalize a scheduling reply and reconcile it with the existing schedule.

    Raises:
        ResponseFormatError: when the reply is not JSON or responseType is unknown
    """
    if json is None:
        raise ResponseFormatError("Claude did not return valid JSON")

    response_type = json.get("responseType")
    try:
        response_type = ResponseType(response_type)
    except ValueError:
        raise ResponseFormatError(f'Invalid responseType: "{response_type}"')

    try:
        complexity = Complexity(json.get("complexity"))
    except ValueError:
        complexity = Complexity.MODERATE

    entries = None
    if isinstance(json.get("scheduleEntries"), list):
        entries = [normalize_schedule_entry(e) for e in json["scheduleEntries"]]

    conflicts: Optional[List[ConflictResult]] = None
    if entries:
        detected = detect_conflicts(entries, existing_schedule)
        if detected:
            conflicts = detected
            if response_type not in (ResponseType.CONFLICT_DETECTED, ResponseType.NEEDS_CLARIFICATION):
                logger.info("schedule_conflicts_detected", count=len(detected), model_response_type=response_type.value)
                response_type = ResponseType.CONFLICT_DETECTED

    reported = _model_conflicts(json.get("conflicts"))
    if reported:
        if conflicts is None:
            conflicts = []
        known_ids = {c.existing_event_id for c in conflicts}
        for conflict in reported:
            if conflict.existing_event_id not in known_ids:
                conflicts.append(conflict)
                known_ids.add(conflict.existing_event_id)

    if entries and len(entries) >= MULTI_DAY_THRESHOLD and response_type == ResponseType.READY_TO_EXECUTE:
        response_type = ResponseType.CONFIRM_MULTI_DAY_PLAN

    return ScheduleCommandResponse(
        response_type=response_type,
        response_text=_string_or(json.get("responseText"), DEFAULT_SCHEDULE_TEXT),
        schedule_entries=entries,
        conflicts=conflicts,
        clarification_options=normalize_clarification_options(json.get("clarificationOptions")),
        preview_colors=normalize_preview_colors(json.get("previewColors")),
        complexity=complexity,
        confidence=normalize_confidence(json.get("confidence")),
    )


def apply_favorites(
    entries: List[ScheduleEntry],
    favorites: Dict[str, Dict[str, Any]]
) -> List[ScheduleEntry]:
    """Entries named after a saved favorite take that favorite's look."""
    if not favorites:
        return entries
    by_name = {name.lower(): payload for name, payload in favorites.items()}

    for entry in entries:
        payload = by_name.get(entry.name.lower())
        if payload is None:
            continue
        favorite = normalize_favorite_payload(payload)
        entry.effect_id = favorite["effectId"]
        entry.colors = favorite["colors"]
        entry.brightness = favorite["brightness"]
        entry.speed = favorite.get("speed", entry.speed)
        entry.intensity = favorite.get("intensity", entry.intensity)
        logger.debug("favorite_applied", favorite=entry.name)

    return entries


def _needs_variety(group: Sequence[ScheduleEntry]) -> bool:
    for prev, curr in zip(group, group[1:]):
        if prev.effect_id == curr.effect_id and colors_equal(prev.colors[0], curr.colors[0]):
            return True
    return False


def apply_variety_if_needed(entries: List[ScheduleEntry]) -> List[ScheduleEntry]:
    """
    Regenerate looks for any zone whose multi-day plan repeats the same
    effect and primary color on consecutive entries. Output is grouped by
    zone in first-seen order.
    """
    if len(entries) < VARIETY_MIN_ENTRIES:
        return entries

    groups: Dict[str, List[ScheduleEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.zone.lower(), []).append(entry)

    enhanced: List[ScheduleEntry] = []
    for zone, group in groups.items():
        if len(group) < VARIETY_MIN_ENTRIES or not _needs_variety(group):
            enhanced.extend(group)
            continue

        plan = generate_variety_plan(
            [e.days[0] if e.days else "monday" for e in group],
            VarietyConfig(theme_colors=group[0].colors, brightness=group[0].brightness)
        )
        logger.info("variety_applied", zone=zone, entries=len(group))

        for entry, variety in zip(group, plan):
            entry.effect_id = variety.effect_id
            entry.colors = variety.colors
            entry.speed = variety.speed
            entry.intensity = variety.intensity
            entry.brightness = variety.brightness
            enhanced.append(entry)

    return enhanced
