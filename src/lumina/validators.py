"""
Input validation and sanitization for Lumina requests.

- Prompt-injection sanitization of every free-text field
- Size/shape validation of the request payload with a named field path
- Truncation (not rejection) of over-long text and over-long arrays

Everything here is a pure function of its input. Fields are checked in a
fixed order and the first offending field is reported.
"""
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from lumina.models import (
    AvailableEffect,
    CommandRequest,
    ConversationTurn,
    DeviceConfig,
    LightingState,
    ScheduleCommandRequest,
    ScheduleEvent,
    TeamInfo,
    TriggerType,
    UserLocation,
    ZoneConfig,
    ZoneState,
)

MAX_TRANSCRIBED_TEXT_LENGTH = 1000
MAX_CONVERSATION_TURNS = 10
MAX_CONVERSATION_TURN_LENGTH = 2000
MAX_ZONES = 20
MAX_FAVORITES = 50
MAX_FAVORITE_NAME_LENGTH = 100
MAX_TOTAL_PIXELS = 10000

MAX_SCHEDULE_EVENTS = 100
MAX_TEAMS = 20
MAX_EFFECTS = 200
MAX_TEAM_COLOR_ENTRIES = 100

_ROLES = ("user", "assistant")

_FENCE_RE = re.compile(r"```")
_ROLE_TAG_RE = re.compile(r"</?(?:system|user|assistant|human)>", re.IGNORECASE)
_WHITESPACE_RUN_RE = re.compile(r"\s{3,}")


class ValidationError(Exception):
    """Request payload is invalid. ``field`` is the path of the offending value."""

    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.message = message
        self.field = field


# =============================================================================
# Numeric helpers (shared with the response validator)
# =============================================================================

def is_number(value: Any) -> bool:
    """True for real JSON numbers; bools are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_integer(value: Any) -> bool:
    return is_number(value) and float(value).is_integer()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_byte(value: float) -> int:
    """Clamp a device parameter into 0-255 and make it an int."""
    return int(clamp(round_half_up(value), 0, 255))


def is_rgb_array(value: Any) -> bool:
    """An RGB [R,G,B] or RGBW [R,G,B,W] array of integers 0-255."""
    if not isinstance(value, list) or len(value) not in (3, 4):
        return False
    return all(is_integer(v) and 0 <= v <= 255 for v in value)


# =============================================================================
# Sanitization
# =============================================================================

def _sanitize_once(text: str) -> str:
    text = text.replace("\0", "")
    text = _FENCE_RE.sub("", text)
    text = _ROLE_TAG_RE.sub("", text)
    text = _WHITESPACE_RUN_RE.sub("  ", text)
    return text.strip()


def sanitize_text(text: str) -> str:
    """
    Strip characters and patterns that could be used for prompt injection.
    Preserves natural language while removing control sequences.

    Repeats until stable so that removing one delimiter can never leave a
    new one behind (e.g. "`<system>``").
    """
    cleaned = _sanitize_once(text)
    while True:
        again = _sanitize_once(cleaned)
        if again == cleaned:
            return cleaned
        cleaned = again


def _clean(text: str, max_length: int) -> str:
    return sanitize_text(text)[:max_length].rstrip()


# =============================================================================
# Shared field validators
# =============================================================================

def _require_object(value: Any, message: str, path: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError(message, path)
    return value


def _validate_history(d: Dict[str, Any], coerce_content: bool = False) -> List[ConversationTurn]:
    # Absent means "no history"; a present value (null included) must be an array
    if "conversationHistory" not in d:
        return []
    raw = d["conversationHistory"]
    if not isinstance(raw, list):
        raise ValidationError("conversationHistory must be an array", "conversationHistory")

    # Keep only the most recent turns
    offset = max(0, len(raw) - MAX_CONVERSATION_TURNS)
    turns = []
    for i, turn in enumerate(raw[offset:], start=offset):
        path = f"conversationHistory[{i}]"
        if not isinstance(turn, dict):
            raise ValidationError(f"Conversation turn at index {i} must be an object", path)

        role = turn.get("role")
        if role not in _ROLES:
            raise ValidationError('Conversation turn role must be "user" or "assistant"', f"{path}.role")

        content = turn.get("content")
        if not isinstance(content, str):
            if not coerce_content:
                raise ValidationError("Conversation turn content must be a string", f"{path}.content")
            content = ""

        turns.append(ConversationTurn(role=role, content=_clean(content, MAX_CONVERSATION_TURN_LENGTH)))
    return turns


def _validate_zone_state(zone: Any, index: int) -> ZoneState:
    path = f"currentLightingState.zones[{index}]"
    z = _require_object(zone, f"Zone at index {index} must be an object", path)

    zone_id = z.get("id")
    if not isinstance(zone_id, str) or not zone_id:
        raise ValidationError(f"Zone at index {index} must have a non-empty string id", f"{path}.id")

    if not is_rgb_array(z.get("color")):
        raise ValidationError(
            f'Zone "{zone_id}" color must be an RGB [R,G,B] or RGBW [R,G,B,W] array with values 0-255',
            f"{path}.color",
        )

    brightness = z.get("brightness")
    if not is_number(brightness) or not 0 <= brightness <= 255:
        raise ValidationError(f'Zone "{zone_id}" brightness must be a number 0-255', f"{path}.brightness")

    effect = z.get("effect")
    if not isinstance(effect, str):
        raise ValidationError(f'Zone "{zone_id}" effect must be a string', f"{path}.effect")

    return ZoneState(
        id=_clean(zone_id, MAX_FAVORITE_NAME_LENGTH),
        color=[int(c) for c in z["color"]],
        brightness=brightness,
        effect=_clean(effect, MAX_FAVORITE_NAME_LENGTH),
    )


def _validate_zone_config(zone: Any, index: int) -> ZoneConfig:
    path = f"deviceConfig.zones[{index}]"
    z = _require_object(zone, f"Device zone at index {index} must be an object", path)

    zone_id = z.get("id")
    if not isinstance(zone_id, str) or not zone_id:
        raise ValidationError(f"Device zone at index {index} must have a non-empty string id", f"{path}.id")

    start = z.get("startPixel")
    if not is_integer(start) or start < 0:
        raise ValidationError(f'Zone "{zone_id}" startPixel must be a non-negative integer', f"{path}.startPixel")

    end = z.get("endPixel")
    if not is_integer(end) or end < start:
        raise ValidationError(f'Zone "{zone_id}" endPixel must be >= startPixel', f"{path}.endPixel")

    return ZoneConfig(id=_clean(zone_id, MAX_FAVORITE_NAME_LENGTH), start_pixel=int(start), end_pixel=int(end))


# =============================================================================
# Command request
# =============================================================================

def validate_command_input(data: Any) -> CommandRequest:
    """
    Validate and sanitize the full single-command payload.

    Order: transcribedText -> conversationHistory -> currentLightingState
    -> userFavorites -> deviceConfig.
    """
    d = _require_object(data, "Request body must be an object", "root")

    # --- transcribedText ---
    raw_text = d.get("transcribedText")
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise ValidationError("transcribedText must be a non-empty string", "transcribedText")
    transcribed_text = _clean(raw_text, MAX_TRANSCRIBED_TEXT_LENGTH)
    if not transcribed_text:
        raise ValidationError("transcribedText is empty after sanitization", "transcribedText")

    # --- conversationHistory ---
    history = _validate_history(d)

    # --- currentLightingState ---
    state = _require_object(
        d.get("currentLightingState"), "currentLightingState must be an object", "currentLightingState"
    )
    raw_zones = state.get("zones")
    if not isinstance(raw_zones, list):
        raise ValidationError("currentLightingState.zones must be an array", "currentLightingState.zones")
    zone_states = [_validate_zone_state(z, i) for i, z in enumerate(raw_zones[:MAX_ZONES])]

    # --- userFavorites ---
    favorites: List[str] = []
    raw_favorites = d.get("userFavorites")
    if raw_favorites is not None:
        if not isinstance(raw_favorites, list):
            raise ValidationError("userFavorites must be an array of strings", "userFavorites")
        for i, fav in enumerate(raw_favorites[:MAX_FAVORITES]):
            if not isinstance(fav, str):
                raise ValidationError(f"Favorite at index {i} must be a string", f"userFavorites[{i}]")
            favorites.append(_clean(fav, MAX_FAVORITE_NAME_LENGTH))

    # --- deviceConfig ---
    device = _require_object(d.get("deviceConfig"), "deviceConfig must be an object", "deviceConfig")
    total_pixels = device.get("totalPixels")
    if not is_integer(total_pixels) or not 1 <= total_pixels <= MAX_TOTAL_PIXELS:
        raise ValidationError(
            f"totalPixels must be a number between 1 and {MAX_TOTAL_PIXELS}", "deviceConfig.totalPixels"
        )
    raw_device_zones = device.get("zones")
    if not isinstance(raw_device_zones, list):
        raise ValidationError("deviceConfig.zones must be an array", "deviceConfig.zones")
    zone_configs = [_validate_zone_config(z, i) for i, z in enumerate(raw_device_zones[:MAX_ZONES])]

    return CommandRequest(
        transcribed_text=transcribed_text,
        conversation_history=history,
        current_lighting_state=LightingState(zones=zone_states),
        user_favorites=favorites,
        device_config=DeviceConfig(total_pixels=int(total_pixels), zones=zone_configs),
    )


# =============================================================================
# Schedule request
# =============================================================================

def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _color_or(value: Any, default: Optional[List[int]]) -> Optional[List[int]]:
    return [int(c) for c in value] if is_rgb_array(value) else default


def _colors_or(value: Any, default: List[List[int]]) -> List[List[int]]:
    if not isinstance(value, list):
        return default
    colors = [[int(c) for c in color] for color in value if is_rgb_array(color)]
    return colors or default


def normalize_schedule_event(raw: Any) -> ScheduleEvent:
    """Normalize a client-supplied schedule event, defaulting bad fields."""
    if not isinstance(raw, dict):
        return ScheduleEvent()

    def text(key: str, default: str) -> str:
        value = raw.get(key)
        return _clean(value, MAX_FAVORITE_NAME_LENGTH) if isinstance(value, str) else default

    def number(key: str, default):
        value = raw.get(key)
        return value if is_number(value) else default

    return ScheduleEvent(
        id=raw["id"] if isinstance(raw.get("id"), str) else "",
        name=text("name", "Unnamed"),
        zone=text("zone", "all"),
        start_time=text("startTime", "18:00"),
        end_time=text("endTime", "22:00"),
        days=_string_list(raw.get("days")),
        effect_id=int(number("effectId", 0)),
        colors=_colors_or(raw.get("colors"), [[255, 255, 255]]),
        brightness=number("brightness", 200),
        speed=number("speed", None),
        intensity=number("intensity", None),
        recurring=raw["recurring"] if isinstance(raw.get("recurring"), bool) else True,
        priority=number("priority", 50),
        trigger_type=TriggerType.parse(raw.get("triggerType")),
        trigger_offset=number("triggerOffset", 0),
    )


def _parse_team(raw: Dict[str, Any]) -> TeamInfo:
    league = raw.get("league")
    abbreviation = raw.get("abbreviation")
    return TeamInfo(
        name=_clean(raw["name"], MAX_FAVORITE_NAME_LENGTH),
        league=_clean(league, MAX_FAVORITE_NAME_LENGTH) if isinstance(league, str) else "",
        abbreviation=_clean(abbreviation, MAX_FAVORITE_NAME_LENGTH) if isinstance(abbreviation, str) else "",
        primary_color=_color_or(raw.get("primaryColor"), [255, 0, 0]),
        secondary_color=_color_or(raw.get("secondaryColor"), [255, 255, 255]),
        accent_color=_color_or(raw.get("accentColor"), None),
    )


def validate_schedule_input(data: Any, now: Optional[datetime] = None) -> ScheduleCommandRequest:
    """Validate and sanitize a scheduling payload."""
    d = _require_object(data, "Request body must be an object", "root")

    # --- text ---
    raw_text = d.get("text")
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise ValidationError("text must be a non-empty string", "text")
    text = _clean(raw_text, MAX_TRANSCRIBED_TEXT_LENGTH)
    if not text:
        raise ValidationError("text is empty after sanitization", "text")

    # --- conversationHistory ---
    history = _validate_history(d, coerce_content=True)

    # --- currentSchedule ---
    current_schedule: List[ScheduleEvent] = []
    raw_schedule = d.get("currentSchedule")
    if raw_schedule is not None:
        if not isinstance(raw_schedule, list):
            raise ValidationError("currentSchedule must be an array", "currentSchedule")
        current_schedule = [normalize_schedule_event(e) for e in raw_schedule[:MAX_SCHEDULE_EVENTS]]

    # --- userLocation ---
    loc = _require_object(d.get("userLocation"), "userLocation must be an object with timezone", "userLocation")
    tz = loc.get("timezone")
    if not isinstance(tz, str) or not tz:
        raise ValidationError("userLocation.timezone must be a non-empty string", "userLocation.timezone")
    location = UserLocation(
        timezone=_clean(tz, MAX_FAVORITE_NAME_LENGTH),
        latitude=loc["latitude"] if is_number(loc.get("latitude")) else None,
        longitude=loc["longitude"] if is_number(loc.get("longitude")) else None,
    )

    # --- userTeams ---
    teams: List[TeamInfo] = []
    raw_teams = d.get("userTeams")
    if isinstance(raw_teams, list):
        teams = [
            _parse_team(t) for t in raw_teams[:MAX_TEAMS]
            if isinstance(t, dict) and isinstance(t.get("name"), str)
        ]

    # --- availableZones ---
    zones: List[str] = []
    raw_zones = d.get("availableZones")
    if isinstance(raw_zones, list):
        zones = [_clean(z, MAX_FAVORITE_NAME_LENGTH) for z in raw_zones[:MAX_ZONES] if isinstance(z, str) and z]
        zones = [z for z in zones if z]
    if not zones:
        zones = ["all"]

    # --- availableEffects ---
    effects: List[AvailableEffect] = []
    raw_effects = d.get("availableEffects")
    if isinstance(raw_effects, list):
        for e in raw_effects[:MAX_EFFECTS]:
            if not isinstance(e, dict) or not is_integer(e.get("id")):
                continue
            effect_id = int(e["id"])
            name = e.get("name")
            category = e.get("category")
            effects.append(AvailableEffect(
                id=effect_id,
                name=_clean(name, MAX_FAVORITE_NAME_LENGTH) if isinstance(name, str) else f"Effect {effect_id}",
                category=_clean(category, MAX_FAVORITE_NAME_LENGTH) if isinstance(category, str) else None,
            ))

    # --- teamColorDatabase ---
    team_db: Dict[str, TeamInfo] = {}
    raw_team_db = d.get("teamColorDatabase")
    if isinstance(raw_team_db, dict):
        for key, value in list(raw_team_db.items())[:MAX_TEAM_COLOR_ENTRIES]:
            if not isinstance(value, dict):
                continue
            name = value.get("name") if isinstance(value.get("name"), str) else key
            team_db[_clean(key, MAX_FAVORITE_NAME_LENGTH)] = _parse_team({**value, "name": name})

    # --- currentDateTime / sun times ---
    current = d.get("currentDateTime")
    if isinstance(current, str) and current:
        current_date_time = _clean(current, MAX_FAVORITE_NAME_LENGTH)
    else:
        current_date_time = (now or datetime.now(timezone.utc)).isoformat()

    sunrise = d.get("sunriseTime")
    sunset = d.get("sunsetTime")

    return ScheduleCommandRequest(
        text=text,
        conversation_history=history,
        current_schedule=current_schedule,
        user_location=location,
        user_teams=teams,
        available_zones=zones,
        available_effects=effects,
        team_color_database=team_db,
        current_date_time=current_date_time,
        sunrise_time=_clean(sunrise, 16) if isinstance(sunrise, str) else None,
        sunset_time=_clean(sunset, 16) if isinstance(sunset, str) else None,
    )
