"""
Typed data model for the Lumina command pipeline.

Nothing past the validator boundary handles raw JSON maps: request payloads
are parsed into dataclasses by ``lumina.validators`` and model replies into
the pydantic response models by ``lumina.response_validator``. The response
models serialize to the camelCase shape the app expects
(``model_dump(by_alias=True)``).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer
from pydantic.alias_generators import to_camel

Color = List[int]


# =============================================================================
# Requests
# =============================================================================

@dataclass
class ConversationTurn:
    role: str  # "user" | "assistant"
    content: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ZoneState:
    id: str
    color: Color
    brightness: float
    effect: str


@dataclass
class LightingState:
    zones: List[ZoneState] = field(default_factory=list)


@dataclass
class ZoneConfig:
    id: str
    start_pixel: int
    end_pixel: int

    @property
    def pixel_count(self) -> int:
        return self.end_pixel - self.start_pixel + 1


@dataclass
class DeviceConfig:
    total_pixels: int
    zones: List[ZoneConfig] = field(default_factory=list)


@dataclass
class CommandRequest:
    """Validated single-command request."""
    transcribed_text: str
    conversation_history: List[ConversationTurn]
    current_lighting_state: LightingState
    user_favorites: List[str]
    device_config: DeviceConfig


class TriggerType(str, Enum):
    CLOCK = "clock"
    SUNRISE = "sunrise"
    SUNSET = "sunset"

    @classmethod
    def parse(cls, value: Any) -> "TriggerType":
        if value in (cls.SUNRISE.value, cls.SUNSET.value):
            return cls(value)
        return cls.CLOCK


@dataclass
class ScheduleEvent:
    """An event already on the user's schedule."""
    id: str = ""
    name: str = "Unnamed"
    zone: str = "all"
    start_time: str = "18:00"
    end_time: str = "22:00"
    days: List[str] = field(default_factory=list)
    effect_id: int = 0
    colors: List[Color] = field(default_factory=lambda: [[255, 255, 255]])
    brightness: float = 200
    speed: Optional[float] = None
    intensity: Optional[float] = None
    recurring: bool = True
    priority: float = 50
    trigger_type: TriggerType = TriggerType.CLOCK
    trigger_offset: float = 0


@dataclass
class TeamInfo:
    name: str
    league: str = ""
    abbreviation: str = ""
    primary_color: Color = field(default_factory=lambda: [255, 0, 0])
    secondary_color: Color = field(default_factory=lambda: [255, 255, 255])
    accent_color: Optional[Color] = None


@dataclass
class AvailableEffect:
    id: int
    name: str
    category: Optional[str] = None


@dataclass
class UserLocation:
    timezone: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class ScheduleCommandRequest:
    """Validated scheduling request."""
    text: str
    conversation_history: List[ConversationTurn]
    current_schedule: List[ScheduleEvent]
    user_location: UserLocation
    user_teams: List[TeamInfo]
    available_zones: List[str]
    available_effects: List[AvailableEffect]
    team_color_database: Dict[str, TeamInfo]
    current_date_time: str
    sunrise_time: Optional[str] = None
    sunset_time: Optional[str] = None


# =============================================================================
# Model transport
# =============================================================================

@dataclass
class LLMUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMReply:
    """
    Raw model reply. ``json`` is None whenever ``text`` is not a JSON
    object; callers must never assume it is present.
    """
    text: str
    json: Optional[Dict[str, Any]]
    usage: LLMUsage
    model: str


# =============================================================================
# Responses
# =============================================================================

class Intent(str, Enum):
    LIGHTING_COMMAND = "lighting_command"
    NAVIGATION = "navigation"
    QUESTION_ANSWER = "question_answer"
    GUIDED_CREATION = "guided_creation"


class ResponseType(str, Enum):
    READY_TO_EXECUTE = "ready_to_execute"
    CONFIRM_PLAN = "confirm_plan"
    NEEDS_CLARIFICATION = "needs_clarification"
    CONFIRM_MULTI_DAY_PLAN = "confirm_multi_day_plan"
    CONFLICT_DETECTED = "conflict_detected"


class Complexity(str, Enum):
    SIMPLE = "SIMPLE"
    MODERATE = "MODERATE"
    COMPLEX = "COMPLEX"


class Resolution(str, Enum):
    REPLACE = "replace"
    ADJUST_TIME = "adjust_time"
    MERGE = "merge"
    KEEP_BOTH = "keep_both"


class WireModel(BaseModel):
    """snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LightingCommand(WireModel):
    zone: str
    effect: int
    colors: List[Color]
    brightness: int
    # None means "leave the device's current value unchanged"
    speed: Optional[int] = None
    intensity: Optional[int] = None

    @model_serializer(mode="wrap")
    def omit_unchanged_params(self, handler):
        data = handler(self)
        for key in ("speed", "intensity"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class CommandResponse(WireModel):
    intent: Intent
    response_text: str
    commands: Optional[List[LightingCommand]] = None
    preview_colors: Optional[List[Color]] = None
    clarification_options: Optional[List[str]] = None
    navigation_target: Optional[str] = None
    save_as_favorite: Optional[str] = None
    confidence: float = 0.8


class ScheduleEntry(WireModel):
    name: str = "Scheduled Lighting"
    zone: str = "all"
    start_time: Optional[str] = None
    end_time: Optional[str] = None  # "HH:mm", "manual" or None
    days: List[str] = Field(default_factory=list)
    effect_id: int = 0
    colors: List[Color] = Field(default_factory=lambda: [[255, 180, 100]])
    brightness: int = 200
    speed: int = 128
    intensity: int = 128
    recurring: bool = True
    trigger_type: TriggerType = TriggerType.CLOCK
    trigger_offset: int = 0
    priority: int = 50


class ConflictResult(WireModel):
    existing_event_id: str
    existing_event_name: str
    overlap_description: str
    suggested_resolution: Resolution


class ScheduleCommandResponse(WireModel):
    response_type: ResponseType
    response_text: str
    schedule_entries: Optional[List[ScheduleEntry]] = None
    conflicts: Optional[List[ConflictResult]] = None
    clarification_options: Optional[List[str]] = None
    preview_colors: Optional[List[Color]] = None
    complexity: Complexity = Complexity.MODERATE
    confidence: float = 0.8


# =============================================================================
# Variety plans
# =============================================================================

@dataclass(frozen=True)
class VarietyEntry:
    day_index: int
    day_label: str
    effect_id: int
    colors: List[Color]
    speed: int
    intensity: int
    brightness: int


@dataclass
class VarietyConfig:
    theme_colors: List[Color]
    preferred_effects: Optional[List[int]] = None
    festive: bool = False
    brightness: Optional[int] = None
