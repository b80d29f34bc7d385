"""
Unit tests for normalization of Claude replies.
"""
import pytest

from lumina.models import (
    Complexity,
    Intent,
    Resolution,
    ResponseType,
    ScheduleEntry,
    ScheduleEvent,
)
from lumina.response_validator import (
    ResponseFormatError,
    apply_favorites,
    apply_variety_if_needed,
    normalize_favorite_payload,
    normalize_preview_colors,
    validate_command_response,
    validate_schedule_response,
)


class TestCommandResponse:
    """Single-command replies."""

    def test_missing_json_raises(self):
        with pytest.raises(ResponseFormatError, match="Claude did not return valid JSON"):
            validate_command_response(None)

    @pytest.mark.parametrize("intent", ["bogus", None, 3])
    def test_invalid_intent_raises(self, intent):
        with pytest.raises(ResponseFormatError, match="Invalid intent"):
            validate_command_response({"intent": intent})

    def test_minimal_reply_gets_defaults(self):
        response = validate_command_response({"intent": "lighting_command"})

        assert response.intent == Intent.LIGHTING_COMMAND
        assert response.response_text == "Here you go!"
        assert response.commands is None
        assert response.preview_colors is None
        assert response.clarification_options is None
        assert response.navigation_target is None
        assert response.save_as_favorite is None
        assert response.confidence == 0.8

    def test_command_defaults_and_clamps(self):
        response = validate_command_response({
            "intent": "lighting_command",
            "commands": [
                {},
                {"zone": "backyard", "effect": 46, "colors": [[255, 0, 0], [999, 0, 0], [0, 255, 0], [0, 0, 255], [1, 1, 1]],
                 "brightness": 400, "speed": -20, "intensity": 127.5},
            ],
        })
        default, explicit = response.commands

        assert default.zone == "all"
        assert default.effect == 0
        assert default.colors == [[255, 255, 255]]
        assert default.brightness == 200
        assert default.speed is None
        assert default.intensity is None

        assert explicit.zone == "backyard"
        assert explicit.effect == 46
        assert explicit.colors == [[255, 0, 0], [255, 0, 0], [0, 255, 0]]
        assert explicit.brightness == 255
        assert explicit.speed == 0
        assert explicit.intensity == 128

    def test_absent_speed_is_omitted_from_wire_format(self):
        response = validate_command_response({"intent": "lighting_command", "commands": [{"zone": "backyard", "brightness": 0}]})
        wire = response.model_dump(by_alias=True)

        assert wire["commands"][0] == {"zone": "backyard", "effect": 0, "colors": [[255, 255, 255]], "brightness": 0}
        assert wire["responseText"] == "Here you go!"
        assert wire["previewColors"] is None

    def test_present_speed_is_kept_in_wire_format(self):
        response = validate_command_response({"intent": "lighting_command", "commands": [{"speed": 90, "intensity": 300}]})

        wire = response.model_dump(by_alias=True)["commands"][0]
        assert wire["speed"] == 90
        assert wire["intensity"] == 255

    def test_out_of_range_colors_are_clamped_not_dropped(self):
        response = validate_command_response({
            "intent": "lighting_command",
            "commands": [{"colors": [[300, -5, 0], [0.0, 128.0, 255.0]]}],
        })

        colors = response.commands[0].colors
        assert colors == [[255, 0, 0], [0, 128, 255]]
        assert all(type(v) is int for color in colors for v in color)

    def test_white_channel_is_trimmed_to_rgb(self):
        response = validate_command_response({
            "intent": "lighting_command",
            "commands": [{"colors": [[255, 120, 0, 80], ["red"], [1, 2]]}],
        })

        assert response.commands[0].colors == [[255, 120, 0]]

    @pytest.mark.parametrize("value,expected", [(1.7, 1.0), (-0.2, 0.0), ("high", 0.8), (0.93, 0.93)])
    def test_confidence(self, value, expected):
        assert validate_command_response({"intent": "navigation", "confidence": value}).confidence == expected

    def test_clarification_options(self):
        response = validate_command_response({
            "intent": "guided_creation",
            "clarificationOptions": ["", "Warm", 3, "Cool", "Party", "Extra"],
        })
        assert response.clarification_options == ["Warm", "Cool", "Party"]

        empty = validate_command_response({"intent": "guided_creation", "clarificationOptions": ["", None]})
        assert empty.clarification_options is None

    def test_navigation_fields(self):
        response = validate_command_response({
            "intent": "navigation",
            "navigationTarget": "/schedule",
            "saveAsFavorite": 12,
        })
        assert response.navigation_target == "/schedule"
        assert response.save_as_favorite is None


class TestPreviewColors:
    def test_five_padded_to_nine_with_last(self):
        colors = [[i, i, i] for i in range(1, 6)]
        result = normalize_preview_colors(colors)

        assert len(result) == 9
        assert result[:5] == colors
        assert result[5:] == [[5, 5, 5]] * 4

    def test_none_valid_yields_none(self):
        assert normalize_preview_colors([[1, 2], "red", [1, "2", 3]]) is None
        assert normalize_preview_colors([]) is None
        assert normalize_preview_colors("red") is None

    def test_filter_before_cap(self):
        colors = [[1, 2]] + [[i, 0, 0] for i in range(12)]
        result = normalize_preview_colors(colors)

        assert len(result) == 9
        assert result[0] == [0, 0, 0]

    def test_channels_clamped_to_triples(self):
        assert normalize_preview_colors([[300, -5, 12.4, 99]]) == [[255, 0, 12]] * 9


class TestScheduleResponse:
    """Scheduling replies."""

    def test_missing_json_raises(self):
        with pytest.raises(ResponseFormatError):
            validate_schedule_response(None, [])

    def test_missing_response_type_raises(self):
        with pytest.raises(ResponseFormatError, match="Invalid responseType"):
            validate_schedule_response({"scheduleEntries": []}, [])

    def test_defaults(self):
        response = validate_schedule_response({"responseType": "needs_clarification", "complexity": "HUGE"}, [])

        assert response.response_text == "Here's what I've put together for your schedule."
        assert response.complexity == Complexity.MODERATE
        assert response.confidence == 0.8
        assert response.schedule_entries is None
        assert response.conflicts is None

    def test_entry_defaults(self):
        response = validate_schedule_response({"responseType": "confirm_plan", "scheduleEntries": [{"colors": "red"}]}, [])
        entry = response.schedule_entries[0]

        assert entry.name == "Scheduled Lighting"
        assert entry.zone == "all"
        assert entry.start_time is None and entry.end_time is None
        assert entry.colors == [[255, 180, 100]]
        assert (entry.brightness, entry.speed, entry.intensity, entry.priority) == (200, 128, 128, 50)
        assert entry.recurring is True
        assert entry.trigger_type.value == "clock"

    def test_server_detected_conflict_overrides_type(self):
        existing = [ScheduleEvent(id="evt-1", name="Nightly", days=["friday"])]
        response = validate_schedule_response({
            "responseType": "confirm_plan",
            "scheduleEntries": [{"name": "Game Day", "startTime": "19:00", "endTime": "23:00", "days": ["friday"]}],
        }, existing)

        assert response.response_type == ResponseType.CONFLICT_DETECTED
        assert [c.existing_event_id for c in response.conflicts] == ["evt-1"]

    def test_needs_clarification_is_not_overridden(self):
        existing = [ScheduleEvent(id="evt-1", days=["friday"])]
        response = validate_schedule_response({
            "responseType": "needs_clarification",
            "scheduleEntries": [{"startTime": "19:00", "endTime": "23:00", "days": ["friday"]}],
        }, existing)

        assert response.response_type == ResponseType.NEEDS_CLARIFICATION
        assert response.conflicts

    def test_model_conflicts_merged_without_duplicates(self):
        existing = [ScheduleEvent(id="evt-1", name="Nightly", days=["friday"])]
        response = validate_schedule_response({
            "responseType": "conflict_detected",
            "scheduleEntries": [{"startTime": "19:00", "endTime": "23:00", "days": ["friday"]}],
            "conflicts": [
                {"existingEventId": "evt-1", "overlapDescription": "dupe"},
                {"existingEventId": "evt-2", "overlapDescription": "other", "suggestedResolution": "nuke"},
                {"existingEventId": 7, "overlapDescription": "bad id"},
            ],
        }, existing)

        assert [c.existing_event_id for c in response.conflicts] == ["evt-1", "evt-2"]
        assert response.conflicts[1].existing_event_name == "Unknown"
        assert response.conflicts[1].suggested_resolution == Resolution.REPLACE

    def test_multi_day_upgrade(self):
        entries = [{"name": f"Night {i}", "days": [d]} for i, d in enumerate(["monday", "tuesday", "wednesday", "thursday"])]
        response = validate_schedule_response({"responseType": "ready_to_execute", "scheduleEntries": entries}, [])

        assert response.response_type == ResponseType.CONFIRM_MULTI_DAY_PLAN

    def test_three_entries_stay_ready(self):
        entries = [{"days": [d]} for d in ["monday", "tuesday", "wednesday"]]
        response = validate_schedule_response({"responseType": "ready_to_execute", "scheduleEntries": entries}, [])

        assert response.response_type == ResponseType.READY_TO_EXECUTE


class TestFavorites:
    def test_normalize_payload(self):
        assert normalize_favorite_payload({"effectId": 95, "colors": [[255, 140, 0]], "brightness": 300}) == {
            "effectId": 95, "colors": [[255, 140, 0]], "brightness": 255,
        }
        assert normalize_favorite_payload(None) == {"effectId": 0, "colors": [[255, 255, 255]], "brightness": 200}

    def test_apply_by_case_insensitive_name(self):
        entries = [ScheduleEntry(name="date night"), ScheduleEntry(name="Other")]
        favorites = {"Date Night": {"effectId": 2, "colors": [[200, 80, 40]], "brightness": 90, "speed": 40}}

        apply_favorites(entries, favorites)

        assert entries[0].effect_id == 2
        assert entries[0].colors == [[200, 80, 40]]
        assert entries[0].brightness == 90
        assert entries[0].speed == 40
        assert entries[0].intensity == 128
        assert entries[1].effect_id == 0


class TestVarietyEnhancement:
    def _same_look(self, zone, day):
        return ScheduleEntry(zone=zone, days=[day], effect_id=0, colors=[[227, 24, 55]], brightness=210)

    def test_repeated_looks_are_varied(self):
        entries = [self._same_look("front", d) for d in ["monday", "tuesday", "wednesday"]]

        result = apply_variety_if_needed(entries)

        for prev, curr in zip(result, result[1:]):
            assert prev.effect_id != curr.effect_id
        assert {e.brightness for e in result} == {210}
        assert result[0].colors[0] == [227, 24, 55]

    def test_distinct_looks_untouched(self):
        entries = [
            ScheduleEntry(zone="front", days=["monday"], effect_id=2),
            ScheduleEntry(zone="front", days=["tuesday"], effect_id=46),
            ScheduleEntry(zone="front", days=["wednesday"], effect_id=74),
        ]
        result = apply_variety_if_needed(entries)
        assert [e.effect_id for e in result] == [2, 46, 74]

    def test_small_groups_untouched(self):
        entries = [self._same_look("front", "monday"), self._same_look("front", "tuesday"), self._same_look("back", "monday")]
        result = apply_variety_if_needed(entries)
        assert [e.effect_id for e in result] == [0, 0, 0]

    def test_grouped_by_zone(self):
        entries = [
            self._same_look("front", "monday"),
            self._same_look("back", "monday"),
            self._same_look("Front", "tuesday"),
            self._same_look("front", "wednesday"),
        ]
        result = apply_variety_if_needed(entries)
        assert [e.zone for e in result] == ["front", "Front", "front", "back"]
