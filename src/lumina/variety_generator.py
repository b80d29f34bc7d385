"""
Variety generator for multi-day lighting schedules.

Produces one lighting configuration per day such that consecutive days never
share an effect. Every choice is derived from the day's position in the plan,
so the same inputs always reproduce the same plan.
"""
from typing import Dict, List, Optional, Sequence, Tuple

from lumina.models import Color, VarietyConfig, VarietyEntry
from lumina.validators import clamp, round_half_up

WHITE: Color = [255, 255, 255]
WARM_WHITE: Color = [255, 180, 100]

# 0 = calm, 1 = medium, 2 = high
DAY_ENERGY: Dict[str, int] = {
    "monday": 0,
    "tuesday": 0,
    "wednesday": 1,
    "thursday": 1,
    "friday": 2,
    "saturday": 2,
    "sunday": 0,
}

ENERGY_EFFECTS: Dict[int, List[int]] = {
    0: [2, 46, 95, 96, 13, 89, 57, 110],   # Breathe, Gradient, Candle, Candle Multi, Fade, Blends, Aurora, Lake
    1: [74, 117, 108, 50, 85, 38, 111],    # Twinkle, Twinklefox, Fairy, Twinkle Fade, Ripple, Dissolve, Meteor
    2: [28, 33, 14, 52, 65, 42, 9, 27],    # Chase, Running, Theater Chase, Sparkle, Sparkle+, Fireworks, Rainbow, Candy Cane
}

ENERGY_BRIGHTNESS: Dict[int, Tuple[int, int]] = {
    0: (120, 170),
    1: (160, 210),
    2: (200, 255),
}

ENERGY_SPEED = {0: 80, 1: 128, 2: 180}
ENERGY_INTENSITY = {0: 100, 1: 128, 2: 170}


def day_energy(day_label: str, festive: bool = False) -> int:
    """Weekday energy; labels that are not weekdays (ISO dates) get 2 if festive else 1."""
    return DAY_ENERGY.get(day_label.lower(), 2 if festive else 1)


def blend_colors(color_a: Color, color_b: Color, ratio: float) -> Color:
    """Linear blend per RGB channel; ratio 0 is all ``color_a``, 1 is all ``color_b``."""
    return [round_half_up(color_a[i] + (color_b[i] - color_a[i]) * ratio) for i in range(3)]


def lighten(color: Color, amount: float) -> Color:
    return blend_colors(color, WHITE, amount)


def rotate_colors(theme_colors: Sequence[Color], day_index: int) -> List[Color]:
    """
    Rotate color emphasis for a given day.

    With theme colors [a, b, c] the seven-day cycle is:
        0: [a, b, c]
        1: [b, a, c]
        2: [a, blend(a, b)]
        3: [a, b, white]
        4: [b, c, a]
        5: [blend(a, b), b]
        6: [a, c, b]

    A missing ``b`` is ``a`` lightened 30% toward white; a missing ``c`` is white.
    """
    if not theme_colors:
        return [list(WARM_WHITE)]

    a = list(theme_colors[0])
    b = list(theme_colors[1]) if len(theme_colors) > 1 else lighten(a, 0.3)
    c = list(theme_colors[2]) if len(theme_colors) > 2 else list(WHITE)

    rotation = day_index % 7
    if rotation == 0:
        return [a, b, c]
    if rotation == 1:
        return [b, a, c]
    if rotation == 2:
        return [a, blend_colors(a, b, 0.5)]
    if rotation == 3:
        return [a, b, list(WHITE)]
    if rotation == 4:
        return [b, c, a]
    if rotation == 5:
        return [blend_colors(a, b, 0.5), b]
    return [a, c, b]


def pick_effect(
    day_label: str,
    day_index: int,
    previous_effect_id: Optional[int],
    preferred_effects: Optional[Sequence[int]] = None,
    festive: bool = False
) -> int:
    """Pick an effect for the day that differs from the previous day's."""
    energy = day_energy(day_label, festive)

    if preferred_effects:
        pool = list(preferred_effects)
    else:
        pool = list(ENERGY_EFFECTS[energy])
        if festive and energy < 2:
            pool.extend(ENERGY_EFFECTS[2][:3])

    if previous_effect_id is not None:
        pool = [e for e in pool if e != previous_effect_id]

    if not pool:
        pool = list(ENERGY_EFFECTS[energy])

    return pool[day_index % len(pool)]


def pick_params(day_index: int, energy: int) -> Tuple[int, int]:
    """Speed and intensity for the day, varied by +/-30 and +/-20 around the energy base."""
    speed_offset = ((day_index * 37) % 61) - 30
    intensity_offset = ((day_index * 23) % 41) - 20
    speed = int(clamp(ENERGY_SPEED[energy] + speed_offset, 0, 255))
    intensity = int(clamp(ENERGY_INTENSITY[energy] + intensity_offset, 0, 255))
    return speed, intensity


def pick_brightness(day_index: int, energy: int, override: Optional[int] = None) -> int:
    if override is not None:
        return override
    low, high = ENERGY_BRIGHTNESS[energy]
    return low + round_half_up((high - low) * ((day_index * 41) % 100) / 100)


def generate_variety_plan(days: Sequence[str], config: VarietyConfig) -> List[VarietyEntry]:
    """
    Generate one VarietyEntry per day label.

    Args:
        days: Ordered day labels, weekday names or ISO dates
        config: Theme colors and options

    Returns:
        Entries in the same order as ``days``
    """
    entries: List[VarietyEntry] = []
    previous_effect_id: Optional[int] = None

    for index, day_label in enumerate(days):
        energy = day_energy(day_label, config.festive)
        effect_id = pick_effect(
            day_label,
            index,
            previous_effect_id,
            config.preferred_effects,
            config.festive
        )
        speed, intensity = pick_params(index, energy)

        entries.append(VarietyEntry(
            day_index=index,
            day_label=day_label,
            effect_id=effect_id,
            colors=rotate_colors(config.theme_colors, index),
            speed=speed,
            intensity=intensity,
            brightness=pick_brightness(index, energy, config.brightness),
        ))
        previous_effect_id = effect_id

    return entries


def colors_equal(a: Optional[Color], b: Optional[Color]) -> bool:
    if a is None or b is None:
        return False
    return list(a) == list(b)


def validate_variety_plan(entries: Sequence[VarietyEntry]) -> bool:
    """False if any adjacent pair shares both effect and primary color."""
    for prev, curr in zip(entries, entries[1:]):
        if prev.effect_id == curr.effect_id and colors_equal(prev.colors[0], curr.colors[0]):
            return False
    return True
