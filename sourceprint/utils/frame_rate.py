# sourceprint/utils/frame_rate.py
"""
Frame Rate Utilities

Catalogue of professional frame rates kept as exact rationals, plus helpers
for parsing ffprobe rate strings, snapping near-canonical values and comparing
rates coming from different containers.
"""

import logging
from fractions import Fraction
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

# Tolerance used when recognising a float-ish rate as a professional one
RATE_TOLERANCE = 0.001

PROFESSIONAL_FRAME_RATES: Dict[str, Fraction] = {
    # Film / cinema family
    "23.976": Fraction(24000, 1001),
    "24": Fraction(24),
    "47.952": Fraction(48000, 1001),
    "48": Fraction(48),
    "95.904": Fraction(96000, 1001),
    "96": Fraction(96),
    # PAL family
    "25": Fraction(25),
    "50": Fraction(50),
    "100": Fraction(100),
    # NTSC family
    "29.97": Fraction(30000, 1001),
    "30": Fraction(30),
    "59.94": Fraction(60000, 1001),
    "60": Fraction(60),
    "119.88": Fraction(120000, 1001),
    "90": Fraction(90),
    "120": Fraction(120),
    # Odd one out, shows up on some Sony cameras
    "24.98": Fraction(25000, 1001),
}

DROP_FRAME_RATES: Dict[str, Fraction] = {
    name: PROFESSIONAL_FRAME_RATES[name] for name in ("29.97", "59.94", "119.88")
}

RateLike = Union[Fraction, int, float, str]


def parse_frame_rate(value: Optional[RateLike]) -> Optional[Fraction]:
    """
    Parses a frame rate into an exact Fraction.

    Accepts ffprobe style rational strings ("24000/1001"), plain numbers
    ("25", "29.97") or numeric values. Returns None for missing, zero or
    unparsable rates ("0/0" is what ffprobe reports for unknown).
    """
    if value is None:
        return None
    if isinstance(value, Fraction):
        return value if value > 0 else None
    try:
        if isinstance(value, str):
            text = value.strip()
            if not text or text.upper() == "N/A":
                return None
            if "/" in text:
                num_str, den_str = text.split("/", 1)
                num, den = int(num_str), int(den_str)
                if num <= 0 or den <= 0:
                    return None
                return Fraction(num, den)
            rate = Fraction(text)
        else:
            rate = Fraction(value)
    except (ValueError, ZeroDivisionError, TypeError):
        logger.warning(f"Could not parse frame rate value: {value!r}")
        return None
    return rate if rate > 0 else None


def identify_professional_rate(rate: Optional[RateLike]) -> Optional[str]:
    """Returns the catalogue name ("23.976", "25", ...) matching the rate, if any."""
    parsed = parse_frame_rate(rate)
    if parsed is None:
        return None
    for name, canonical in PROFESSIONAL_FRAME_RATES.items():
        if parsed == canonical:
            return name
    as_float = float(parsed)
    for name, canonical in PROFESSIONAL_FRAME_RATES.items():
        if abs(as_float - float(canonical)) < RATE_TOLERANCE:
            return name
    return None


def normalize_frame_rate(rate: Optional[RateLike]) -> Optional[Fraction]:
    """
    Snaps a rate onto its canonical professional rational when it is within
    tolerance (e.g. 2997/100 -> 30000/1001). Other rates are returned reduced.
    """
    parsed = parse_frame_rate(rate)
    if parsed is None:
        return None
    name = identify_professional_rate(parsed)
    if name is not None:
        return PROFESSIONAL_FRAME_RATES[name]
    return parsed


def is_drop_frame_rate(rate: Optional[RateLike]) -> bool:
    """True for rates where drop-frame counting is customary (29.97, 59.94, 119.88)."""
    name = identify_professional_rate(rate)
    return name in DROP_FRAME_RATES


def are_frame_rates_compatible(a: Optional[RateLike], b: Optional[RateLike]) -> bool:
    """
    Compares two rates: exact rational equality first, then same professional
    category, then a float tolerance. Unknown rates are never compatible.
    """
    rate_a = parse_frame_rate(a)
    rate_b = parse_frame_rate(b)
    if rate_a is None or rate_b is None:
        return False
    if rate_a == rate_b:
        return True
    name_a = identify_professional_rate(rate_a)
    name_b = identify_professional_rate(rate_b)
    if name_a is not None and name_b is not None:
        return name_a == name_b
    return abs(float(rate_a) - float(rate_b)) < RATE_TOLERANCE


def frame_rate_description(rate: Optional[RateLike]) -> str:
    """Human readable label such as '29.97 fps (DF capable)' for UIs and logs."""
    parsed = parse_frame_rate(rate)
    if parsed is None:
        return "Unknown"
    name = identify_professional_rate(parsed)
    exact = f"{parsed.numerator}/{parsed.denominator}" if parsed.denominator != 1 else f"{parsed.numerator}"
    if name is None:
        return f"{float(parsed):.3f} fps ({exact}, non-standard)"
    label = f"{name} fps"
    if name in DROP_FRAME_RATES:
        label += " (DF capable)"
    if parsed != PROFESSIONAL_FRAME_RATES[name]:
        label += f" [{exact}]"
    return label
