"""
validation.py
-------------
Turns raw form input into typed, constrained values. Every function here is pure:
no database access, no Flask request objects. Rule violations are raised as
GradingError so the routes can show the message next to the form.
"""

import math
import re

TOUCH_STATUSES = ("TOUCH", "NO_TOUCH", "BROKEN")
DEVICE_TYPES = ("LAPTOP", "DESKTOP")
ROLES = ("TECH", "ADMIN")

OTHER = "OTHER"

_LEADING_INT = re.compile(r"^\s*([+-]?[0-9]+)")


class GradingError(ValueError):
    """A descriptive rule violation meant to be shown to the user."""


def normalize_int(raw, fallback=0):
    """Parse a leading decimal integer ("85%" -> 85); fallback when nothing parses."""
    if isinstance(raw, bool) or raw is None:
        return fallback
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else fallback
    match = _LEADING_INT.match(str(raw))
    if not match:
        return fallback
    return int(match.group(1))


def normalize_bool(raw):
    # unchecked HTML checkboxes are simply absent from the form
    if raw is True:
        return True
    if isinstance(raw, str):
        return raw in ("true", "on", "1")
    if type(raw) in (int, float):
        return raw == 1
    return False


def normalize_touch_status(raw):
    value = clean_str(raw).upper()
    return value if value in TOUCH_STATUSES else "NO_TOUCH"


def normalize_device_type(raw):
    return "DESKTOP" if raw == "DESKTOP" else "LAPTOP"


def normalize_role(raw):
    return "ADMIN" if raw == "ADMIN" else "TECH"


def clean_str(raw):
    if raw is None:
        return ""
    return str(raw).strip()


def pick_other(body, field):
    """Return body[field], or body[field + 'Other'] when the select says OTHER."""
    value = body.get(field)
    if value == OTHER:
        return body.get(field + "Other")
    return value


def build_preset_label(brand="", model="", cpu="", ram_gb=0, ssd_gb=0):
    """
    Build a display label such as "Dell 7420 i7-1185G7 32/256".
    The "ram/ssd" suffix is only added when both sizes are known.
    """
    parts = [clean_str(p) for p in (brand, model, cpu)]
    parts = [p for p in parts if p]
    if ram_gb and ssd_gb:
        parts.append(f"{ram_gb}/{ssd_gb}")
    return " ".join(parts)


# ------------------------------------------------------------
# Fallback chains: submitted value first, then the preset default
# ------------------------------------------------------------
def resolve_text(submitted, default=None):
    value = clean_str(submitted)
    if value:
        return value
    return clean_str(default)


def resolve_int(submitted, default=None):
    # zero and negative sizes count as not given
    value = normalize_int(submitted, 0)
    if value > 0:
        return value
    value = normalize_int(default, 0)
    return value if value > 0 else 0


def resolve_touch_status(submitted, default=None):
    if clean_str(submitted):
        return normalize_touch_status(submitted)
    if default:
        return normalize_touch_status(default)
    return "NO_TOUCH"


def parse_battery(raw):
    """Optional battery health: None when blank, otherwise an int in [0, 100]."""
    if not clean_str(raw):
        return None
    battery = normalize_int(raw, -1)
    if battery < 0 or battery > 100:
        raise GradingError("Battery Health must be between 0 and 100.")
    return battery


def require(value, message):
    if not value:
        raise GradingError(message)
    return value
