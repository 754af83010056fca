"""
Advisory strings attached to voice annotations.

Warnings flag readings past service limits; suggestions coach the technician
toward notes the parser can read. Neither ever blocks processing.
"""

from __future__ import annotations

import re
from typing import List, Optional

from inspection_core.schemas.enums import MeasurementUnit
from inspection_core.schemas.voice import ParseResult
from inspection_core.services.voice_parser import normalize_text

BRAKE_PAD_MIN_MM = 3.0
BRAKE_PAD_CAUTION_MM = 5.0
TIRE_TREAD_MIN_INCHES = 4 / 32
TIRE_TREAD_MIN_MM = 3.0
BATTERY_MIN_VOLTS = 12.0
BATTERY_MAX_VOLTS = 14.5

LOW_CONFIDENCE = 0.7
HIGH_CONFIDENCE = 0.8

# Voltage is not a canonical measurement unit, so it is read from the text here.
_VOLTS = re.compile(r"(?<![\d./])(\d+(?:\.\d+)?)\s*(?:volts?|v)\b")


def _battery_voltage(raw_text: str) -> Optional[float]:
    m = _VOLTS.search(normalize_text(raw_text))
    return float(m.group(1)) if m else None


# PUBLIC_INTERFACE
def measurement_warnings(result: ParseResult, raw_text: str) -> List[str]:
    """Return service-limit warnings for the parsed reading."""
    warnings: List[str] = []
    component = result.component or ""
    m = result.measurement

    if m is not None and ("brake" in component or "pad" in component):
        if m.unit == MeasurementUnit.MM and m.value < BRAKE_PAD_MIN_MM:
            warnings.append(
                "Warning: Brake pad thickness below 3mm indicates immediate replacement needed"
            )
        elif m.unit == MeasurementUnit.MM and m.value < BRAKE_PAD_CAUTION_MM:
            warnings.append("Caution: Brake pad thickness below 5mm - monitor closely")

    if m is not None and ("tire" in component or "tread" in component):
        if m.unit == MeasurementUnit.INCHES and m.value < TIRE_TREAD_MIN_INCHES:
            warnings.append('Warning: Tire tread depth below 4/32" indicates replacement needed')
        elif m.unit == MeasurementUnit.MM and m.value < TIRE_TREAD_MIN_MM:
            warnings.append("Warning: Tire tread depth below 3mm indicates replacement needed")

    if "battery" in component:
        volts = _battery_voltage(raw_text)
        if volts is not None and volts < BATTERY_MIN_VOLTS:
            warnings.append("Warning: Battery voltage below 12V indicates potential battery issues")
        elif volts is not None and volts > BATTERY_MAX_VOLTS:
            warnings.append("Caution: Battery voltage above 14.5V may indicate overcharging")

    return warnings


# PUBLIC_INTERFACE
def parse_suggestions(result: ParseResult) -> List[str]:
    """Return hints for improving the note, plus an acknowledgement when it parsed well."""
    suggestions: List[str] = []

    if result.confidence < LOW_CONFIDENCE:
        suggestions.append("Low confidence parsing - consider rephrasing or adding more detail")
        if result.component is None:
            suggestions.append("Try including specific automotive parts (brakes, tires, engine, etc.)")
        if result.condition_candidate is None:
            suggestions.append('Include condition words like "good", "worn", "poor", or "needs replacement"')
        if result.measurement is None:
            suggestions.append("Add specific measurements (thickness in mm, pressure in PSI, etc.)")

    component = result.component or ""
    if "brake" in component:
        suggestions.append("For brakes, consider mentioning pad thickness (mm) and rotor condition")
    elif "tire" in component:
        suggestions.append("For tires, include tread depth (32nds or mm) and pressure (PSI)")
    elif "oil" in component:
        suggestions.append("For oil, mention level, color, and viscosity if visible")
    elif "battery" in component:
        suggestions.append("For battery, include voltage reading and terminal condition")
    elif "filter" in component:
        suggestions.append("For filters, describe dirt level and restriction")

    if result.confidence >= HIGH_CONFIDENCE:
        suggestions.append("High confidence parsing - input looks comprehensive!")

    return suggestions
