"""
Free-text parser for spoken or typed inspection notes.

Turns a note such as "front brakes at 5 millimeters, needs replacement" into a
structured candidate finding (component, condition, measurement, action) with a
heuristic confidence score. Pure and deterministic: no clock, no I/O, no state.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from inspection_core.core.errors import ValidationError
from inspection_core.schemas.enums import Condition, MeasurementUnit, RecommendedAction
from inspection_core.schemas.voice import Measurement, ParseResult

# More specific entries first: the first vocabulary entry found in the text wins.
COMPONENTS: Tuple[str, ...] = (
    "air filter", "cabin filter", "fuel filter", "oil filter",
    "brake pad", "brake fluid", "brake", "rotor", "pad",
    "tire", "tread", "wheel",
    "wiper blade", "wiper", "blade",
    "headlight", "taillight", "bulb", "light",
    "oil", "filter", "engine", "transmission",
    "coolant", "antifreeze", "radiator", "fluid",
    "battery", "alternator", "starter",
    "belt", "hose",
    "suspension", "strut", "shock",
)

POSITIONS: Tuple[str, ...] = ("front", "rear", "left", "right", "driver", "passenger")

# Characters before a component searched for a position qualifier.
POSITION_WINDOW = 20

# Scanned in order; the first bucket with a hit decides. The "needs" bucket
# carries no condition, it only marks the note as asking for work.
_NEEDS = "needs"
CONDITION_BUCKETS: Tuple[Tuple[Optional[str], Tuple[str, ...]], ...] = (
    (Condition.GOOD.value, ("good", "fine", "okay", "ok", "great", "excellent", "like new", "brand new")),
    (Condition.FAIR.value, ("worn", "wearing", "marginal", "fair", "aging", "moderate")),
    (Condition.POOR.value, ("bad", "poor", "failing", "failed", "cracked", "leaking")),
    (Condition.NEEDS_IMMEDIATE.value, ("critical", "urgent", "unsafe", "dangerous", "immediate attention")),
    (_NEEDS, ("needs", "need", "requires", "require", "recommend", "should")),
)

ACTION_PHRASES: Tuple[Tuple[str, RecommendedAction], ...] = (
    ("needs replacement", RecommendedAction.REPLACE),
    ("needs to be replaced", RecommendedAction.REPLACE),
    ("should be replaced", RecommendedAction.REPLACE),
    ("recommend replacement", RecommendedAction.REPLACE),
    ("recommend replacing", RecommendedAction.REPLACE),
    ("needs to be checked", RecommendedAction.INSPECT),
    ("needs to be inspected", RecommendedAction.INSPECT),
    ("monitor", RecommendedAction.MONITOR),
    ("top off", RecommendedAction.TOP_OFF),
    ("rotate", RecommendedAction.ROTATE),
    ("rotation", RecommendedAction.ROTATE),
)

# Field weights; the sum over present fields is divided by (present * 0.25).
CONFIDENCE_WEIGHTS = {
    "component": 0.4,
    "condition": 0.3,
    "measurement": 0.2,
    "action": 0.1,
}

# A number not glued to a preceding digit, dot or slash (so "4/32 inch" is not "32 inch").
_NUM = r"(?<![\d./])(\d+(?:\.\d+)?)"

_FRACTION = "fraction"
_THIRTY_SECONDS = "32nds"

MEASUREMENT_PATTERNS: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(_NUM + r"\s*(?:millimet(?:er|re)s?|mm)\b"), MeasurementUnit.MM.value),
    (re.compile(_NUM + r'\s*(?:(?:inches|inch)\b|")'), MeasurementUnit.INCHES.value),
    (re.compile(_NUM + r"\s*(?:percent\b|%)"), MeasurementUnit.PERCENT.value),
    (re.compile(_NUM + r"\s*(?:psi|pounds?)\b"), MeasurementUnit.PSI.value),
    (re.compile(r"(?<![\d.])(\d+)\s*/\s*(\d+)(?:\s*(?:of\s+an\s+inch|inch(?:es)?|nds|ths))?"), _FRACTION),
    (re.compile(_NUM + r"\s*thirty[\s-]?seconds?\b"), _THIRTY_SECONDS),
)


def _phrase_pattern(phrase: str, *, plural: bool = False) -> Pattern[str]:
    body = r"\s+".join(re.escape(w) for w in phrase.split())
    suffix = r"(?:s|es)?\b" if plural else r"\b"
    return re.compile(r"\b" + body + suffix)


_COMPONENT_PATTERNS = tuple((c, _phrase_pattern(c, plural=True)) for c in COMPONENTS)
_POSITION_PATTERNS = tuple((p, _phrase_pattern(p)) for p in POSITIONS)
_CONDITION_PATTERNS = tuple(
    (bucket, tuple(_phrase_pattern(w) for w in words)) for bucket, words in CONDITION_BUCKETS
)
_ACTION_PATTERNS = tuple(
    (re.compile(r"\b" + r"\s+".join(re.escape(w) for w in phrase.split())), action)
    for phrase, action in ACTION_PHRASES
)


# PUBLIC_INTERFACE
def normalize_text(text: str) -> str:
    """Lower-case, unify quotes and collapse whitespace."""
    text = text.replace("”", '"').replace("“", '"').replace("″", '"')
    return " ".join(text.lower().split())


class VoiceParser:
    """
    Rule-based extractor over a fixed automotive vocabulary.

    The score is a heuristic count of what was recognised, not a calibrated
    probability.
    """

    # PUBLIC_INTERFACE
    def parse(self, text: str) -> ParseResult:
        """
        Parse one note.

        Raises:
            ValidationError: text is not a string or is blank.
        Returns:
            ParseResult; all fields None and confidence 0 when nothing is recognised.
        """
        if not isinstance(text, str):
            raise ValidationError("Voice text must be a string.")
        normalized = normalize_text(text)
        if not normalized:
            raise ValidationError("Voice text must not be empty.")

        component = self.extract_component(normalized)
        condition, needs_attention = self.extract_condition(normalized)
        measurement = self.extract_measurement(normalized)
        action = self.extract_action(normalized)

        return ParseResult(
            component=component,
            condition_candidate=condition,
            measurement=measurement,
            action=action,
            confidence=score_confidence(
                component=component is not None,
                condition=condition is not None,
                measurement=measurement is not None,
                action=action is not None,
            ),
            needs_attention=needs_attention,
        )

    # PUBLIC_INTERFACE
    def parse_batch(self, texts: Iterable[str]) -> List[ParseResult]:
        """Parse several notes; the first invalid entry raises ValidationError."""
        return [self.parse(t) for t in texts]

    def extract_component(self, text: str) -> Optional[str]:
        for label, pattern in _COMPONENT_PATTERNS:
            m = pattern.search(text)
            if m:
                position = self.extract_position(text, m.start())
                return f"{position} {label}" if position else label
        return None

    def extract_position(self, text: str, component_start: int) -> Optional[str]:
        window = text[max(0, component_start - POSITION_WINDOW):component_start]
        for position, pattern in _POSITION_PATTERNS:
            if pattern.search(window):
                return position
        return None

    def extract_condition(self, text: str) -> Tuple[Optional[Condition], bool]:
        """Return (condition, needs_attention)."""
        for bucket, patterns in _CONDITION_PATTERNS:
            if any(p.search(text) for p in patterns):
                if bucket == _NEEDS:
                    return None, True
                return Condition(bucket), False
        return None, False

    def extract_measurement(self, text: str) -> Optional[Measurement]:
        for pattern, unit in MEASUREMENT_PATTERNS:
            m = pattern.search(text)
            if not m:
                continue
            if unit == _FRACTION:
                numerator, denominator = float(m.group(1)), float(m.group(2))
                if denominator == 0:
                    continue
                return Measurement(value=round(numerator / denominator, 3), unit=MeasurementUnit.INCHES)
            if unit == _THIRTY_SECONDS:
                return Measurement(value=round(float(m.group(1)) / 32, 3), unit=MeasurementUnit.INCHES)
            return Measurement(value=float(m.group(1)), unit=MeasurementUnit(unit))
        return None

    def extract_action(self, text: str) -> Optional[RecommendedAction]:
        for pattern, action in _ACTION_PATTERNS:
            if pattern.search(text):
                return action
        return None


# PUBLIC_INTERFACE
def score_confidence(*, component: bool, condition: bool, measurement: bool, action: bool) -> float:
    """Weighted extraction score in [0, 1]; zero when nothing was found."""
    present: Sequence[float] = [
        weight
        for found, weight in (
            (component, CONFIDENCE_WEIGHTS["component"]),
            (condition, CONFIDENCE_WEIGHTS["condition"]),
            (measurement, CONFIDENCE_WEIGHTS["measurement"]),
            (action, CONFIDENCE_WEIGHTS["action"]),
        )
        if found
    ]
    if not present:
        return 0.0
    score = sum(present) / (len(present) * 0.25)
    return round(max(0.0, min(score, 1.0)), 4)


_DEFAULT_PARSER = VoiceParser()


# PUBLIC_INTERFACE
def parse(text: str) -> ParseResult:
    """Parse one note with the default vocabulary."""
    return _DEFAULT_PARSER.parse(text)
