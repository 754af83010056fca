"""
Tests for the rule-based voice note parser.
"""

import pytest

from inspection_core.core.errors import ValidationError
from inspection_core.schemas.enums import Condition, MeasurementUnit, RecommendedAction
from inspection_core.services.voice_parser import VoiceParser, parse, score_confidence


class TestScenarios:
    """Reference notes from the shop floor."""

    def test_brakes_with_measurement_and_replacement(self):
        result = parse("front brakes at 5 millimeters, needs replacement")
        assert result.component == "front brake"
        assert result.measurement.value == 5.0
        assert result.measurement.unit == MeasurementUnit.MM
        assert result.action == RecommendedAction.REPLACE
        assert result.condition_candidate is None
        assert result.needs_attention is True
        assert result.confidence == pytest.approx(0.9333, abs=1e-4)

    def test_worn_tires_with_fraction(self):
        result = parse("rear tires worn, 4/32 tread")
        assert result.component == "rear tire"
        assert result.condition_candidate == Condition.FAIR
        assert result.measurement.value == pytest.approx(0.125)
        assert result.measurement.unit == MeasurementUnit.INCHES
        assert result.action is None
        assert result.confidence == pytest.approx(1.0)


class TestComponentExtraction:

    def test_position_prefix(self):
        assert parse("driver side wiper blade streaking").component == "driver wiper blade"

    def test_specific_component_wins(self):
        assert parse("oil filter is dirty").component == "oil filter"

    def test_position_outside_window_ignored(self):
        text = "front bumper scratched and also the old battery"
        assert parse(text).component == "battery"

    def test_no_component(self):
        assert parse("everything looks fine").component is None


class TestConditionExtraction:

    def test_good_bucket(self):
        assert parse("battery looks good").condition_candidate == Condition.GOOD

    def test_poor_bucket(self):
        assert parse("radiator hose cracked").condition_candidate == Condition.POOR

    def test_critical_bucket(self):
        result = parse("brake fluid leak is unsafe")
        assert result.condition_candidate == Condition.NEEDS_IMMEDIATE
        assert result.needs_attention is False

    def test_needs_bucket_sets_attention_only(self):
        result = parse("alternator requires a look")
        assert result.condition_candidate is None
        assert result.needs_attention is True

    def test_word_boundaries(self):
        """'ok' inside another word is not a condition."""
        assert parse("smoke from the engine").condition_candidate is None


class TestMeasurementExtraction:

    @pytest.mark.parametrize(
        "text, value, unit",
        [
            ("pads at 3mm", 3.0, MeasurementUnit.MM),
            ("tread 0.25 inches", 0.25, MeasurementUnit.INCHES),
            ("oil life 40 percent", 40.0, MeasurementUnit.PERCENT),
            ("tire pressure 32 psi", 32.0, MeasurementUnit.PSI),
            ("tread at 6 thirty-seconds", 0.188, MeasurementUnit.INCHES),
            ("tread is 5/32 of an inch", 0.156, MeasurementUnit.INCHES),
        ],
    )
    def test_units(self, text, value, unit):
        m = parse(text).measurement
        assert m.value == pytest.approx(value)
        assert m.unit == unit

    def test_fraction_with_inch_is_not_read_as_whole_inches(self):
        m = parse("tread at 4/32 inch").measurement
        assert m.value == pytest.approx(0.125)

    def test_zero_denominator_skipped(self):
        assert parse("code 3/0 on the dash").measurement is None


class TestActionExtraction:

    @pytest.mark.parametrize(
        "text, action",
        [
            ("should be replaced soon", RecommendedAction.REPLACE),
            ("needs to be checked next visit", RecommendedAction.INSPECT),
            ("monitor the belt", RecommendedAction.MONITOR),
            ("top off coolant", RecommendedAction.TOP_OFF),
            ("rotate tires", RecommendedAction.ROTATE),
        ],
    )
    def test_phrases(self, text, action):
        assert parse(text).action == action


class TestConfidence:

    def test_nothing_found_is_zero(self):
        result = parse("the customer was friendly")
        assert result.fields_found == 0
        assert result.confidence == 0.0

    def test_single_weak_field(self):
        assert score_confidence(component=False, condition=False, measurement=False, action=True) == pytest.approx(0.4)

    @pytest.mark.parametrize(
        "text",
        [
            "front brakes at 5 millimeters, needs replacement",
            "rear tires worn, 4/32 tread",
            "battery good 12.6 volts monitor",
            "x",
            "!!!",
            "left front tire 30 psi 2/32 worn out needs replacement rotate",
        ],
    )
    def test_bounds(self, text):
        assert 0.0 <= parse(text).confidence <= 1.0

    def test_deterministic(self):
        text = "passenger rear tire 3/32 worn, should be replaced"
        assert parse(text).model_dump_json() == parse(text).model_dump_json()


class TestInputValidation:

    @pytest.mark.parametrize("bad", ["", "   ", "\n\t"])
    def test_blank_text(self, bad):
        with pytest.raises(ValidationError):
            parse(bad)

    def test_non_string(self):
        with pytest.raises(ValidationError):
            VoiceParser().parse(None)

    def test_batch_stops_at_invalid_entry(self):
        with pytest.raises(ValidationError):
            VoiceParser().parse_batch(["battery good", ""])
