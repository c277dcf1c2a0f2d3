import math

from eyeblink.blink_utils import CooldownGate, ThresholdClassifier, clamp


def test_clamp_bounds():
    assert clamp(-0.5) == 0.0
    assert clamp(1.5) == 1.0
    assert clamp(0.25) == 0.25
    assert clamp(5.0, 0.0, 10.0) == 5.0


def test_threshold_is_strict():
    classifier = ThresholdClassifier(0.6)
    assert classifier.is_closed(0.61)
    assert not classifier.is_closed(0.6)
    assert not classifier.is_closed(0.59)


def test_threshold_matches_comparison_in_range():
    classifier = ThresholdClassifier(0.5, clamp_input=False)
    for step in range(101):
        value = step / 100
        assert classifier.is_closed(value) == (value > 0.5)


def test_out_of_range_confidence_is_clamped():
    classifier = ThresholdClassifier(0.6)
    assert classifier.is_closed(1.7)
    assert not classifier.is_closed(-3.0)


def test_clamping_keeps_threshold_of_one_unreachable():
    assert not ThresholdClassifier(1.0).is_closed(2.0)
    assert ThresholdClassifier(1.0, clamp_input=False).is_closed(2.0)


def test_nan_reads_as_open():
    assert not ThresholdClassifier(0.0).is_closed(math.nan)


def test_gate_open_without_previous_event():
    assert CooldownGate(1.0).is_open(0.0, None)


def test_gate_window():
    gate = CooldownGate(1.0)
    assert not gate.is_open(10.0, 10.0)
    assert not gate.is_open(10.999, 10.0)
    assert gate.is_open(11.0, 10.0)
    assert gate.is_open(25.0, 10.0)


def test_zero_duration_gate_opens_immediately():
    assert CooldownGate(0.0).is_open(3.0, 3.0)
