"""
Guidance and Narration Tests
============================
"""

import logging

import pytest

from visual_guide.client.guidance import guidance_for, priority_for, throttled_message
from visual_guide.client.narration import LoggingNarrator, NarrationPriority
from visual_guide.models.analysis import AnalysisKind, Severity

from conftest import sample_result


class TestGuidance:
    """Test phrasing and priority mapping."""

    @pytest.mark.parametrize(
        "severity, priority",
        [
            (Severity.DANGER, NarrationPriority.HIGH),
            (Severity.WARNING, NarrationPriority.MEDIUM),
            (Severity.SAFE, NarrationPriority.LOW),
        ],
    )
    def test_priority_for(self, severity, priority):
        assert priority_for(severity) is priority

    def test_dangerous_obstacle(self):
        text = guidance_for(sample_result(severity=Severity.DANGER, message="Hole in the pavement."))
        assert text == "Careful! Hole in the pavement. Stop now."

    def test_warning_obstacle(self):
        text = guidance_for(sample_result(message="Bicycle parked across the path"))
        assert text == "Attention, Bicycle parked across the path. Walk with caution."

    def test_currency(self):
        text = guidance_for(sample_result(kind=AnalysisKind.CURRENCY, severity=Severity.SAFE, message="A 50 euro note"))
        assert text.endswith("Let me help you check it.")

    def test_clear_path(self):
        text = guidance_for(sample_result(kind=AnalysisKind.GENERAL, severity=Severity.SAFE, message="The hallway is clear"))
        assert text.endswith("Carry on calmly.")

    def test_objects(self):
        text = guidance_for(sample_result(kind=AnalysisKind.OBJECTS, severity=Severity.SAFE, message="I see a table and two chairs"))
        assert text.endswith("Stay alert while you walk.")

    def test_throttled_message_with_history(self):
        text = throttled_message(sample_result(message="Door on the left"), 12)
        assert "Door on the left" in text
        assert "12 seconds" in text


class TestLoggingNarrator:
    """Test the logging narration sink."""

    def test_high_priority_logs_warning(self, caplog):
        narrator = LoggingNarrator()
        with caplog.at_level(logging.INFO, logger="visual_guide.client.narration"):
            narrator.speak("Stop now", NarrationPriority.HIGH)
            narrator.speak("Path is clear", NarrationPriority.LOW)

        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.WARNING, logging.INFO]
        assert narrator.last == ("Path is clear", NarrationPriority.LOW)

    def test_history_is_bounded(self):
        narrator = LoggingNarrator(history=2)
        for i in range(5):
            narrator.speak(f"message {i}", NarrationPriority.LOW)
        assert len(narrator.spoken) == 2
