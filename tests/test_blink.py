"""
Test cases for blink classification with synthetic EAR traces.
"""
import unittest
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from gazeaac.blink import AdaptiveEarBaseline, BlinkClassifier
from gazeaac.config import load_config
from tests.face_fixtures import make_face

OPEN = 0.3
CLOSED = 0.1
FRAME_S = 1 / 30


def kinds(events):
    return [e.kind for e in events]


class TestBlinkClassification(unittest.TestCase):
    """Test short/long/noise boundaries."""

    def setUp(self):
        """Set up test configuration."""
        self.cfg = load_config()
        self.classifier = BlinkClassifier(self.cfg.blink)

    def blink(self, closed_at, reopened_at):
        """Close the eye at one time and reopen it at another; return the reopen events."""
        self.assertEqual(self.classifier.update_ear(CLOSED, closed_at), [])
        return self.classifier.update_ear(OPEN, reopened_at)

    def test_open_eye_no_events(self):
        """Test that an open eye produces nothing."""
        for i in range(30):
            self.assertEqual(self.classifier.update_ear(OPEN, i * FRAME_S), [])

    def test_long_at_exact_boundary(self):
        """Test that a closure of exactly the long duration is long."""
        events = self.blink(10.0, 11.0)
        self.assertEqual(kinds(events), ["long"])
        self.assertAlmostEqual(events[0].duration_ms, 1000.0, places=6)

    def test_short_one_frame_under_boundary(self):
        """Test that a closure one frame shorter than long is short."""
        events = self.blink(10.0, 11.0 - FRAME_S)
        self.assertEqual(kinds(events), ["short"])

    def test_noise_over_max_duration(self):
        """Test that an over-long closure is discarded."""
        events = self.blink(10.0, 12.0 + FRAME_S)
        self.assertEqual(events, [])
        self.assertEqual(self.classifier.long_count, 0)
        self.assertEqual(self.classifier.short_count, 0)

    def test_long_blink_not_counted_for_double(self):
        """Test that long and short are mutually exclusive and long does not feed the double window."""
        self.assertEqual(kinds(self.blink(10.0, 11.2)), ["long"])
        self.assertEqual(kinds(self.blink(11.4, 11.5)), ["short"])

    def test_eye_still_closed_no_event(self):
        """Test that nothing is emitted before the eye reopens."""
        self.classifier.update_ear(CLOSED, 0.0)
        for i in range(1, 60):
            self.assertEqual(self.classifier.update_ear(CLOSED, i * FRAME_S), [])
        self.assertTrue(self.classifier.is_closed)


class TestDoubleBlink(unittest.TestCase):
    """Test the recent-short-blink window."""

    def setUp(self):
        """Set up test configuration."""
        self.cfg = load_config()
        self.classifier = BlinkClassifier(self.cfg.blink)

    def blink(self, closed_at, reopened_at):
        self.classifier.update_ear(CLOSED, closed_at)
        return self.classifier.update_ear(OPEN, reopened_at)

    def test_two_shorts_inside_window(self):
        """Test that two quick short blinks produce exactly one double blink."""
        self.assertEqual(kinds(self.blink(1.0, 1.1)), ["short"])
        self.assertEqual(kinds(self.blink(1.5, 1.6)), ["short", "double"])

        # Window was cleared: a third short blink does not pair with the second
        self.assertEqual(kinds(self.blink(1.8, 1.9)), ["short"])
        self.assertEqual(self.classifier.double_count, 1)

    def test_two_shorts_beyond_window(self):
        """Test that spaced short blinks stay independent."""
        self.assertEqual(kinds(self.blink(1.0, 1.1)), ["short"])
        self.assertEqual(kinds(self.blink(2.2, 2.3)), ["short"])
        self.assertEqual(self.classifier.double_count, 0)
        self.assertEqual(self.classifier.short_count, 2)


class TestAdaptiveBaseline(unittest.TestCase):
    """Test the self-tuning EAR threshold."""

    def setUp(self):
        """Set up test configuration."""
        self.cfg = load_config()

    def test_no_update_before_min_samples(self):
        """Test that the threshold holds until enough open samples are seen."""
        baseline = AdaptiveEarBaseline(self.cfg.blink)
        for _ in range(self.cfg.blink.min_samples - 1):
            baseline.update(OPEN)
        self.assertEqual(baseline.threshold, self.cfg.blink.initial_threshold)

    def test_converges_to_ratio_of_open_ear(self):
        """Test that a constant open EAR converges to EAR * update ratio."""
        baseline = AdaptiveEarBaseline(self.cfg.blink)
        for _ in range(400):
            baseline.update(OPEN)
        self.assertAlmostEqual(baseline.threshold, OPEN * self.cfg.blink.update_ratio, places=3)

    def test_clamped_to_max(self):
        """Test that a very open eye saturates at the upper clamp."""
        baseline = AdaptiveEarBaseline(self.cfg.blink)
        for _ in range(600):
            baseline.update(0.45)
        self.assertAlmostEqual(baseline.threshold, self.cfg.blink.threshold_max, places=4)
        self.assertLessEqual(baseline.threshold, self.cfg.blink.threshold_max)

    def test_closed_samples_ignored(self):
        """Test that readings near the threshold never enter the history."""
        baseline = AdaptiveEarBaseline(self.cfg.blink)
        for _ in range(100):
            baseline.update(0.21)
        self.assertEqual(len(baseline.samples), 0)

    def test_history_bounded(self):
        """Test that the sample history keeps at most history_size entries."""
        baseline = AdaptiveEarBaseline(self.cfg.blink)
        for _ in range(500):
            baseline.update(OPEN)
        self.assertEqual(len(baseline.samples), self.cfg.blink.history_size)

    def test_adaptation_disabled(self):
        """Test the fixed-threshold configuration."""
        self.cfg.blink.adaptive = False
        baseline = AdaptiveEarBaseline(self.cfg.blink)
        for _ in range(200):
            baseline.update(OPEN)
        self.assertEqual(baseline.threshold, self.cfg.blink.initial_threshold)


class TestLandmarkInput(unittest.TestCase):
    """Test update() with landmark sets."""

    def setUp(self):
        """Set up test configuration."""
        self.cfg = load_config()
        self.classifier = BlinkClassifier(self.cfg.blink)

    def test_missing_face_freezes_episode(self):
        """Test that frames without a face leave an open episode open."""
        self.classifier.update(make_face(ear=CLOSED), 0.0)
        for i in range(1, 10):
            self.assertEqual(self.classifier.update(None, i * 0.1), [])
        self.assertTrue(self.classifier.is_closed)

        events = self.classifier.update(make_face(ear=OPEN), 1.0)
        self.assertEqual(kinds(events), ["long"])

    def test_reset(self):
        """Test that reset clears episodes and counters."""
        self.classifier.update(make_face(ear=CLOSED), 0.0)
        self.classifier.update(make_face(ear=OPEN), 0.2)
        self.classifier.reset()

        self.assertEqual(self.classifier.short_count, 0)
        self.assertFalse(self.classifier.is_closed)
        self.assertEqual(self.classifier.threshold, self.cfg.blink.initial_threshold)


if __name__ == '__main__':
    unittest.main()
