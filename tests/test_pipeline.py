"""
Test cases for the per-frame pipeline with synthetic landmark sequences.
"""
import unittest
import sys
from pathlib import Path
from unittest.mock import patch

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from gazeaac.config import load_config
from gazeaac.pipeline import FrameProcessor
from gazeaac.types import BackCommand, ConfirmCommand, NavigateCommand
from tests.face_fixtures import LOOK_CENTER, LOOK_LEFT, make_face

FRAME_S = 1 / 30


class TestFrameProcessor(unittest.TestCase):
    """Test the frame pipeline."""

    def setUp(self):
        """Set up test configuration."""
        self.cfg = load_config()
        self.processor = FrameProcessor(self.cfg)
        self.t = 0.0

    def feed(self, faces):
        """Process a sequence of frames; return all commands."""
        commands = []
        for face in faces:
            result = self.processor.process_frame(face, self.t)
            commands.extend(result.commands)
            self.t += FRAME_S
        return commands

    def test_should_process_every_nth_frame(self):
        """Test frame skipping."""
        self.assertEqual([self.processor.should_process(i) for i in range(5)],
                         [True, False, True, False, True])

    def test_no_face(self):
        """Test the empty result for frames without a face."""
        result = self.processor.process_frame(None, 0.0)
        self.assertFalse(result.face_detected)
        self.assertFalse(result.cursor.visible)
        self.assertIsNone(result.zone)
        self.assertIsNone(result.ear)
        self.assertEqual(result.commands, [])

    def test_landmarks_without_iris_ignored(self):
        """Test that a 468-point set (no iris refinement) counts as no face."""
        result = self.processor.process_frame(make_face()[:468], 0.0)
        self.assertFalse(result.face_detected)
        self.assertEqual(self.processor.consecutive_errors, 0)

    def test_face_result(self):
        """Test the fields of a detected frame."""
        result = self.processor.process_frame(make_face(LOOK_CENTER, 0.5, 0.3), 0.0)
        self.assertTrue(result.face_detected)
        self.assertTrue(result.cursor.visible)
        self.assertEqual(result.zone, "center")
        self.assertAlmostEqual(result.ear, 0.3, places=6)

    def test_gaze_excursion_navigates_once(self):
        """Test look left, come back, stay: one navigate-left."""
        faces = [make_face(LOOK_CENTER)] * 5 + [make_face(LOOK_LEFT)] * 40 + [make_face(LOOK_CENTER)] * 60
        commands = self.feed(faces)
        self.assertEqual(commands, [NavigateCommand(direction="left")])

    def test_long_blink_confirms(self):
        """Test that a 1.2 s closure produces a confirm command."""
        faces = [make_face(ear=0.3)] * 10 + [make_face(ear=0.1)] * 36 + [make_face(ear=0.3)] * 5
        self.assertEqual(self.feed(faces), [ConfirmCommand()])
        self.assertEqual(self.processor.blink.long_count, 1)

    def test_double_blink_goes_back(self):
        """Test that two quick blinks produce a back command."""
        blink = [make_face(ear=0.1)] * 3 + [make_face(ear=0.3)] * 6
        faces = [make_face(ear=0.3)] * 10 + blink + blink
        self.assertEqual(self.feed(faces), [BackCommand()])

    def test_errors_caught_and_counted(self):
        """Test that per-frame exceptions never escape and trigger recovery after the limit."""
        limit = self.cfg.pipeline.max_consecutive_errors
        with patch.object(self.processor.gaze, "process_frame", side_effect=ValueError("bad frame")):
            with self.assertLogs("gazeaac.pipeline", level="ERROR"):
                for i in range(limit):
                    result = self.processor.process_frame(make_face(), i * FRAME_S)
                    self.assertFalse(result.face_detected)
                    self.assertEqual(result.commands, [])

        self.assertEqual(self.processor.consecutive_errors, limit)
        self.assertTrue(self.processor.needs_recovery)

        self.processor.process_frame(make_face(), 10.0)
        self.assertEqual(self.processor.consecutive_errors, 0)
        self.assertFalse(self.processor.needs_recovery)
        self.assertEqual(self.processor.diagnostics.frame_errors, limit)

    def test_diagnostics(self):
        """Test detection counters and rate."""
        self.feed([make_face()] * 30 + [None] * 10)
        diag = self.processor.diagnostics
        self.assertEqual(diag.detection_attempts, 40)
        self.assertEqual(diag.detection_successes, 30)
        self.assertAlmostEqual(diag.success_rate, 0.75)
        self.assertGreater(diag.detection_fps, 25)

    def test_reset(self):
        """Test that reset clears every component."""
        self.feed([make_face(LOOK_LEFT)] * 20)
        self.processor.reset()
        self.assertIsNone(self.processor.gaze.position)
        self.assertEqual(self.processor.dispatcher.current_zone, "center")
        self.assertEqual(self.processor.diagnostics.detection_attempts, 0)

    def test_set_screen_size(self):
        """Test that gaze mapping and zones share the new width."""
        self.processor.set_screen_size(1920, 1080)
        self.assertEqual(self.processor.gaze.screen_width, 1920)
        self.assertEqual(self.processor.dispatcher.screen_width, 1920)


if __name__ == '__main__':
    unittest.main()
