"""
Test cases for the application shell: keyboard fallback, calibration controls and the frame loop step.
"""
import threading
import unittest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from gazeaac.controller_mock import MockController
from gazeaac.landmarks import TrackingInitError
from gazeaac.main import AACApp, ENTER_KEYS, LEFT_KEYS, RIGHT_KEYS, BACKSPACE_KEYS, parse_args
from gazeaac.selection import SelectionMachine
from gazeaac.types import GazeRatio
from tests.face_fixtures import make_face


def fake_camera():
    cap = MagicMock()
    cap.read.return_value = (True, np.zeros((480, 640, 3), dtype=np.uint8))
    return cap


class TestParseArgs(unittest.TestCase):
    """Test command line flags."""

    def test_defaults(self):
        self.assertEqual(parse_args([]), {"log_commands": False, "config_path": None, "vocabulary_path": None})

    def test_paths(self):
        options = parse_args(["--log-commands", "--config", "a.yaml", "--vocabulary", "b.yaml"])
        self.assertEqual(options, {"log_commands": True, "config_path": "a.yaml", "vocabulary_path": "b.yaml"})

    def test_missing_path(self):
        with self.assertRaises(ValueError):
            parse_args(["--config"])


class TestAACApp(unittest.IsolatedAsyncioTestCase):
    """Test the app without a real camera or model."""

    async def asyncSetUp(self):
        self.app = AACApp(log_commands=True)

    async def asyncTearDown(self):
        await self.app.close()

    async def test_sink_selection(self):
        """Test that the picker is the sink unless commands are only logged."""
        self.assertIsInstance(self.app.sink, MockController)
        app = AACApp()
        self.assertIsInstance(app.sink, SelectionMachine)
        await app.close()

    async def test_keyboard_commands(self):
        """Test that every gesture command has a key."""
        for key in (min(LEFT_KEYS), min(RIGHT_KEYS), min(ENTER_KEYS), min(BACKSPACE_KEYS)):
            await self.app.handle_key(key)
        self.assertEqual(self.app.sink.commands, ["navigate_left", "navigate_right", "confirm", "back"])

        await self.app.handle_key(ord('q'))
        self.assertFalse(self.app.running)

    async def test_keyboard_drives_picker(self):
        """Test that keys reach the picker when it is the sink."""
        app = AACApp()
        await app.handle_key(min(RIGHT_KEYS))
        await app.handle_key(min(ENTER_KEYS))
        self.assertEqual(app.machine.state.choices.category, "emotion")
        await app.close()

    async def test_calibration_keys(self):
        """Test the five-point flow driven by the keyboard."""
        await self.app.handle_key(ord(' '))
        self.assertIsNone(self.app.calibration)

        await self.app.handle_key(ord('c'))
        self.assertIsNotNone(self.app.calibration)

        for fx, fy in self.app.config.calibration.targets:
            self.app.processor.gaze.last_ratio = GazeRatio(0.3 + 0.4 * fx, 0.35 + 0.3 * fy)
            await self.app.handle_key(ord(' '))

        self.assertIsNone(self.app.calibration)
        self.assertIsNotNone(self.app.processor.gaze.calibration)

        await self.app.handle_key(ord('r'))
        self.assertIsNone(self.app.processor.gaze.calibration)

    async def test_degenerate_calibration_is_discarded(self):
        """Test that an unsolvable fit ends the session without a matrix."""
        self.app.start_calibration()
        for _ in self.app.config.calibration.targets:
            self.app.processor.gaze.last_ratio = GazeRatio(0.5, 0.5)
            self.app.record_calibration_point()

        self.assertIsNone(self.app.calibration)
        self.assertIsNone(self.app.processor.gaze.calibration)

    async def test_quick_calibrate_key(self):
        """Test that quick calibration needs a cursor."""
        await self.app.handle_key(ord('k'))
        self.assertEqual(self.app.processor.gaze.offset_x, 0.0)

        self.app.processor.process_frame(make_face(0.75, 0.5), 0.0)
        await self.app.handle_key(ord('k'))
        self.assertNotEqual(self.app.processor.gaze.offset_x, 0.0)

    async def test_next_frame_skips_and_dispatches(self):
        """Test that only every Nth frame reaches the landmark source."""
        self.app.cap = fake_camera()
        self.app.tracker = MagicMock()
        self.app.tracker.process.return_value = make_face()
        self.app.tracker.draw_landmarks.side_effect = lambda frame, landmarks: frame
        self.app.tracking_enabled = True

        for _ in range(4):
            frame = await self.app._next_frame()
            self.assertIsNotNone(frame)

        self.assertEqual(self.app.tracker.process.call_count, 2)
        self.assertTrue(self.app.last_result.face_detected)

    async def test_camera_failure_disables_tracking(self):
        """Test that a dead camera turns tracking off and keeps the app usable."""
        self.app.cap = MagicMock()
        self.app.cap.read.return_value = (False, None)
        tracker = MagicMock()
        self.app.tracker = tracker
        self.app.tracking_enabled = True

        self.assertIsNone(await self.app._next_frame())
        self.assertFalse(self.app.tracking_enabled)
        tracker.close.assert_called_once()
        self.assertTrue(self.app.status_message)

        # Keyboard still reaches the sink
        await self.app.handle_key(min(ENTER_KEYS))
        self.assertEqual(self.app.sink.commands, ["confirm"])

    async def test_landmark_errors_trigger_rebuild(self):
        """Test the last-resort tracker rebuild after repeated failures."""
        self.app.config.pipeline.process_every_n_frames = 1
        self.app.cap = fake_camera()
        broken = MagicMock()
        broken.process.side_effect = RuntimeError("graph failed")
        self.app.tracker = broken
        self.app.tracking_enabled = True

        replacement = MagicMock()
        replacement.process.return_value = None
        limit = self.app.config.pipeline.max_consecutive_errors

        with patch("gazeaac.main.create_tracker_with_retry", return_value=replacement) as factory:
            with self.assertLogs("gazeaac.main", level="ERROR"):
                for _ in range(limit):
                    await self.app._next_frame()

        factory.assert_called_once()
        broken.close.assert_called_once()
        self.assertIs(self.app.tracker, replacement)
        self.assertEqual(self.app.processor.consecutive_errors, 0)

    async def test_rebuild_runs_off_event_loop(self):
        """Test that retry backoff during a rebuild does not block the loop thread."""
        loop_thread = threading.get_ident()
        threads = []

        def build(cfg):
            threads.append(threading.get_ident())
            return MagicMock()

        self.app.tracker = MagicMock()
        self.app.tracking_enabled = True
        with patch("gazeaac.main.create_tracker_with_retry", side_effect=build):
            await self.app._rebuild_tracker()

        self.assertEqual(len(threads), 1)
        self.assertNotEqual(threads[0], loop_thread)
        self.assertIsNotNone(self.app.tracker)

    async def test_failed_rebuild_disables_tracking(self):
        self.app.tracker = MagicMock()
        self.app.tracking_enabled = True
        with patch("gazeaac.main.create_tracker_with_retry", side_effect=TrackingInitError("reload")):
            await self.app._rebuild_tracker()

        self.assertIsNone(self.app.tracker)
        self.assertFalse(self.app.tracking_enabled)
        self.assertEqual(self.app.status_message, "reload")

    async def test_sink_error_contained_per_frame(self):
        """Test that a failing command sink does not end the frame loop."""
        self.app.config.pipeline.process_every_n_frames = 1
        self.app.cap = fake_camera()
        self.app.tracker = MagicMock()
        self.app.tracker.process.return_value = make_face()
        self.app.tracker.draw_landmarks.side_effect = lambda frame, landmarks: frame
        self.app.tracking_enabled = True

        with patch("gazeaac.main.dispatch", AsyncMock(side_effect=RuntimeError("sink broke"))):
            with self.assertLogs("gazeaac.main", level="ERROR"):
                frame = await self.app._next_frame()
            self.assertIsNotNone(frame)
            self.assertIsNotNone(await self.app._next_frame())

        self.assertTrue(self.app.tracking_enabled)
        self.assertTrue(self.app.last_result.face_detected)
        self.assertEqual(self.app.processor.consecutive_errors, 0)

    async def test_start_tracking_without_camera(self):
        """Test the actionable message when the camera cannot be opened."""
        cap = MagicMock()
        cap.isOpened.return_value = False
        with patch("gazeaac.main.cv2.VideoCapture", return_value=cap):
            self.assertFalse(self.app.start_tracking())

        self.assertFalse(self.app.tracking_enabled)
        self.assertIn("camera permission", self.app.status_message)

    async def test_start_tracking_model_failure(self):
        """Test that a fatal model error disables tracking and releases the camera."""
        cap = MagicMock()
        cap.isOpened.return_value = True
        with patch("gazeaac.main.cv2.VideoCapture", return_value=cap), \
                patch("gazeaac.main.create_tracker_with_retry", side_effect=TrackingInitError("reload")):
            self.assertFalse(self.app.start_tracking())

        cap.release.assert_called()
        self.assertIsNone(self.app.cap)
        self.assertFalse(self.app.tracking_enabled)

    async def test_stop_releases_resources(self):
        """Test that stop releases camera and tracker and no frame is processed afterwards."""
        cap = fake_camera()
        tracker = MagicMock()
        self.app.cap = cap
        self.app.tracker = tracker
        self.app.tracking_enabled = True
        self.app.running = True

        self.app.stop()

        self.assertFalse(self.app.running)
        cap.release.assert_called_once()
        tracker.close.assert_called_once()
        self.assertIsNone(await self.app._next_frame())
        tracker.process.assert_not_called()


if __name__ == '__main__':
    unittest.main()
