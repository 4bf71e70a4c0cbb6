"""
Main application: camera loop, gaze and blink control of the word picker.
"""
import asyncio
import logging
import sys
import time
from typing import List, Optional

import cv2
import numpy as np

from .calibration import CalibrationError, CalibrationSession
from .config import load_config
from .controller_mock import MockController
from .dispatcher import dispatch
from .enhancer import create_enhancer
from .landmarks import FaceMeshTracker, TrackingInitError, create_tracker_with_retry
from .pipeline import FrameProcessor
from .selection import SelectionMachine
from .speech import create_speaker
from .types import CommandSinkProto, FrameResult
from .vocabulary import load_vocabulary
from .zones import zone_edges


logger = logging.getLogger(__name__)

# cv2.waitKeyEx codes differ per GUI backend
LEFT_KEYS = {2424832, 65361, 63234, ord('a')}
RIGHT_KEYS = {2555904, 65363, 63235, ord('d')}
ENTER_KEYS = {13, 10}
BACKSPACE_KEYS = {8, 127, 65288}

WHITE = (255, 255, 255)
GREEN = (0, 255, 0)
RED = (0, 0, 255)
YELLOW = (0, 255, 255)


class AACApp:
    """Main application class for the gaze-controlled word picker."""

    def __init__(self, config_path: Optional[str] = None, vocabulary_path: Optional[str] = None,
                 log_commands: bool = False):
        """Initialize the application with configuration."""
        self.config = load_config(config_path)
        self.vocabulary = load_vocabulary(vocabulary_path)

        self.enhancer = create_enhancer(self.config.enhancement)
        self.speaker = create_speaker(self.config.speech)
        self.machine = SelectionMachine(
            vocabulary=self.vocabulary,
            cfg=self.config.selection,
            enhancer=self.enhancer,
            speaker=self.speaker,
            language=self.config.speech.language,
            enhancement_timeout_s=self.config.enhancement.timeout_ms / 1000.0
        )

        # Choose command sink
        if log_commands:
            self.sink: CommandSinkProto = MockController()
            print("📝 Command log mode - gestures are logged, not applied to the picker")
        else:
            self.sink = self.machine

        self.processor = FrameProcessor(self.config)
        self.tracker: Optional[FaceMeshTracker] = None
        self.cap: Optional[cv2.VideoCapture] = None
        self.calibration: Optional[CalibrationSession] = None

        self.running = False
        self.tracking_enabled = False
        self.status_message = ""
        self.frame_index = 0
        self.last_result: Optional[FrameResult] = None
        self._last_preview = ""

    # ===== TRACKING LIFECYCLE =====

    def start_tracking(self) -> bool:
        """Open the camera and the landmark model. Returns False if tracking is unavailable."""
        self.cap = cv2.VideoCapture(self.config.camera.index)
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.camera.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.camera.height)
        self.cap.set(cv2.CAP_PROP_FPS, self.config.camera.fps)

        if not self.cap.isOpened():
            self.cap.release()
            self.cap = None
            self._disable_tracking(
                f"Camera {self.config.camera.index} unavailable - grant camera permission and restart"
            )
            return False

        try:
            self.tracker = create_tracker_with_retry(self.config.mediapipe)
        except TrackingInitError as e:
            self._disable_tracking(f"{e}")
            return False

        self.tracking_enabled = True
        self.status_message = ""
        return True

    def _disable_tracking(self, message: str) -> None:
        self.release_tracking()
        self.status_message = message
        logger.error("❌ Gaze tracking disabled: %s", message)
        print("⌨️  Keyboard control still works: ←/→ move, Enter select, Backspace back")

    def release_tracking(self) -> None:
        """Release the camera and the landmark model; no more frames are processed."""
        self.tracking_enabled = False
        if self.tracker is not None:
            self.tracker.close()
            self.tracker = None
        if self.cap is not None:
            self.cap.release()
            self.cap = None
        self.processor.reset()

    async def _rebuild_tracker(self) -> None:
        """Last-resort recovery after repeated frame failures. Retries run off the event loop."""
        logger.warning("🔄 %d failing frames in a row, rebuilding face tracker",
                       self.processor.consecutive_errors)
        if self.tracker is not None:
            self.tracker.close()
            self.tracker = None
        self.processor.consecutive_errors = 0

        try:
            self.tracker = await asyncio.to_thread(create_tracker_with_retry, self.config.mediapipe)
        except TrackingInitError as e:
            self._disable_tracking(f"{e}")

    def stop(self) -> None:
        """Halt the frame loop and release camera and tracker."""
        self.running = False
        self.release_tracking()

    # ===== MAIN LOOP =====

    async def run(self):
        """Run the main application loop."""
        print(f"Starting {self.config.display.window_name}")
        print("👀 Gaze control:")
        print("  - Look left/right and back to center = move highlight")
        print("  - Long blink = select, double blink = back")
        print("⌨️  Keys: ←/→ move, Enter select, Backspace back, c calibrate, "
              "space record point, k quick calibrate, r reset calibration")
        print("Press 'q' to quit")

        self.start_tracking()
        self.running = True

        try:
            while self.running:
                frame = await self._next_frame()
                if frame is None:
                    frame = np.zeros((self.config.screen.height, self.config.screen.width, 3), dtype=np.uint8)

                canvas = self._render(frame)
                cv2.imshow(self.config.display.window_name, canvas)

                key = cv2.waitKeyEx(1)
                if key != -1:
                    await self.handle_key(key)

                self._log_preview()

                # Let enhancement, speech and timers make progress
                await asyncio.sleep(0)
        finally:
            self.stop()
            cv2.destroyAllWindows()
            await self.close()

    async def _next_frame(self) -> Optional[np.ndarray]:
        """Read one frame and, on processing frames, run the pipeline and deliver its commands."""
        if not self.tracking_enabled or self.cap is None:
            return None

        ret, frame = self.cap.read()
        if not ret:
            self._disable_tracking("No frames from camera - check the camera connection and reload")
            return None

        frame_index = self.frame_index
        self.frame_index += 1
        if not self.processor.should_process(frame_index):
            return frame

        try:
            landmarks = self.tracker.process(frame)
        except Exception:
            self.processor.record_error()
            logger.exception("Landmark detection failed")
            landmarks = None
        else:
            self.last_result = self.processor.process_frame(landmarks, time.monotonic())
            try:
                await dispatch(self.last_result.commands, self.sink)
            except Exception:
                logger.exception("Command dispatch failed")

        if self.config.display.show_landmarks and landmarks is not None:
            frame = self.tracker.draw_landmarks(frame, landmarks)

        if self.processor.needs_recovery:
            await self._rebuild_tracker()

        return frame

    # ===== KEYBOARD =====

    async def handle_key(self, key: int) -> None:
        """Keyboard fallback for every gesture command, plus calibration controls."""
        if key in LEFT_KEYS:
            await self.sink.navigate_left()
        elif key in RIGHT_KEYS:
            await self.sink.navigate_right()
        elif key in ENTER_KEYS:
            await self.sink.confirm()
        elif key in BACKSPACE_KEYS:
            await self.sink.back()
        elif key == ord('c'):
            self.start_calibration()
        elif key == ord(' '):
            self.record_calibration_point()
        elif key == ord('k'):
            self.quick_calibrate()
        elif key == ord('r'):
            self.processor.gaze.reset_calibration()
            self.calibration = None
            print("↩️  Calibration reset")
        elif key == ord('q'):
            self.running = False

    def start_calibration(self) -> None:
        screen = self.config.screen
        self.calibration = CalibrationSession(self.config.calibration.targets, (screen.width, screen.height))
        print(f"🎯 Calibration: look at each target and press space ({len(self.calibration.targets)} points)")

    def record_calibration_point(self) -> None:
        if self.calibration is None:
            return
        ratio = self.processor.gaze.last_ratio
        if ratio is None:
            print("⚠️  No gaze detected - look at the target and try again")
            return

        try:
            matrix = self.calibration.collect(ratio)
        except CalibrationError as e:
            logger.warning("Calibration failed: %s", e)
            print("❌ Calibration failed - press 'c' to try again")
            self.calibration = None
            return

        if matrix is not None:
            self.processor.gaze.set_calibration(matrix)
            self.calibration = None
            print("✅ Calibration complete")

    def quick_calibrate(self) -> None:
        try:
            self.processor.gaze.quick_calibrate()
        except RuntimeError as e:
            print(f"⚠️  {e}")
            return
        print("✅ Quick calibration applied")

    # ===== DISPLAY =====

    def _render(self, frame: np.ndarray) -> np.ndarray:
        screen = self.config.screen
        canvas = cv2.resize(cv2.flip(frame, 1), (screen.width, screen.height))

        # Zone boundaries
        left_edge, right_edge = zone_edges(screen.width, self.config.zones.ratios)
        for x in (left_edge, right_edge):
            cv2.line(canvas, (int(x), 0), (int(x), screen.height), (80, 80, 80), 1)

        self._draw_options(canvas)

        result = self.last_result
        if self.config.display.show_cursor and result is not None and result.cursor.visible:
            cursor = (int(result.cursor.x_px), int(result.cursor.y_px))
            cv2.circle(canvas, cursor, 12, RED, 2)

        if self.calibration is not None and self.calibration.current_target is not None:
            tx, ty = self.calibration.current_target
            cv2.circle(canvas, (int(tx), int(ty)), 20, YELLOW, 3)
            cv2.putText(canvas, f"Calibration {self.calibration.step + 1}/{len(self.calibration.targets)}",
                        (10, screen.height - 50), cv2.FONT_HERSHEY_SIMPLEX, 0.6, YELLOW, 2)

        self._draw_status(canvas)
        return canvas

    def _draw_options(self, canvas: np.ndarray) -> None:
        # Hershey fonts cannot render Hangul, so options are drawn by id
        options = self.machine.visible_options
        if not options:
            label = "generating..." if self.machine.is_generating else "done - confirm to restart"
            cv2.putText(canvas, label, (10, 140), cv2.FONT_HERSHEY_SIMPLEX, 0.8, GREEN, 2)
            return

        width = self.config.screen.width
        slot = width // len(options)
        highlight = getattr(self.machine.state, "highlight", -1)
        for i, option in enumerate(options):
            x0 = i * slot + 10
            color = GREEN if i == highlight else WHITE
            thickness = 3 if i == highlight else 1
            cv2.rectangle(canvas, (x0, 110), (x0 + slot - 20, 170), color, thickness)
            cv2.putText(canvas, option.id, (x0 + 10, 148), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2)

    def _draw_status(self, canvas: np.ndarray) -> None:
        diag = self.processor.diagnostics
        result = self.last_result

        if not self.tracking_enabled:
            status_text = "Tracking off"
        elif result is None or not result.face_detected:
            status_text = "No face detected"
        else:
            status_text = f"Zone: {result.zone}  EAR: {result.ear:.3f}  thr: {self.processor.blink.threshold:.3f}"

        blink = self.processor.blink
        counters = f"Blinks S:{blink.short_count} L:{blink.long_count} D:{blink.double_count}"
        fps_text = f"Detect {diag.detection_fps:.0f} fps ({diag.success_rate * 100:.0f}%)"

        cv2.putText(canvas, status_text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.6, WHITE, 2)
        cv2.putText(canvas, counters, (10, 60), cv2.FONT_HERSHEY_SIMPLEX, 0.5, WHITE, 1)
        cv2.putText(canvas, fps_text, (10, 85), cv2.FONT_HERSHEY_SIMPLEX, 0.5, WHITE, 1)
        if self.status_message:
            cv2.putText(canvas, self.status_message, (10, canvas.shape[0] - 20),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, RED, 1)

    def _log_preview(self) -> None:
        preview = f"[{self.machine.title}] {self.machine.preview}"
        if preview != self._last_preview:
            self._last_preview = preview
            print(f"💬 {preview}")

    async def close(self) -> None:
        """Cancel pending selection work and close network clients."""
        await self.machine.close()
        close = getattr(self.enhancer, "close", None)
        if close is not None:
            await close()


def parse_args(argv: List[str]) -> dict:
    """Minimal flag parsing: --log-commands, --config PATH, --vocabulary PATH."""
    options = {"log_commands": "--log-commands" in argv, "config_path": None, "vocabulary_path": None}
    for flag, key in (("--config", "config_path"), ("--vocabulary", "vocabulary_path")):
        if flag in argv:
            index = argv.index(flag)
            if index + 1 >= len(argv):
                raise ValueError(f"{flag} needs a path")
            options[key] = argv[index + 1]
    return options


async def main():
    """Entry point for the application."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = None
    try:
        app = AACApp(**parse_args(sys.argv[1:]))
        await app.run()
    except KeyboardInterrupt:
        print("\nApplication interrupted by user")
        if app is not None:
            app.stop()
            await app.close()
    except Exception as e:
        logger.exception("Fatal error")
        print(f"Error: {e}")


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
