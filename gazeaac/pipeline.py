"""
Per-frame pipeline: landmarks -> gaze cursor and blinks -> commands.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from .blink import BlinkClassifier
from .config import Cfg
from .dispatcher import ZoneDispatcher
from .eyes import REFINED_LANDMARK_COUNT
from .gaze import GazeEstimator
from .types import CursorState, FrameResult, LandmarkSet


logger = logging.getLogger(__name__)


@dataclass
class Diagnostics:
    """Detection counters shown in the overlay."""
    detection_attempts: int = 0
    detection_successes: int = 0
    frame_errors: int = 0
    detection_fps: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.detection_attempts == 0:
            return 0.0
        return self.detection_successes / self.detection_attempts


class FrameProcessor:
    """
    Main frame processor that coordinates gaze, blink and zone detection.

    Each component owns its own state; this class only passes the frame's
    landmarks and timestamp through them in order.
    """

    def __init__(self, cfg: Cfg):
        """Initialize frame processor with configuration."""
        self.cfg = cfg
        self.gaze = GazeEstimator(cfg)
        self.blink = BlinkClassifier(cfg.blink)
        self.dispatcher = ZoneDispatcher(cfg)

        self.diagnostics = Diagnostics()
        self.consecutive_errors = 0
        self._detection_times: Deque[float] = deque()

    def should_process(self, frame_index: int) -> bool:
        """True for frames that go to the landmark source (every Nth frame)."""
        every_n = max(1, self.cfg.pipeline.process_every_n_frames)
        return frame_index % every_n == 0

    def set_screen_size(self, width_px: int, height_px: int) -> None:
        self.gaze.set_screen_size(width_px, height_px)
        self.dispatcher.screen_width = width_px

    def record_error(self) -> None:
        """Count a failed frame (also used for landmark source failures)."""
        self.consecutive_errors += 1
        self.diagnostics.frame_errors += 1

    @property
    def needs_recovery(self) -> bool:
        """Too many failing frames in a row; the tracker should be rebuilt."""
        return self.consecutive_errors >= self.cfg.pipeline.max_consecutive_errors

    def process_frame(self, landmarks: Optional[LandmarkSet], t_now: float) -> FrameResult:
        """
        Process one frame's landmarks.

        Args:
            landmarks: FaceMesh landmarks (None if no face detected)
            t_now: Current timestamp in seconds

        Returns:
            FrameResult with cursor, zone, blink events and commands. Errors
            are logged and produce an empty result.
        """
        self.diagnostics.detection_attempts += 1

        if landmarks is not None and len(landmarks) < REFINED_LANDMARK_COUNT:
            logger.debug("Ignoring landmark set without iris points (%d points)", len(landmarks))
            landmarks = None

        try:
            result = self._process(landmarks, t_now)
        except Exception:
            self.record_error()
            logger.exception("Frame processing failed (%d in a row)", self.consecutive_errors)
            return self._empty_result()

        self.consecutive_errors = 0
        if result.face_detected:
            self._record_detection(t_now)
        return result

    def _process(self, landmarks: Optional[LandmarkSet], t_now: float) -> FrameResult:
        cursor = self.gaze.process_frame(landmarks)
        blink_events = self.blink.update(landmarks, t_now)

        commands = []
        navigate = self.dispatcher.update(cursor, t_now)
        if navigate is not None:
            commands.append(navigate)
        commands.extend(self.dispatcher.map_blinks(blink_events))

        return FrameResult(
            cursor=cursor,
            zone=self.dispatcher.current_zone if cursor.visible else None,
            ear=self.blink.last_ear if landmarks is not None else None,
            blink_events=blink_events,
            commands=commands,
            face_detected=landmarks is not None
        )

    def _empty_result(self) -> FrameResult:
        x, y = self.gaze.position if self.gaze.position is not None else (0.0, 0.0)
        return FrameResult(
            cursor=CursorState(x_px=x, y_px=y, visible=False),
            zone=None,
            ear=None,
            blink_events=[],
            commands=[],
            face_detected=False
        )

    def _record_detection(self, t_now: float) -> None:
        self.diagnostics.detection_successes += 1
        self._detection_times.append(t_now)
        while self._detection_times and t_now - self._detection_times[0] > 1.0:
            self._detection_times.popleft()
        self.diagnostics.detection_fps = float(len(self._detection_times))

    def reset(self) -> None:
        """Forget all per-session state (tracking stopped)."""
        self.gaze.reset()
        self.blink.reset()
        self.dispatcher.reset()
        self.consecutive_errors = 0
        self._detection_times.clear()
        self.diagnostics = Diagnostics()
