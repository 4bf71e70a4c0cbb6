"""
Blink classification from the eye aspect ratio (EAR) signal.
"""
import logging
from collections import deque
from typing import Deque, List, Optional

from .config import BlinkConfig
from .eyes import average_ear
from .types import BlinkEvent, LandmarkSet


logger = logging.getLogger(__name__)


class AdaptiveEarBaseline:
    """
    Self-tuning EAR threshold from a trailing window of open-eye samples.

    Only samples clearly above the current threshold are kept, so closed-eye
    frames never drag the baseline down.
    """

    def __init__(self, cfg: BlinkConfig):
        self.cfg = cfg
        self.threshold: float = cfg.initial_threshold
        self.samples: Deque[float] = deque(maxlen=cfg.history_size)

    def update(self, ear: float) -> float:
        """
        Feed one EAR reading and return the current threshold.
        """
        if not self.cfg.adaptive:
            return self.threshold

        if ear <= self.threshold * self.cfg.open_margin:
            return self.threshold

        self.samples.append(ear)
        if len(self.samples) < self.cfg.min_samples:
            return self.threshold

        average = sum(self.samples) / len(self.samples)
        candidate = average * self.cfg.update_ratio

        keep = self.cfg.threshold_smoothing
        blended = self.threshold * keep + candidate * (1.0 - keep)
        self.threshold = max(self.cfg.threshold_min, min(self.cfg.threshold_max, blended))
        return self.threshold

    def reset(self) -> None:
        self.threshold = self.cfg.initial_threshold
        self.samples.clear()


class BlinkClassifier:
    """
    Turns the per-frame EAR signal into short, long and double blink events.

    Features:
    - Adaptive open-eye baseline (optional)
    - OPEN/CLOSED episode state machine, classified when the eye reopens
    - Over-long closures dropped as tracking noise
    - Short blinks inside a trailing window combined into a double blink
    - State frozen while no face is detected
    """

    def __init__(self, cfg: BlinkConfig):
        """Initialize blink classifier."""
        self.cfg = cfg
        self.baseline = AdaptiveEarBaseline(cfg)

        self.is_closed = False
        self.closed_since: Optional[float] = None
        self.recent_short_blinks: Deque[float] = deque()
        self.ear_history: Deque[float] = deque(maxlen=max(1, cfg.ear_smoothing_window))
        self.last_ear: Optional[float] = None

        self.short_count = 0
        self.long_count = 0
        self.double_count = 0

    @property
    def threshold(self) -> float:
        return self.baseline.threshold

    def update(self, landmarks: Optional[LandmarkSet], t_now: float) -> List[BlinkEvent]:
        """
        Process landmarks for one frame.

        Args:
            landmarks: FaceMesh landmarks (None if no face detected)
            t_now: Current timestamp in seconds

        Returns:
            Blink events that ended on this frame (usually empty)
        """
        if landmarks is None:
            # Freeze: an open episode stays open until the face is back
            return []
        return self.update_ear(average_ear(landmarks), t_now)

    def update_ear(self, raw_ear: float, t_now: float) -> List[BlinkEvent]:
        """Process one EAR reading, see update()."""
        self.ear_history.append(raw_ear)
        ear = sum(self.ear_history) / len(self.ear_history)
        self.last_ear = ear

        threshold = self.baseline.update(ear)

        if ear < threshold:
            if not self.is_closed:
                self.is_closed = True
                self.closed_since = t_now
            return []

        if not self.is_closed:
            return []

        # Eye reopened: classify the finished episode
        duration_ms = (t_now - self.closed_since) * 1000.0
        self.is_closed = False
        self.closed_since = None
        return self._classify(duration_ms, t_now)

    def _classify(self, duration_ms: float, t_now: float) -> List[BlinkEvent]:
        if duration_ms >= self.cfg.max_blink_ms:
            logger.debug("Discarding %.0f ms closure as tracking noise", duration_ms)
            return []

        if duration_ms >= self.cfg.long_blink_ms:
            self.long_count += 1
            return [BlinkEvent(kind="long", timestamp=t_now, duration_ms=duration_ms)]

        self.short_count += 1
        events = [BlinkEvent(kind="short", timestamp=t_now, duration_ms=duration_ms)]

        self.recent_short_blinks.append(t_now)
        window_s = self.cfg.double_blink_window_ms / 1000.0
        while self.recent_short_blinks and t_now - self.recent_short_blinks[0] > window_s:
            self.recent_short_blinks.popleft()

        if len(self.recent_short_blinks) >= self.cfg.double_blink_count:
            self.double_count += 1
            self.recent_short_blinks.clear()
            events.append(BlinkEvent(kind="double", timestamp=t_now, duration_ms=duration_ms))

        return events

    def reset(self) -> None:
        """Clear episode state, counters and the adaptive baseline."""
        self.baseline.reset()
        self.is_closed = False
        self.closed_since = None
        self.recent_short_blinks.clear()
        self.ear_history.clear()
        self.last_ear = None
        self.short_count = 0
        self.long_count = 0
        self.double_count = 0
