"""
Gaze estimation: iris ratios mapped to a stabilized on-screen cursor.
"""
import logging
from typing import Optional, Tuple

from .calibration import CalibrationMatrix
from .config import Cfg
from .eyes import average_gaze_ratio
from .types import CursorState, GazeRatio, LandmarkSet
from .zones import zone_centers


logger = logging.getLogger(__name__)


class GazeEstimator:
    """
    Converts FaceMesh landmarks into a stabilized cursor position.

    Features:
    - Averaged iris ratio of both eyes
    - Default mirrored linear mapping or a fitted calibration matrix
    - Edge clamping, lower-half restriction or zone gravity
    - Per-frame jump limit followed by exponential smoothing
    - Position held unchanged on frames without a face
    """

    def __init__(self, cfg: Cfg):
        """Initialize gaze estimator."""
        self.cfg = cfg
        self.screen_width = cfg.screen.width
        self.screen_height = cfg.screen.height

        self.position: Optional[Tuple[float, float]] = None
        self.last_ratio: Optional[GazeRatio] = None

        # Calibration state, discarded by reset_calibration()
        self.calibration: Optional[CalibrationMatrix] = None
        self.offset_x = 0.0
        self.offset_y = 0.0

    def set_screen_size(self, width_px: int, height_px: int) -> None:
        """Resize the interaction surface."""
        self.screen_width = width_px
        self.screen_height = height_px

    def process_frame(self, landmarks: Optional[LandmarkSet]) -> CursorState:
        """
        Update the cursor from one frame.

        Args:
            landmarks: FaceMesh landmarks (None if no face detected)

        Returns:
            CursorState; visible is False when no face was found
        """
        if landmarks is None:
            x, y = self.position if self.position is not None else (0.0, 0.0)
            return CursorState(x_px=x, y_px=y, visible=False)

        gaze_cfg = self.cfg.gaze
        ratio = average_gaze_ratio(
            landmarks,
            scale=gaze_cfg.ratio_scale,
            ratio_min=gaze_cfg.ratio_min,
            ratio_max=gaze_cfg.ratio_max
        )
        self.last_ratio = ratio

        target_x, target_y = self.map_to_screen(ratio)
        target_x, target_y = self.clamp_to_screen(target_x, target_y)
        if gaze_cfg.gravity.enabled:
            target_x = self.apply_gravity(target_x)

        x, y = self.stabilize(target_x, target_y)
        return CursorState(x_px=x, y_px=y, visible=True, ratio=ratio)

    def map_to_screen(self, ratio: GazeRatio) -> Tuple[float, float]:
        """Raw screen position for a gaze ratio, before clamping."""
        if self.calibration is not None:
            return self.calibration.apply(ratio)

        gaze_cfg = self.cfg.gaze
        normalized_x = 1.0 - ratio.x if gaze_cfg.mirror_x else ratio.x
        normalized_y = ratio.y

        adjusted_x = normalized_x + self.offset_x
        adjusted_y = normalized_y + self.offset_y

        screen_x = self.screen_width * ((adjusted_x - 0.5) * gaze_cfg.sensitivity_x + 0.5)
        screen_y = self.screen_height * ((adjusted_y - 0.5) * gaze_cfg.sensitivity_y + 0.5)
        return screen_x, screen_y

    def clamp_to_screen(self, x: float, y: float) -> Tuple[float, float]:
        """Keep the point inside the margin; lower half only unless gravity is on."""
        margin = self.cfg.gaze.edge_margin_px
        x = max(margin, min(self.screen_width - margin, x))

        if self.cfg.gaze.gravity.enabled:
            min_y = margin
        else:
            min_y = self.screen_height / 2
        y = max(min_y, min(self.screen_height - margin, y))
        return x, y

    def apply_gravity(self, x: float) -> float:
        """Pull x toward the nearest zone center when inside the gravity radius."""
        gravity = self.cfg.gaze.gravity
        if gravity.radius_px <= 0:
            return x

        centers = zone_centers(self.screen_width, self.cfg.zones.ratios)
        nearest = min(centers, key=lambda c: abs(c - x))
        dist = abs(nearest - x)
        if dist >= gravity.radius_px:
            return x

        # Closer to the center means a stronger pull
        pull = gravity.strength * (1.0 - dist / gravity.radius_px)
        return x + (nearest - x) * pull

    def stabilize(self, target_x: float, target_y: float) -> Tuple[float, float]:
        """Jump-limit the target against the current position, then smooth toward it."""
        if self.position is None:
            self.position = (target_x, target_y)
            return self.position

        max_step = self.cfg.gaze.max_position_change_px
        alpha = self.cfg.gaze.smoothing_factor
        current_x, current_y = self.position

        dx = max(-max_step, min(max_step, target_x - current_x))
        dy = max(-max_step, min(max_step, target_y - current_y))

        self.position = (current_x + dx * alpha, current_y + dy * alpha)
        return self.position

    def set_calibration(self, matrix: Optional[CalibrationMatrix]) -> None:
        """Install (or clear) a fitted calibration matrix."""
        self.calibration = matrix
        if matrix is not None:
            logger.info("Calibration matrix active: %s", matrix)

    def quick_calibrate(self) -> Tuple[float, float]:
        """
        One-point correction: shift the default mapping so the current
        cursor moves toward the screen center.

        Returns:
            The new (offset_x, offset_y)
        """
        if self.position is None:
            raise RuntimeError("Quick calibration needs an active gaze cursor")

        current_x, current_y = self.position
        center_x = self.screen_width / 2
        center_y = self.screen_height / 2

        self.offset_x = (center_x - current_x) / self.screen_width * 0.5
        self.offset_y = (center_y - current_y) / self.screen_height * 0.5
        logger.info("Quick calibration offsets: (%.3f, %.3f)", self.offset_x, self.offset_y)
        return self.offset_x, self.offset_y

    def reset_calibration(self) -> None:
        """Drop the calibration matrix and quick offsets."""
        self.calibration = None
        self.offset_x = 0.0
        self.offset_y = 0.0

    def reset(self) -> None:
        """Forget the cursor and all calibration (tracking stopped)."""
        self.position = None
        self.last_ratio = None
        self.reset_calibration()
