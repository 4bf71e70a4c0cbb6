"""
Gaze-to-screen calibration: affine fit from user-confirmed correspondences.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .types import GazeRatio


logger = logging.getLogger(__name__)

MIN_CALIBRATION_POINTS = 3


class CalibrationError(ValueError):
    """Raised when the collected points cannot produce a transform."""


@dataclass
class CalibrationPoint:
    """One (gaze ratio -> screen point) correspondence."""
    gaze_x: float
    gaze_y: float
    screen_x: float
    screen_y: float


@dataclass
class CalibrationMatrix:
    """
    Affine transform from averaged gaze ratio to screen pixels.

        screen_x = a * gx + b * gy + tx
        screen_y = c * gx + d * gy + ty
    """
    a: float
    b: float
    c: float
    d: float
    tx: float
    ty: float

    def apply(self, ratio: GazeRatio) -> Tuple[float, float]:
        """Map a gaze ratio to screen coordinates."""
        screen_x = self.a * ratio.x + self.b * ratio.y + self.tx
        screen_y = self.c * ratio.x + self.d * ratio.y + self.ty
        return screen_x, screen_y


def fit_calibration_matrix(points: Sequence[CalibrationPoint]) -> CalibrationMatrix:
    """
    Least-squares affine fit of screen points against gaze ratios.

    Args:
        points: At least three correspondences

    Returns:
        Fitted CalibrationMatrix

    Raises:
        CalibrationError: Too few points or the gaze samples are collinear
    """
    if len(points) < MIN_CALIBRATION_POINTS:
        raise CalibrationError(
            f"Need at least {MIN_CALIBRATION_POINTS} calibration points, got {len(points)}"
        )

    src = np.array([[p.gaze_x, p.gaze_y, 1.0] for p in points], dtype=np.float64)
    dst = np.array([[p.screen_x, p.screen_y] for p in points], dtype=np.float64)

    # Nx3 design matrix must have full column rank
    if np.linalg.matrix_rank(src) < 3:
        raise CalibrationError("Gaze samples are degenerate (all on one line)")

    a_x, _, _, _ = np.linalg.lstsq(src, dst[:, 0], rcond=None)
    a_y, _, _, _ = np.linalg.lstsq(src, dst[:, 1], rcond=None)

    return CalibrationMatrix(
        a=float(a_x[0]), b=float(a_x[1]), tx=float(a_x[2]),
        c=float(a_y[0]), d=float(a_y[1]), ty=float(a_y[2])
    )


class CalibrationSession:
    """
    Explicit calibration flow: look at each target and confirm.

    Targets are given as fractions of the screen and converted to pixels.
    After the last target the matrix is fitted and returned by collect().
    """

    def __init__(self, targets: Sequence[Tuple[float, float]], screen_wh: Tuple[int, int]):
        if len(targets) < MIN_CALIBRATION_POINTS:
            raise CalibrationError(
                f"Need at least {MIN_CALIBRATION_POINTS} calibration targets, got {len(targets)}"
            )
        width, height = screen_wh
        self.targets: List[Tuple[float, float]] = [(fx * width, fy * height) for fx, fy in targets]
        self.points: List[CalibrationPoint] = []

    @property
    def step(self) -> int:
        """Index of the target the user should look at now."""
        return len(self.points)

    @property
    def done(self) -> bool:
        return len(self.points) >= len(self.targets)

    @property
    def current_target(self) -> Optional[Tuple[float, float]]:
        if self.done:
            return None
        return self.targets[self.step]

    def collect(self, ratio: GazeRatio) -> Optional[CalibrationMatrix]:
        """
        Record the current gaze ratio for the current target.

        Returns:
            The fitted matrix once every target has a sample, None before
        """
        if self.done:
            raise CalibrationError("Calibration already complete")

        target_x, target_y = self.targets[self.step]
        self.points.append(CalibrationPoint(
            gaze_x=ratio.x, gaze_y=ratio.y,
            screen_x=target_x, screen_y=target_y
        ))
        logger.info("Calibration point %d/%d collected", len(self.points), len(self.targets))

        if not self.done:
            return None
        return fit_calibration_matrix(self.points)
