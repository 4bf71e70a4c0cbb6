"""
Eye geometry on MediaPipe FaceMesh landmarks: iris centers, gaze ratios and EAR.
"""
import math
from typing import Sequence, Tuple

from .types import GazeRatio, LandmarkSet


# Iris points, only present with refine_landmarks=True
LEFT_IRIS = [468, 469, 470, 471, 472]
RIGHT_IRIS = [473, 474, 475, 476, 477]

# Eye box: outer corner, inner corner, upper lid, lower lid
LEFT_EYE_BOUNDS = (33, 133, 159, 145)
RIGHT_EYE_BOUNDS = (263, 362, 386, 374)

# EAR points: (v1 top, v1 bottom, h outer, h inner, v2 top, v2 bottom)
LEFT_EYE_EAR = (159, 145, 33, 133, 158, 153)
RIGHT_EYE_EAR = (386, 374, 263, 362, 385, 380)

# Outlines, used only for drawing
LEFT_EYE_OUTLINE = [33, 7, 163, 144, 145, 153, 154, 155, 133, 173, 157, 158, 159, 160, 161, 246]
RIGHT_EYE_OUTLINE = [362, 382, 381, 380, 374, 373, 390, 249, 263, 466, 388, 387, 386, 385, 384, 398]

REFINED_LANDMARK_COUNT = 478


def distance(p1: Sequence[float], p2: Sequence[float]) -> float:
    """2D Euclidean distance between two landmarks."""
    return math.hypot(p1[0] - p2[0], p1[1] - p2[1])


def iris_center(landmarks: LandmarkSet, iris_indices: Sequence[int]) -> Tuple[float, float]:
    """
    Calculate the center of an iris as the mean of its points.

    Args:
        landmarks: FaceMesh landmark set
        iris_indices: Indices of the iris points of one eye

    Returns:
        (x, y) coordinates of the iris center in [0..1] range
    """
    x_sum = sum(landmarks[i][0] for i in iris_indices)
    y_sum = sum(landmarks[i][1] for i in iris_indices)

    return (x_sum / len(iris_indices), y_sum / len(iris_indices))


def iris_ratio(iris: Tuple[float, float], landmarks: LandmarkSet,
               bounds: Tuple[int, int, int, int], scale: float = 0.8,
               ratio_min: float = 0.1, ratio_max: float = 0.9) -> GazeRatio:
    """
    Position of the iris inside the eye box, 0.5 meaning centered.

    Args:
        iris: Iris center from iris_center()
        landmarks: FaceMesh landmark set
        bounds: Outer corner, inner corner, upper lid and lower lid indices
        scale: Fraction of the eye size that maps to the full ratio range
        ratio_min: Lower clamp for both axes
        ratio_max: Upper clamp for both axes

    Returns:
        GazeRatio with both components clamped to [ratio_min, ratio_max]
    """
    outer, inner, top, bottom = (landmarks[i] for i in bounds)

    eye_width = abs(outer[0] - inner[0])
    if eye_width <= 0:
        return GazeRatio(x=0.5, y=0.5)

    eye_height = abs(top[1] - bottom[1])
    if eye_height <= 0:
        # Lid closed, fall back to a nominal eye shape
        eye_height = eye_width * 0.5

    eye_center_x = (outer[0] + inner[0]) / 2
    eye_center_y = (top[1] + bottom[1]) / 2

    ratio_x = 0.5 + (iris[0] - eye_center_x) / (eye_width * scale)
    ratio_y = 0.5 + (iris[1] - eye_center_y) / (eye_height * scale)

    return GazeRatio(
        x=max(ratio_min, min(ratio_max, ratio_x)),
        y=max(ratio_min, min(ratio_max, ratio_y))
    )


def average_gaze_ratio(landmarks: LandmarkSet, scale: float = 0.8,
                       ratio_min: float = 0.1, ratio_max: float = 0.9) -> GazeRatio:
    """
    Gaze ratio of both eyes averaged into one.

    Args:
        landmarks: FaceMesh landmark set with iris points

    Returns:
        Averaged GazeRatio
    """
    left = iris_ratio(iris_center(landmarks, LEFT_IRIS), landmarks, LEFT_EYE_BOUNDS,
                      scale, ratio_min, ratio_max)
    right = iris_ratio(iris_center(landmarks, RIGHT_IRIS), landmarks, RIGHT_EYE_BOUNDS,
                       scale, ratio_min, ratio_max)

    return GazeRatio(x=(left.x + right.x) / 2, y=(left.y + right.y) / 2)


def eye_aspect_ratio(landmarks: LandmarkSet, ear_indices: Tuple[int, ...]) -> float:
    """
    Eye aspect ratio of one eye: (|v1| + |v2|) / (2 * |h|).

    Args:
        landmarks: FaceMesh landmark set
        ear_indices: Six indices, see LEFT_EYE_EAR

    Returns:
        EAR value, 0.0 when the horizontal distance is degenerate
    """
    v1_top, v1_bottom, h_outer, h_inner, v2_top, v2_bottom = ear_indices

    v1 = distance(landmarks[v1_top], landmarks[v1_bottom])
    v2 = distance(landmarks[v2_top], landmarks[v2_bottom])
    h = distance(landmarks[h_outer], landmarks[h_inner])

    if h <= 0:
        return 0.0
    return (v1 + v2) / (2.0 * h)


def average_ear(landmarks: LandmarkSet) -> float:
    """Average EAR of both eyes."""
    left = eye_aspect_ratio(landmarks, LEFT_EYE_EAR)
    right = eye_aspect_ratio(landmarks, RIGHT_EYE_EAR)
    return (left + right) / 2.0
