"""
Face landmark detection using MediaPipe FaceMesh.
"""
import logging
import time
from typing import List, Optional, Tuple

import cv2
import mediapipe as mp
import numpy as np

from .config import MediaPipeConfig
from .eyes import LEFT_EYE_OUTLINE, LEFT_IRIS, RIGHT_EYE_OUTLINE, RIGHT_IRIS
from .types import LandmarkSet


logger = logging.getLogger(__name__)


class TrackingInitError(RuntimeError):
    """The landmark model could not be started; gaze tracking is disabled."""


class FaceMeshTracker:
    """Face landmark tracker using MediaPipe FaceMesh with iris refinement."""

    def __init__(self, max_num_faces: int = 1, refine_landmarks: bool = True,
                 min_detection_conf: float = 0.5, min_tracking_conf: float = 0.5):
        """
        Initialize the face mesh tracker.

        Args:
            max_num_faces: Maximum number of faces to detect
            refine_landmarks: Adds the 10 iris points (478 landmarks total)
            min_detection_conf: Minimum confidence for face detection
            min_tracking_conf: Minimum confidence for landmark tracking
        """
        self.mp_face_mesh = mp.solutions.face_mesh
        self.face_mesh = self.mp_face_mesh.FaceMesh(
            static_image_mode=False,
            max_num_faces=max_num_faces,
            refine_landmarks=refine_landmarks,
            min_detection_confidence=min_detection_conf,
            min_tracking_confidence=min_tracking_conf
        )
        self.closed = False

    def process(self, frame_bgr: np.ndarray) -> Optional[List[Tuple[float, float, float]]]:
        """
        Process a frame and return face landmarks.

        Args:
            frame_bgr: Input frame in BGR format

        Returns:
            List of (x, y, z) coordinates with x, y in [0..1], or None if no face detected
        """
        if self.closed:
            raise RuntimeError("FaceMeshTracker used after close()")

        # Convert BGR to RGB for MediaPipe
        frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        results = self.face_mesh.process(frame_rgb)

        if not results.multi_face_landmarks:
            return None

        face_landmarks = results.multi_face_landmarks[0]
        return [(lm.x, lm.y, lm.z) for lm in face_landmarks.landmark]

    def draw_landmarks(self, frame: np.ndarray, landmarks: LandmarkSet) -> np.ndarray:
        """
        Draw eye outlines and iris points on the frame.

        Args:
            frame: Input frame
            landmarks: FaceMesh landmarks in [0..1] range

        Returns:
            Frame with landmarks drawn
        """
        height, width = frame.shape[:2]

        for outline in (LEFT_EYE_OUTLINE, RIGHT_EYE_OUTLINE):
            points = np.array(
                [(int(landmarks[i][0] * width), int(landmarks[i][1] * height)) for i in outline],
                dtype=np.int32
            )
            cv2.polylines(frame, [points], True, (0, 255, 0), 1)

        if len(landmarks) > max(RIGHT_IRIS):
            for i in LEFT_IRIS + RIGHT_IRIS:
                px = int(landmarks[i][0] * width)
                py = int(landmarks[i][1] * height)
                cv2.circle(frame, (px, py), 2, (0, 255, 255), -1)

        return frame

    def close(self) -> None:
        """Release the MediaPipe graph. No frames may be processed afterwards."""
        if not self.closed:
            self.face_mesh.close()
            self.closed = True


def create_tracker_with_retry(cfg: MediaPipeConfig, sleep=time.sleep) -> FaceMeshTracker:
    """
    Build a FaceMeshTracker, retrying a fixed number of times.

    Raises:
        TrackingInitError: All attempts failed
    """
    attempts = max(1, cfg.init_attempts)
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            tracker = FaceMeshTracker(
                max_num_faces=cfg.max_num_faces,
                refine_landmarks=cfg.refine_landmarks,
                min_detection_conf=cfg.min_detection_confidence,
                min_tracking_conf=cfg.min_tracking_confidence
            )
            if attempt > 1:
                logger.info("FaceMesh started on attempt %d", attempt)
            return tracker
        except Exception as e:
            last_error = e
            logger.warning("FaceMesh init attempt %d/%d failed: %s", attempt, attempts, e)
            if attempt < attempts:
                sleep(cfg.init_backoff_ms / 1000.0)

    raise TrackingInitError(
        f"Face tracking could not be started after {attempts} attempts; reload the app"
    ) from last_error
