"""
Gaze and Blink AAC Interaction Core

A Python service that reads webcam frames, detects face and iris landmarks
using MediaPipe, turns gaze excursions and blinks into picker commands, and
builds short spoken sentences from a word picker.
"""

__version__ = "0.1.0"

from .types import (
    BlinkEvent, CommandSinkProto, CursorState, FrameResult, GazeRatio,
    NavigateCommand, ConfirmCommand, BackCommand, SpeakerProto,
)
from .config import load_config, Cfg
from .calibration import CalibrationMatrix, CalibrationSession, fit_calibration_matrix
from .gaze import GazeEstimator
from .blink import BlinkClassifier, AdaptiveEarBaseline
from .dispatcher import ZoneDispatcher, dispatch
from .vocabulary import Vocabulary, WordOption, load_vocabulary
from .selection import SelectionMachine, build_sentence, transition
from .pipeline import FrameProcessor
from .controller_mock import MockController

__all__ = [
    "BlinkEvent",
    "CommandSinkProto",
    "CursorState",
    "FrameResult",
    "GazeRatio",
    "NavigateCommand",
    "ConfirmCommand",
    "BackCommand",
    "SpeakerProto",
    "load_config",
    "Cfg",
    "CalibrationMatrix",
    "CalibrationSession",
    "fit_calibration_matrix",
    "GazeEstimator",
    "BlinkClassifier",
    "AdaptiveEarBaseline",
    "ZoneDispatcher",
    "dispatch",
    "Vocabulary",
    "WordOption",
    "load_vocabulary",
    "SelectionMachine",
    "build_sentence",
    "transition",
    "FrameProcessor",
    "MockController",
]
