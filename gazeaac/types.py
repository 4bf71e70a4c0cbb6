"""
Type definitions for the gaze and blink interaction core.
"""
from dataclasses import dataclass
from typing import List, Literal, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable


# One FaceMesh point: normalized x, y in [0..1] and relative depth z
Point = Tuple[float, float, float]
LandmarkSet = Sequence[Point]

Zone = Literal["left", "center", "right"]
BlinkKind = Literal["short", "long", "double"]


@dataclass
class GazeRatio:
    """Iris displacement inside the eye box, 0.5 is centered."""
    x: float
    y: float


@dataclass
class CursorState:
    """Stabilized on-screen gaze cursor for one frame."""
    x_px: float
    y_px: float
    visible: bool  # False when no face was found this frame
    ratio: Optional[GazeRatio] = None


@dataclass
class BlinkEvent:
    """A classified blink episode (or a double blink derived from two shorts)."""
    kind: BlinkKind
    timestamp: float  # seconds, end of the episode
    duration_ms: float


@dataclass
class NavigateCommand:
    """Command to move the highlighted option in a direction."""
    direction: Literal["left", "right"]


@dataclass
class ConfirmCommand:
    """Command to select the highlighted option."""


@dataclass
class BackCommand:
    """Command to step back one level."""


Command = Union[NavigateCommand, ConfirmCommand, BackCommand]


@dataclass
class FrameResult:
    """Everything the interaction core derived from one frame."""
    cursor: CursorState
    zone: Optional[Zone]
    ear: Optional[float]
    blink_events: List[BlinkEvent]
    commands: List[Command]
    face_detected: bool


@runtime_checkable
class CommandSinkProto(Protocol):
    """Abstract protocol for consumers of the gesture command surface."""

    async def navigate_left(self) -> None:
        """Move the highlight one option to the left."""
        ...

    async def navigate_right(self) -> None:
        """Move the highlight one option to the right."""
        ...

    async def confirm(self) -> None:
        """Select the highlighted option."""
        ...

    async def back(self) -> None:
        """Step back one level."""
        ...


@runtime_checkable
class SpeakerProto(Protocol):
    """Abstract protocol for speech output."""

    async def speak(self, text: str, language: str) -> None:
        """Speak the finished sentence."""
        ...
