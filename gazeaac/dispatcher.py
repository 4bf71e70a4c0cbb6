"""
Turns cursor zones and blink events into discrete navigation commands.
"""
import logging
from typing import Dict, List, Optional

from .config import Cfg
from .types import (
    BackCommand, BlinkEvent, Command, CommandSinkProto, ConfirmCommand,
    CursorState, NavigateCommand, Zone,
)
from .zones import zone_for_x


logger = logging.getLogger(__name__)

COMMAND_NAMES = ("confirm", "back", "navigate_left", "navigate_right")


def _command_from_name(name: str) -> Command:
    if name == "confirm":
        return ConfirmCommand()
    if name == "back":
        return BackCommand()
    if name == "navigate_left":
        return NavigateCommand(direction="left")
    if name == "navigate_right":
        return NavigateCommand(direction="right")
    raise ValueError(f"Unknown command binding: {name!r} (expected one of {COMMAND_NAMES})")


class ZoneDispatcher:
    """
    Detects left/right excursions of the cursor and maps blinks to commands.

    Features:
    - Fires only when the cursor returns to center after visiting a side band
    - Cooldown between fired navigations
    - Zone memory untouched on frames without gaze
    - Configurable blink bindings (kind -> command)
    """

    def __init__(self, cfg: Cfg):
        """Initialize zone dispatcher."""
        self.cfg = cfg
        self.screen_width = cfg.screen.width
        self.previous_zone: Zone = "center"
        self.last_fired_at: Optional[float] = None

        self.bindings: Dict[str, Command] = {}
        for kind, name in cfg.dispatcher.bindings.items():
            if name:
                self.bindings[kind] = _command_from_name(name)

    def update(self, cursor: CursorState, t_now: float) -> Optional[NavigateCommand]:
        """
        Process the stabilized cursor for one frame.

        Args:
            cursor: Cursor state from the gaze estimator
            t_now: Current timestamp in seconds

        Returns:
            NavigateCommand when an excursion-and-return completes, None otherwise
        """
        if not cursor.visible:
            return None

        current_zone = zone_for_x(cursor.x_px, self.screen_width, self.cfg.zones.ratios)
        vacated = self.previous_zone
        self.previous_zone = current_zone

        if vacated == "center" or current_zone != "center":
            return None

        cooldown_s = self.cfg.dispatcher.cooldown_ms / 1000.0
        if self.last_fired_at is not None and t_now - self.last_fired_at < cooldown_s:
            logger.debug("Zone return from %s ignored (cooldown)", vacated)
            return None

        self.last_fired_at = t_now
        return NavigateCommand(direction=vacated)

    @property
    def current_zone(self) -> Zone:
        return self.previous_zone

    def map_blinks(self, events: List[BlinkEvent]) -> List[Command]:
        """Translate blink events through the binding table."""
        commands = []
        for event in events:
            command = self.bindings.get(event.kind)
            if command is not None:
                commands.append(command)
        return commands

    def reset(self) -> None:
        self.previous_zone = "center"
        self.last_fired_at = None


async def dispatch(commands: List[Command], sink: CommandSinkProto) -> None:
    """Deliver commands to the sink in order, each one to completion."""
    for command in commands:
        if isinstance(command, NavigateCommand):
            if command.direction == "left":
                await sink.navigate_left()
            else:
                await sink.navigate_right()
        elif isinstance(command, ConfirmCommand):
            await sink.confirm()
        elif isinstance(command, BackCommand):
            await sink.back()
