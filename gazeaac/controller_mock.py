"""
Mock command sink for testing gesture commands.
"""
import logging
from typing import List


logger = logging.getLogger(__name__)


class MockController:
    """Mock command sink that logs commands instead of driving a picker."""

    def __init__(self):
        """Initialize the mock controller."""
        self.navigate_count = 0
        self.confirm_count = 0
        self.back_count = 0
        self.commands: List[str] = []

    async def navigate_left(self) -> None:
        self._record("navigate_left")
        self.navigate_count += 1

    async def navigate_right(self) -> None:
        self._record("navigate_right")
        self.navigate_count += 1

    async def confirm(self) -> None:
        self._record("confirm")
        self.confirm_count += 1

    async def back(self) -> None:
        self._record("back")
        self.back_count += 1

    def _record(self, name: str) -> None:
        self.commands.append(name)
        logger.info("[MockController] %s (call #%d)", name, len(self.commands))

    def reset_counters(self) -> None:
        """Reset command counters for testing."""
        self.navigate_count = 0
        self.confirm_count = 0
        self.back_count = 0
        self.commands.clear()
