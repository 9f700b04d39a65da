"""Fixed-delay retry of engine commands."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from docker_cli import CommandResult

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class RetryExecutor:
    """Run a command up to ``attempts`` times, ``delay`` seconds apart."""

    def __init__(self, attempts: int = 3, delay: float = 5, sleep: Sleeper = asyncio.sleep):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.delay = delay
        self.sleep = sleep

    async def run(
        self,
        description: str,
        operation: Callable[[], Awaitable[CommandResult]],
        attempts: Optional[int] = None,
    ) -> bool:
        """
        Args:
            description: Human readable label used in log lines
            operation: Zero-argument coroutine factory, called once per attempt
            attempts: Per-call override of the attempt budget

        Returns:
            True on the first successful attempt, False once every attempt failed
        """
        max_attempts = self.attempts if attempts is None else attempts
        if max_attempts < 1:
            raise ValueError("attempts must be at least 1")
        for attempt in range(1, max_attempts + 1):
            result = await operation()
            if result.output and not result.streamed:
                logger.info("%s", result.output)
            if result.ok:
                return True
            logger.warning(
                "Command failed (attempt %d/%d, exit %s): %s", attempt, max_attempts, result.returncode, description
            )
            if attempt < max_attempts:
                logger.info("Retrying in %s seconds...", self.delay)
                await self.sleep(self.delay)

        logger.error("Command failed after %d attempts: %s", max_attempts, description)
        return False
