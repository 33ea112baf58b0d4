"""Human-plausible pacing for externally visible actions.

Pure timing policy with no retry logic:

- ``PacingPolicy.wait`` sleeps for a random duration drawn from a task
  kind's range before an action or between page visits.
- ``simulate_typing`` types text character by character at a target
  words-per-minute rate with jitter, occasional typo-and-correction, and
  extra pauses after punctuation and spaces.

Timings are random. Tests assert bounds via
``typing_time_bounds`` rather than exact values, and inject ``sleep`` and
``rng`` to avoid real waiting.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from outreach_core.config import Settings
from outreach_core.domain.errors import ElementNotFound

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
DelayRange = tuple[float, float]


@dataclass
class PacingPolicy:
    """Per-kind delay ranges, in seconds."""

    connect_pre_delay: DelayRange = (30.0, 120.0)
    reply_pre_delay: DelayRange = (10.0, 60.0)
    status_check_gap: DelayRange = (3.0, 8.0)
    extract_gap: DelayRange = (2.0, 4.0)
    settle: DelayRange = (1.0, 3.0)
    sleep: Sleep = asyncio.sleep
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "PacingPolicy":
        return cls(
            connect_pre_delay=tuple(settings.connect_pre_delay),
            reply_pre_delay=tuple(settings.reply_pre_delay),
            status_check_gap=tuple(settings.status_check_gap),
            extract_gap=tuple(settings.extract_gap),
            **overrides,
        )

    async def wait(self, delay_range: Optional[DelayRange]) -> float:
        """Sleep for a duration drawn uniformly from ``delay_range``."""
        if not delay_range:
            return 0.0
        low, high = delay_range
        seconds = self.rng.uniform(low, high)
        await self.sleep(seconds)
        return seconds


@dataclass
class TypingProfile:
    """Character-level typing cadence. Durations in milliseconds."""

    wpm: int = 67
    jitter_ms: float = 100.0
    typo_interval: int = 30
    typo_probability: float = 0.4
    typo_notice_ms: DelayRange = (150.0, 350.0)
    typo_recover_ms: DelayRange = (80.0, 200.0)
    punctuation_pause_ms: DelayRange = (200.0, 500.0)
    space_pause_ms: DelayRange = (60.0, 160.0)
    punctuation: str = ".!?,"

    @property
    def base_delay_ms(self) -> float:
        # A word is five characters
        return 1000.0 / (self.wpm * 5 / 60)

    def is_typo_slot(self, index: int, char: str) -> bool:
        return index > 0 and index % self.typo_interval == 0 and char != " "


async def simulate_typing(
    session: Any,
    descriptor: str,
    text: str,
    profile: Optional[TypingProfile] = None,
    sleep: Sleep = asyncio.sleep,
    rng: Optional[random.Random] = None,
) -> float:
    """Clear the field at ``descriptor`` and type ``text`` into it.

    Returns:
        Total time spent waiting, in seconds.

    Raises:
        ElementNotFound: If the input field is absent.
    """
    profile = profile or TypingProfile()
    rng = rng or random.Random()

    element = await session.find(descriptor)
    if element is None:
        raise ElementNotFound(f"Input {descriptor} not found", target=descriptor)

    await element.triple_click()
    await session.press("Backspace")

    elapsed_ms = 0.0

    async def pause(ms: float) -> None:
        nonlocal elapsed_ms
        elapsed_ms += ms
        await sleep(ms / 1000)

    for index, char in enumerate(text):
        await pause(profile.base_delay_ms + (rng.random() - 0.5) * profile.jitter_ms)

        if profile.is_typo_slot(index, char) and rng.random() < profile.typo_probability:
            wrong = chr(max(32, ord(char) + rng.randint(-1, 1)))
            await session.type_keys(wrong)
            await pause(rng.uniform(*profile.typo_notice_ms))
            await session.press("Backspace")
            await pause(rng.uniform(*profile.typo_recover_ms))

        await session.type_keys(char)

        if char in profile.punctuation:
            await pause(rng.uniform(*profile.punctuation_pause_ms))
        elif char == " ":
            await pause(rng.uniform(*profile.space_pause_ms))

    logger.debug(f"Typed {len(text)} characters in {elapsed_ms / 1000:.1f}s")
    return elapsed_ms / 1000


def typing_time_bounds(text: str, profile: Optional[TypingProfile] = None) -> tuple[float, float]:
    """Minimum and maximum seconds ``simulate_typing`` can wait for ``text``."""
    profile = profile or TypingProfile()
    half_jitter = profile.jitter_ms / 2

    low = len(text) * (profile.base_delay_ms - half_jitter)
    high = len(text) * (profile.base_delay_ms + half_jitter)

    for index, char in enumerate(text):
        if profile.is_typo_slot(index, char):
            high += profile.typo_notice_ms[1] + profile.typo_recover_ms[1]
        if char in profile.punctuation:
            low += profile.punctuation_pause_ms[0]
            high += profile.punctuation_pause_ms[1]
        elif char == " ":
            low += profile.space_pause_ms[0]
            high += profile.space_pause_ms[1]

    return low / 1000, high / 1000
