"""
GEOTIME Timeline Module - Relative operation clock and playback

The cursor runs over an abstract 0-100 scale that maps linearly onto a
24-hour clock. While playing, a single asyncio task advances the cursor
every TICK_SECONDS and wraps it back to 0 past the end.
"""

import asyncio
import math
from enum import Enum
from typing import Callable, Optional

from logger import setup_logger

logger = setup_logger("timeline")

# Constants
CURSOR_MIN = 0.0
CURSOR_MAX = 100.0
TICK_SECONDS = 0.1
TICK_STEP = 0.1  # cursor units per tick at 1x
ALLOWED_SPEEDS = (1, 5, 20)
SKIP_STEP = 5.0  # rewind / fast-forward buttons


class PlaybackState(Enum):
    PAUSED = "paused"
    PLAYING = "playing"


def clamp_cursor(value: float) -> float:
    """Clamp into [0, 100]. NaN and infinities raise ValueError."""
    if not math.isfinite(value):
        raise ValueError(f"Cursor must be a finite number, got {value}")
    return max(CURSOR_MIN, min(CURSOR_MAX, value))


def cursor_to_hours(cursor: float) -> float:
    return cursor / CURSOR_MAX * 24


def format_clock(cursor: float) -> str:
    """Render the cursor as HH:MM. The end of the scale (100) wraps to 00:00."""
    total_minutes = cursor / CURSOR_MAX * 1440
    hours = math.floor(total_minutes / 60) % 24
    minutes = math.floor(total_minutes % 60)
    return f"{hours:02d}:{minutes:02d}"


class TimelineController:
    """Paused/playing state machine over the timeline cursor."""

    def __init__(self, cursor: float = CURSOR_MIN, speed: int = 1,
                 on_tick: Optional[Callable[[float], None]] = None):
        if speed not in ALLOWED_SPEEDS:
            raise ValueError(f"Speed must be one of {ALLOWED_SPEEDS}, got {speed}")
        self.cursor: float = clamp_cursor(cursor)
        self.speed: int = speed
        self.state: PlaybackState = PlaybackState.PAUSED
        self._on_tick = on_tick
        self._task: Optional[asyncio.Task] = None

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    def set_cursor(self, value: float) -> float:
        """Jump to an explicit cursor value, valid in either state."""
        self.cursor = clamp_cursor(float(value))
        return self.cursor

    def step(self, delta: float) -> float:
        return self.set_cursor(self.cursor + delta)

    def set_speed(self, multiplier: int) -> int:
        if multiplier not in ALLOWED_SPEEDS:
            raise ValueError(f"Speed must be one of {ALLOWED_SPEEDS}, got {multiplier}")
        self.speed = int(multiplier)
        logger.info(f"Playback speed set to {self.speed}x")
        return self.speed

    def tick(self) -> float:
        """Advance one period. No effect while paused."""
        if not self.is_playing:
            return self.cursor
        advanced = self.cursor + TICK_STEP * self.speed
        self.cursor = CURSOR_MIN if advanced > CURSOR_MAX else advanced
        if self._on_tick:
            self._on_tick(self.cursor)
        return self.cursor

    async def play(self):
        """Paused -> Playing; starts the tick task if none is running."""
        if self.is_playing:
            return
        self.state = PlaybackState.PLAYING
        self._task = asyncio.create_task(self._run())
        logger.info(f"Playback started at {format_clock(self.cursor)} ({self.speed}x)")

    async def pause(self):
        """Playing -> Paused; cancels and awaits the tick task."""
        if not self.is_playing:
            return
        self.state = PlaybackState.PAUSED
        await self._cancel_task()
        logger.info(f"Playback paused at {format_clock(self.cursor)}")

    async def shutdown(self):
        self.state = PlaybackState.PAUSED
        await self._cancel_task()

    async def _cancel_task(self):
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self):
        while self.is_playing:
            try:
                await asyncio.sleep(TICK_SECONDS)
                self.tick()
            except asyncio.CancelledError:
                break

    def get_status(self) -> dict:
        return {
            "state": self.state.value,
            "is_playing": self.is_playing,
            "cursor": self.cursor,
            "clock": format_clock(self.cursor),
            "speed": self.speed,
        }
