"""
Time-based animation drivers: ripple reveal and year counter.

Each driver is a small state object plus pure interpolation math, advanced
by AnimationClock.tick(now). Drivers hold no game authority; bind_to_store()
starts and finishes them from the store's loading / result signals.

Year counter phases:
    pending   - creeps toward the target, never reaching it, for as long as
                the generator takes
    finishing - fixed-length ease from wherever it got to onto the exact
                target once the authoritative result lands
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from config import AnimationSettings, get_settings
from src.simulation_layer.epochs import get_epoch, is_terminal
from src.simulation_layer.geo import cities_within
from src.simulation_layer.models import City, GeoPoint


Clock = Callable[[], float]


def ease_out_quad(t: float) -> float:
    t = min(max(t, 0.0), 1.0)
    return 1 - (1 - t) * (1 - t)


def ease_out_cubic(t: float) -> float:
    t = min(max(t, 0.0), 1.0)
    return 1 - (1 - t) ** 3


def pending_fraction(elapsed: float, time_constant: float, max_fraction: float) -> float:
    """Asymptotic progress in [0, max_fraction), max_fraction < 1."""
    if elapsed <= 0:
        return 0.0
    return max_fraction * (1 - math.exp(-elapsed / time_constant))


@dataclass
class RippleState:
    center: Optional[GeoPoint] = None
    start_time: float = 0.0
    duration: float = 5.0
    progress: float = 1.0


class RippleDriver:
    """Radial reveal from an intervention point. progress 0 -> 1 (1 = fully revealed)."""

    def __init__(self, duration: float = 5.0):
        self.state = RippleState(duration=duration)

    @property
    def active(self) -> bool:
        return self.state.center is not None

    @property
    def progress(self) -> float:
        return self.state.progress

    def start(self, center: GeoPoint, now: float) -> None:
        self.state = RippleState(center=center, start_time=now, duration=self.state.duration, progress=0.0)

    def tick(self, now: float) -> float:
        if self.state.center is None:
            return self.state.progress
        elapsed = now - self.state.start_time
        linear = elapsed / self.state.duration if self.state.duration > 0 else 1.0
        self.state.progress = ease_out_quad(linear)
        if linear >= 1:
            self.complete()
        return self.state.progress

    def complete(self) -> None:
        self.state = RippleState(duration=self.state.duration, progress=1.0)

    def radius(self) -> float:
        """Revealed angular radius in degrees (180 = whole globe)."""
        return self.state.progress * 180.0

    def visible_cities(self, cities: Iterable[City]) -> List[City]:
        if self.state.center is None or self.state.progress >= 1:
            return list(cities)
        radius = self.radius()
        return cities_within(cities, self.state.center, radius)


IDLE = "idle"
PENDING = "pending"
FINISHING = "finishing"


@dataclass
class YearCounterState:
    mode: str = IDLE
    start_year: int = 0
    target_year: int = 0
    start_time: float = 0.0
    finish_from: float = 0.0
    finish_time: float = 0.0
    display: int = 0


class YearCounterDriver:

    def __init__(
        self,
        time_constant: float = 4.0,
        max_fraction: float = 0.95,
        finish_duration: float = 1.0,
    ):
        if not 0 < max_fraction < 1:
            raise ValueError("max_fraction must be in (0, 1)")
        self.time_constant = time_constant
        self.max_fraction = max_fraction
        self.finish_duration = finish_duration
        self.state = YearCounterState()

    @property
    def display_year(self) -> int:
        return self.state.display

    @property
    def mode(self) -> str:
        return self.state.mode

    def show(self, year: int) -> None:
        """Jump to year with no animation."""
        self.state = YearCounterState(start_year=year, target_year=year, display=year)

    def start(self, start_year: int, target_year: int, now: float) -> None:
        self.state = YearCounterState(
            mode=PENDING,
            start_year=start_year,
            target_year=target_year,
            start_time=now,
            display=start_year,
        )

    def arrive(self, now: float) -> None:
        """Authoritative result landed: switch to the fast finishing phase."""
        if self.state.mode != PENDING:
            return
        self.state.finish_from = self._pending_value(now)
        self.state.finish_time = now
        self.state.mode = FINISHING

    def _pending_value(self, now: float) -> float:
        s = self.state
        fraction = pending_fraction(now - s.start_time, self.time_constant, self.max_fraction)
        return s.start_year + (s.target_year - s.start_year) * fraction

    def tick(self, now: float) -> int:
        s = self.state
        if s.mode == PENDING:
            year = int(round(self._pending_value(now)))
            if year == s.target_year and s.target_year != s.start_year:
                # rounding must not show the target before it is real
                year -= 1 if s.target_year > s.start_year else -1
            s.display = year
        elif s.mode == FINISHING:
            t = (now - s.finish_time) / self.finish_duration if self.finish_duration > 0 else 1.0
            if t >= 1:
                s.display = s.target_year
                s.mode = IDLE
            else:
                eased = ease_out_cubic(t)
                s.display = int(round(s.finish_from + (s.target_year - s.finish_from) * eased))
        return s.display


class AnimationClock:
    """Drives registered drivers from one time source."""

    def __init__(self, clock: Clock = time.monotonic, frame_rate: int = 60):
        self.clock = clock
        self.frame_rate = frame_rate
        self.drivers: list = []

    def add(self, driver) -> None:
        self.drivers.append(driver)

    def now(self) -> float:
        return self.clock()

    def tick(self, now: Optional[float] = None) -> float:
        now = self.clock() if now is None else now
        for driver in self.drivers:
            driver.tick(now)
        return now

    async def run(self, stop: asyncio.Event) -> None:
        """Tick at frame_rate until stop is set."""
        interval = 1.0 / self.frame_rate
        while not stop.is_set():
            self.tick()
            await asyncio.sleep(interval)


def create_drivers(settings: Optional[AnimationSettings] = None):
    settings = settings or get_settings().animation
    ripple = RippleDriver(duration=settings.ripple_duration)
    year = YearCounterDriver(
        time_constant=settings.year_time_constant,
        max_fraction=settings.year_max_fraction,
        finish_duration=settings.year_finish_duration,
    )
    return ripple, year


def bind_to_store(store, clock: AnimationClock, ripple: RippleDriver, year: YearCounterDriver):
    """
    Start drivers when the store begins loading, finish them when it stops.

    Returns the unsubscribe callable.
    """
    state = {"loading": store.loading, "generation": store.generation}
    if store.world_state is not None:
        year.show(store.world_state.year)

    def on_change(s) -> None:
        was_loading = state["loading"]
        generation_changed = s.generation != state["generation"]
        state["loading"] = s.loading
        state["generation"] = s.generation
        now = clock.now()

        if s.loading and not was_loading:
            if s.pending_target is not None:
                ripple.start(s.pending_target, now)
            if not is_terminal(s.current_epoch):
                year.start(s.world_state.year, get_epoch(s.current_epoch).end_year, now)
        elif not s.loading and (generation_changed or (was_loading and s.last_result is None)):
            # reset or failed generation: no result to finish onto
            ripple.complete()
            if s.world_state is not None:
                year.show(s.world_state.year)
        elif was_loading and not s.loading:
            ripple.complete()
            year.arrive(now)
        elif year.mode == IDLE and s.world_state is not None:
            year.show(s.world_state.year)

    return store.subscribe(on_change)
