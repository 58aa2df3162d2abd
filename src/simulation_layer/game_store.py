"""
Game store: the turn state machine and the optimistic-update protocol.

One store per game session. It is the single writer of the world snapshot,
the loading flag and the intervention history; everything else reads.

Submission protocol (no suspension point before step 4):
    1. guard       - world loaded, an intervention left, not terminal, a target
    2. record      - append the Intervention to the history (never rolled back)
    3. overlay     - install a provisional world, loading=True, remaining=0
    4. generate    - await the gateway with the *pre-overlay* snapshot
    5. reconcile   - success: wholesale replace; failure: restore and fall back
    6. advance     - next epoch after a short delay; terminal epoch starts scoring

Every submission and every reset bumps a generation token. Work that
resolves under an old token (late gateway replies, delayed advances, scores)
is dropped.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Set, Tuple

from config import GameSettings, get_settings
from src.ai_layer.gateway import (
    GatewayError,
    InterventionGateway,
    MockInterventionGateway,
    SubmissionRequest,
)
from src.data_layer.mock_worlds import get_mock_world
from src.simulation_layer.epochs import (
    FIRST_EPOCH,
    get_epoch,
    is_last_playable,
    is_terminal,
)
from src.simulation_layer.geo import cities_within, nearest_city
from src.simulation_layer.models import (
    City,
    GameResult,
    GeoPoint,
    Intervention,
    InterventionResult,
    RegionContext,
    ScoreReport,
    WorldState,
)


logger = logging.getLogger(__name__)

RIPPLE_NARRATIVE = "Changes are rippling outward across the world..."

Listener = Callable[["GameStore"], None]
WorldSource = Callable[[int], WorldState]


@dataclass(frozen=True)
class GameSnapshot:
    """Read-only view of the store for presentation code."""

    current_epoch: int
    interventions_remaining: int
    world_state: Optional[WorldState]
    intervention_history: Tuple[Intervention, ...]
    loading: bool
    selected_city: Optional[City]
    chosen_city: Optional[City]
    game_result: Optional[GameResult]
    last_result: Optional[InterventionResult]
    early_image: Optional[str]
    pending_target: Optional[GeoPoint]
    score_pending: bool


def build_optimistic_overlay(
    world: WorldState,
    description: str,
    target: GeoPoint,
    radius: float,
    brightness_boost: float,
    tech_boost: int,
) -> WorldState:
    """
    Provisional world shown while the generator works.

    Cities within radius degrees of the target get a bounded boost and a
    generic causal note; the rest are tagged unchanged. Year is untouched.
    """
    nearby = {c.id for c in cities_within(world.cities, target, radius)}
    cities = []
    for city in world.cities:
        if city.id in nearby:
            cities.append(replace(
                city,
                brightness=city.brightness + brightness_boost,
                tech_level=city.tech_level + tech_boost,
                change="brighter",
                causal_note=f"Because {description}, change is beginning to reach this place.",
            ))
        else:
            cities.append(replace(city, change="unchanged"))

    return replace(world, cities=tuple(cities), narrative=RIPPLE_NARRATIVE)


def default_score(history, settings: GameSettings) -> ScoreReport:
    return ScoreReport(
        score=settings.default_score,
        summary=settings.default_summary,
        causal_chain=tuple(i.description for i in history),
    )


class GameStore:
    """
    Single-session game state.

    All mutations run on one event loop. Public methods never raise for
    game-level failures: guard rejections return None, generator failures
    become fallback transitions.
    """

    def __init__(
        self,
        gateway: InterventionGateway,
        settings: Optional[GameSettings] = None,
        world_source: WorldSource = get_mock_world,
    ):
        self._gateway = gateway
        self._settings = settings or get_settings().game
        self._world_source = world_source
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._generation = 0
        self._clear()

    def _clear(self) -> None:
        self._current_epoch = FIRST_EPOCH
        self._interventions_remaining = 1
        self._world_state: Optional[WorldState] = None
        self._history: List[Intervention] = []
        self._loading = False
        self._selected_city: Optional[City] = None
        self._chosen_city: Optional[City] = None
        self._game_result: Optional[GameResult] = None
        self._last_result: Optional[InterventionResult] = None
        self._early_image: Optional[str] = None
        self._pending_target: Optional[GeoPoint] = None
        self._image_task: Optional[asyncio.Task] = None

    # -- read access ---------------------------------------------------------

    @property
    def current_epoch(self) -> int:
        return self._current_epoch

    @property
    def interventions_remaining(self) -> int:
        return self._interventions_remaining

    @property
    def world_state(self) -> Optional[WorldState]:
        return self._world_state

    @property
    def intervention_history(self) -> Tuple[Intervention, ...]:
        return tuple(self._history)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def selected_city(self) -> Optional[City]:
        return self._selected_city

    @property
    def chosen_city(self) -> Optional[City]:
        return self._chosen_city

    @property
    def game_result(self) -> Optional[GameResult]:
        return self._game_result

    @property
    def last_result(self) -> Optional[InterventionResult]:
        return self._last_result

    @property
    def early_image(self) -> Optional[str]:
        return self._early_image

    @property
    def pending_target(self) -> Optional[GeoPoint]:
        """Target of the in-flight intervention, None when idle."""
        return self._pending_target

    @property
    def score_pending(self) -> bool:
        return is_terminal(self._current_epoch) and self._game_result is None

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> GameSnapshot:
        return GameSnapshot(
            current_epoch=self._current_epoch,
            interventions_remaining=self._interventions_remaining,
            world_state=self._world_state,
            intervention_history=tuple(self._history),
            loading=self._loading,
            selected_city=self._selected_city,
            chosen_city=self._chosen_city,
            game_result=self._game_result,
            last_result=self._last_result,
            early_image=self._early_image,
            pending_target=self._pending_target,
            score_pending=self.score_pending,
        )

    # -- listeners -----------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener(store) after every state change. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Store listener %r failed", listener)

    # -- operations ----------------------------------------------------------

    def init_world(self, epoch: Optional[int] = None) -> WorldState:
        """Install the deterministic baseline for epoch (default: current). No network."""
        epoch = self._current_epoch if epoch is None else epoch
        world = self._world_source(epoch)
        self._world_state = world
        self._loading = False
        self._notify()
        return world

    def select_city(self, city: Optional[City]) -> None:
        self._selected_city = city
        self._notify()

    def select_city_by_id(self, city_id: str) -> Optional[City]:
        """Select a city of the current world by id. Unknown ids change nothing."""
        if self._world_state is None:
            return None
        city = self._world_state.find_city(city_id)
        if city is not None:
            self.select_city(city)
        return city

    def select_nearest_city(self, lat: float, lng: float) -> Optional[City]:
        """Select the city closest to a clicked point on the globe."""
        if self._world_state is None:
            return None
        city = nearest_city(self._world_state.cities, GeoPoint(lat, lng))
        if city is not None:
            self.select_city(city)
        return city

    def _resolve_target(self, lat: Optional[float], lng: Optional[float]) -> Optional[GeoPoint]:
        if lat is not None and lng is not None:
            if -90 <= lat <= 90 and -180 <= lng <= 180:
                return GeoPoint(lat, lng)
            return None

        city = self._chosen_city or self._selected_city
        if city is None:
            return None
        # the city may have moved or changed since it was picked
        if self._world_state is not None:
            city = self._world_state.find_city(city.id) or city
        return city.location

    def can_submit(
        self,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        description: Optional[str] = None,
    ) -> bool:
        """Guard for a submission. A description, when given, must not be blank."""
        if description is not None and not description.strip():
            return False
        return (
            self._world_state is not None
            and self._interventions_remaining > 0
            and not is_terminal(self._current_epoch)
            and self._resolve_target(lat, lng) is not None
        )

    async def submit_intervention(
        self,
        description: str,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> Optional[InterventionResult]:
        """
        Submit one intervention for the current epoch.

        Targets (lat, lng) when given, otherwise the chosen city (or the
        selected one during the first epoch, which then becomes the chosen
        city for the rest of the game).

        Returns the authoritative result, or None when the guard rejected
        the call, the generator failed (fallback applied), or the game was
        reset while waiting.
        """
        description = (description or "").strip()
        target = self._resolve_target(lat, lng)
        if not self.can_submit(lat, lng, description):
            logger.debug(
                "Intervention rejected (epoch=%s, remaining=%s, target=%s)",
                self._current_epoch, self._interventions_remaining, target,
            )
            return None

        if (
            self._chosen_city is None
            and self._current_epoch == FIRST_EPOCH
            and self._selected_city is not None
        ):
            self._chosen_city = self._selected_city

        epoch = get_epoch(self._current_epoch)
        pre_world = self._world_state
        intervention = Intervention(
            id=f"intervention-{uuid.uuid4().hex[:12]}",
            description=description,
            lat=target.lat,
            lng=target.lng,
            epoch=epoch.epoch,
            year=pre_world.year,
        )
        self._history.append(intervention)

        self._world_state = build_optimistic_overlay(
            pre_world,
            description,
            target,
            radius=self._settings.proximity_degrees,
            brightness_boost=self._settings.brightness_boost,
            tech_boost=self._settings.tech_boost,
        )
        self._interventions_remaining = 0
        self._loading = True
        self._pending_target = target
        self._selected_city = None
        self._generation += 1
        generation = self._generation
        self._notify()

        logger.info("Epoch %d intervention: %s @ (%.2f, %.2f)",
                    epoch.epoch, description, target.lat, target.lng)

        request = SubmissionRequest(
            world=pre_world,
            description=description,
            target=target,
            history=tuple(self._history),
            start_year=epoch.start_year,
            end_year=epoch.end_year,
            chosen_city=self._chosen_city,
        )
        try:
            result = await self._gateway.submit(request)
        except GatewayError as e:
            logger.warning("Generation failed, falling back to baseline data: %s", e)
            self._recover(generation, pre_world)
            return None
        except Exception:
            logger.exception("Gateway raised unexpectedly, falling back to baseline data")
            self._recover(generation, pre_world)
            return None

        if generation != self._generation:
            logger.info("Discarding result of abandoned intervention %s", intervention.id)
            return None

        self._world_state = WorldState(
            year=epoch.end_year,
            epoch=epoch.epoch,
            cities=result.cities,
            trade_routes=result.trade_routes,
            regions=result.regions,
            narrative=result.narrative,
        )
        self._last_result = result
        self._loading = False
        self._pending_target = None
        if is_last_playable(epoch.epoch):
            self._start_image(generation)
        self._notify()

        self._schedule_advance(generation, self._settings.advance_delay, fallback=False)
        return result

    def _recover(self, generation: int, pre_world: WorldState) -> None:
        if generation != self._generation:
            logger.info("Ignoring failure of abandoned intervention")
            return
        # drop the overlay; the history entry stays
        self._world_state = pre_world
        self._last_result = None
        self._loading = False
        self._pending_target = None
        self._notify()
        self._schedule_advance(generation, self._settings.fallback_delay, fallback=True)

    # -- epoch machine -------------------------------------------------------

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _schedule_advance(self, generation: int, delay: float, fallback: bool) -> None:
        self._track(self._advance_later(generation, delay, fallback))

    async def _advance_later(self, generation: int, delay: float, fallback: bool) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        self._advance_epoch(generation, fallback)

    def _advance_epoch(self, generation: int, fallback: bool) -> None:
        if generation != self._generation or is_terminal(self._current_epoch):
            return

        new_epoch = get_epoch(self._current_epoch + 1)
        self._current_epoch = new_epoch.epoch

        world = self._world_state
        if fallback:
            try:
                world = self._world_source(new_epoch.epoch)
            except KeyError:
                world = replace(world, year=new_epoch.start_year)
        self._world_state = replace(world, epoch=new_epoch.epoch)

        if is_terminal(new_epoch.epoch):
            self._interventions_remaining = 0
            logger.info("Reached %s, scoring the playthrough", new_epoch.name)
            self._notify()
            self._track(self._fetch_score(generation))
        else:
            self._interventions_remaining = 1
            logger.info("Entering epoch %d: %s", new_epoch.epoch, new_epoch.name)
            self._notify()

    def _start_image(self, generation: int) -> asyncio.Task:
        self._image_task = self._track(self._render_image(generation, self._world_state))
        return self._image_task

    async def _render_image(self, generation: int, world: WorldState) -> Optional[str]:
        try:
            image = await self._gateway.render_image(world, self._settings.goal)
        except GatewayError as e:
            logger.warning("Image generation failed: %s", e)
            return None
        except Exception:
            logger.exception("Image generation raised unexpectedly")
            return None

        if generation == self._generation and image:
            self._early_image = image
            self._notify()
        return image

    async def _fetch_score(self, generation: int) -> None:
        history = tuple(self._history)
        world = self._world_state
        image_task = self._image_task or self._start_image(generation)

        try:
            report = await self._gateway.score(history, world, self._settings.goal)
        except GatewayError as e:
            logger.warning("Scoring failed, using default score: %s", e)
            report = default_score(history, self._settings)
        except Exception:
            logger.exception("Scoring raised unexpectedly, using default score")
            report = default_score(history, self._settings)

        image = await image_task
        if generation != self._generation:
            return

        self._game_result = GameResult(
            score=report.score,
            summary=report.summary,
            causal_chain=report.causal_chain,
            final_image=image,
        )
        logger.info("Final score: %d", report.score)
        self._notify()

    def reset(self) -> WorldState:
        """
        Back to epoch 1 with an empty history, callable at any time.

        An in-flight submission keeps running but its result is dropped.
        """
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._clear()
        logger.info("Game reset")
        return self.init_world(FIRST_EPOCH)

    async def settle(self) -> None:
        """Wait until scheduled advances, scoring and image tasks have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def describe_region(self, lat: float, lng: float) -> RegionContext:
        """Region description with suggested interventions. Never fails."""
        world = self._world_state or self._world_source(self._current_epoch)
        try:
            return await self._gateway.describe_region(lat, lng, world)
        except Exception as e:
            logger.warning("Region context failed, using offline description: %s", e)
            return await MockInterventionGateway().describe_region(lat, lng, world)
