"""
Shared fixtures: zero-delay settings and scriptable fake gateways.

Async code is driven with asyncio.run() inside plain test functions.
"""

import asyncio
from typing import List, Optional

import pytest

from config import GameSettings
from src.ai_layer.gateway import (
    GatewayError,
    InterventionGateway,
    MockInterventionGateway,
    SubmissionRequest,
)
from src.data_layer.mock_worlds import reset_mock_worlds
from src.simulation_layer.game_store import GameStore
from src.simulation_layer.models import (
    City,
    InterventionResult,
    ScoreReport,
    SurprisingConsequence,
)


JERICHO = (31.87, 35.44)


def make_settings(**overrides) -> GameSettings:
    values = {"advance_delay": 0.0, "fallback_delay": 0.0}
    values.update(overrides)
    return GameSettings(**values)


def make_result(cities=None, narrative="A different world.") -> InterventionResult:
    if cities is None:
        cities = (
            City("alpha", "Alpha", 10.0, 10.0, 1000, 0.5, 3, "Alphans", "First city"),
            City("beta", "Beta", -10.0, 40.0, 2000, 0.9, 5, "Betans", "Second city", change="new"),
        )
    return InterventionResult(
        cities=tuple(cities),
        trade_routes=(),
        regions=(),
        narrative=narrative,
        narration_script="And so it was.",
        milestones=(),
        most_surprising=SurprisingConsequence(0.0, 0.0, "Nothing much", ("a", "b")),
    )


class FakeGateway(InterventionGateway):
    """
    Scriptable gateway.

    gate / score_gate: asyncio.Event holding submit / score open until set.
    fail / score_fail / image_fail: raise GatewayError instead of answering.
    Without a canned result, submit delegates to the offline generator.
    """

    def __init__(
        self,
        result: Optional[InterventionResult] = None,
        fail: bool = False,
        score_fail: bool = False,
        image: Optional[str] = None,
        image_fail: bool = False,
        gate: Optional[asyncio.Event] = None,
        score_gate: Optional[asyncio.Event] = None,
    ):
        self.result = result
        self.fail = fail
        self.score_fail = score_fail
        self.image = image
        self.image_fail = image_fail
        self.gate = gate
        self.score_gate = score_gate
        self.requests: List[SubmissionRequest] = []
        self.score_calls = 0
        self.image_calls = 0
        self.region_calls = 0
        self._mock = MockInterventionGateway()

    async def submit(self, request):
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise GatewayError("generator unavailable")
        if self.result is not None:
            return self.result
        return await self._mock.submit(request)

    async def score(self, history, final_world, goal):
        self.score_calls += 1
        if self.score_gate is not None:
            await self.score_gate.wait()
        if self.score_fail:
            raise GatewayError("scoring unavailable")
        return ScoreReport(77, "Well played.", tuple(i.description for i in history))

    async def render_image(self, world, goal):
        self.image_calls += 1
        if self.image_fail:
            raise GatewayError("no images today")
        return self.image

    async def describe_region(self, lat, lng, world):
        self.region_calls += 1
        if self.fail:
            raise GatewayError("generator unavailable")
        return await self._mock.describe_region(lat, lng, world)


def make_store(gateway: InterventionGateway, **overrides) -> GameStore:
    return GameStore(gateway, make_settings(**overrides))


@pytest.fixture(autouse=True)
def _fresh_mock_worlds():
    reset_mock_worlds()
    yield
    reset_mock_worlds()

