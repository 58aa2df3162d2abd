import asyncio

from conftest import JERICHO, FakeGateway, make_result, make_store
from src.ai_layer.gateway import MockInterventionGateway
from src.data_layer.mock_worlds import get_mock_world
from src.simulation_layer.game_store import (
    RIPPLE_NARRATIVE,
    GameStore,
    build_optimistic_overlay,
)
from src.simulation_layer.models import GeoPoint


def test_init_world_is_instant_and_idempotent():
    store = make_store(FakeGateway())
    first = store.init_world(1)
    second = store.init_world(1)

    assert first == second == get_mock_world(1)
    assert store.world_state.year == -10000
    assert store.loading is False
    assert store.current_epoch == 1
    assert store.interventions_remaining == 1


def test_submit_rejected_before_world_loaded():
    gateway = FakeGateway()
    store = make_store(gateway)

    assert asyncio.run(store.submit_intervention("Anything", 0.0, 0.0)) is None
    assert store.intervention_history == ()
    assert gateway.requests == []


def test_submit_rejected_without_target():
    gateway = FakeGateway()
    store = make_store(gateway)
    store.init_world(1)

    assert store.can_submit() is False
    assert asyncio.run(store.submit_intervention("Invent the wheel")) is None
    assert gateway.requests == []
    assert store.interventions_remaining == 1


def test_submit_rejected_for_blank_description_or_bad_coordinates():
    gateway = FakeGateway()
    store = make_store(gateway)
    store.init_world(1)

    assert store.can_submit(*JERICHO, description="   ") is False
    assert store.can_submit(*JERICHO, description="Sail north") is True
    assert asyncio.run(store.submit_intervention("   ", *JERICHO)) is None
    assert asyncio.run(store.submit_intervention("Sail north", 95.0, 0.0)) is None
    assert asyncio.run(store.submit_intervention("Sail east", 0.0, 200.0)) is None
    assert gateway.requests == []
    assert store.intervention_history == ()


def test_optimistic_overlay_then_authoritative_replacement():
    async def scenario():
        gate = asyncio.Event()
        result = make_result()
        gateway = FakeGateway(result=result, gate=gate)
        store = make_store(gateway, advance_delay=60)
        store.init_world(1)

        task = asyncio.ensure_future(
            store.submit_intervention("Found an early trading post", *JERICHO)
        )
        await asyncio.sleep(0)

        assert store.interventions_remaining == 0
        assert store.loading is True
        assert store.pending_target == GeoPoint(*JERICHO)
        jericho = store.world_state.find_city("jericho")
        assert jericho.change == "brighter"
        assert jericho.brightness > get_mock_world(1).find_city("jericho").brightness
        assert store.world_state.narrative == RIPPLE_NARRATIVE
        # the year only moves with the authoritative result
        assert store.world_state.year == -10000

        gate.set()
        resolved = await task

        assert resolved is result
        assert store.loading is False
        assert store.pending_target is None
        assert store.world_state.year == -2000
        assert store.world_state.cities == result.cities
        assert store.world_state.find_city("jericho") is None
        assert store.last_result is result
        assert store.current_epoch == 1

        store.reset()

    asyncio.run(scenario())


def test_gateway_receives_pre_overlay_world_and_full_history():
    async def scenario():
        gateway = FakeGateway(result=make_result())
        store = make_store(gateway)
        store.init_world(1)

        await store.submit_intervention("Domesticate horses", *JERICHO)
        await store.settle()
        await store.submit_intervention("Build a library", 10.0, 10.0)
        await store.settle()
        return store, gateway

    store, gateway = asyncio.run(scenario())

    first, second = gateway.requests
    assert first.world == get_mock_world(1)
    assert first.world.narrative != RIPPLE_NARRATIVE
    assert [i.description for i in first.history] == ["Domesticate horses"]
    assert (first.start_year, first.end_year) == (-10000, -2000)
    assert [i.description for i in second.history] == ["Domesticate horses", "Build a library"]
    assert (second.start_year, second.end_year) == (-2000, 1)
    assert store.current_epoch == 3


def test_success_advances_to_next_epoch():
    async def scenario():
        store = make_store(FakeGateway(result=make_result()))
        store.init_world(1)
        await store.submit_intervention("Found an early trading post", *JERICHO)
        await store.settle()
        return store

    store = asyncio.run(scenario())

    assert store.current_epoch == 2
    assert store.interventions_remaining == 1
    assert store.world_state.epoch == 2
    assert store.world_state.year == -2000
    assert {c.id for c in store.world_state.cities} == {"alpha", "beta"}


def test_failure_keeps_history_and_falls_back_to_baseline():
    async def scenario():
        store = make_store(FakeGateway(fail=True), fallback_delay=60)
        store.init_world(1)

        resolved = await store.submit_intervention("Found an early trading post", *JERICHO)

        assert resolved is None
        assert store.loading is False
        assert store.world_state == get_mock_world(1)
        assert len(store.intervention_history) == 1
        assert store.current_epoch == 1

        store.reset()

    asyncio.run(scenario())


def test_failure_advances_to_next_mock_world():
    async def scenario():
        store = make_store(FakeGateway(fail=True))
        store.init_world(1)
        await store.submit_intervention("Found an early trading post", *JERICHO)
        await store.settle()
        return store

    store = asyncio.run(scenario())

    assert store.current_epoch == 2
    assert store.world_state == get_mock_world(2)
    assert store.interventions_remaining == 1
    assert len(store.intervention_history) == 1


def test_rapid_double_submit_reaches_gateway_once():
    async def scenario():
        gate = asyncio.Event()
        gateway = FakeGateway(result=make_result(), gate=gate)
        store = make_store(gateway, advance_delay=60)
        store.init_world(1)

        tasks = [
            asyncio.ensure_future(store.submit_intervention(f"Idea {n}", *JERICHO))
            for n in range(5)
        ]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks)

        store.reset()
        return gateway, results

    gateway, results = asyncio.run(scenario())

    assert len(gateway.requests) == 1
    assert results[0] is not None
    assert results[1:] == [None] * 4


def test_reset_mid_flight_discards_late_result():
    async def scenario():
        gate = asyncio.Event()
        gateway = FakeGateway(result=make_result(), gate=gate)
        store = make_store(gateway)
        store.init_world(1)

        task = asyncio.ensure_future(
            store.submit_intervention("Found an early trading post", *JERICHO)
        )
        await asyncio.sleep(0)
        assert store.loading is True

        store.reset()
        assert store.current_epoch == 1
        assert store.intervention_history == ()
        assert store.loading is False

        gate.set()
        resolved = await task
        await store.settle()
        return store, resolved

    store, resolved = asyncio.run(scenario())

    assert resolved is None
    assert store.current_epoch == 1
    assert store.world_state == get_mock_world(1)
    assert store.interventions_remaining == 1
    assert store.last_result is None


def test_reset_mid_flight_discards_late_failure():
    async def scenario():
        gate = asyncio.Event()
        store = make_store(FakeGateway(fail=True, gate=gate))
        store.init_world(1)

        task = asyncio.ensure_future(store.submit_intervention("Anything", *JERICHO))
        await asyncio.sleep(0)
        store.reset()
        gate.set()
        await task
        await store.settle()
        return store

    store = asyncio.run(scenario())

    assert store.current_epoch == 1
    assert store.interventions_remaining == 1


def test_reset_cancels_scheduled_advance():
    async def scenario():
        store = make_store(FakeGateway(result=make_result()), advance_delay=60)
        store.init_world(1)
        await store.submit_intervention("Found an early trading post", *JERICHO)
        store.reset()
        await store.settle()
        return store

    store = asyncio.run(scenario())

    assert store.current_epoch == 1
    assert store.world_state == get_mock_world(1)


def test_full_game_with_offline_generator():
    async def scenario():
        store = make_store(MockInterventionGateway())
        store.init_world(1)
        store.select_city_by_id("jericho")

        for description in ("Irrigate", "Write laws", "Print books", "Reach orbit"):
            assert await store.submit_intervention(description) is not None
            await store.settle()

        assert await store.submit_intervention("One more", 0.0, 0.0) is None
        return store

    store = asyncio.run(scenario())

    assert store.current_epoch == 5
    assert store.interventions_remaining == 0
    assert store.score_pending is False
    assert store.game_result is not None
    assert 0 <= store.game_result.score <= 100
    assert len(store.intervention_history) == 4


def test_always_failing_gateway_still_reaches_default_score():
    async def scenario():
        store = make_store(FakeGateway(fail=True, score_fail=True))
        store.init_world(1)
        for n in range(4):
            await store.submit_intervention(f"Attempt {n}", 0.0, 0.0)
            await store.settle()
        return store

    store = asyncio.run(scenario())

    assert store.current_epoch == 5
    assert store.game_result.score == 50
    assert store.game_result.summary == "Your decisions shaped history in unexpected ways."
    assert store.game_result.causal_chain == tuple(f"Attempt {n}" for n in range(4))
    assert store.world_state.year == 4000


def test_epochs_only_move_forward_by_one():
    seen = []

    async def scenario():
        store = make_store(MockInterventionGateway())
        store.subscribe(lambda s: seen.append(s.current_epoch))
        store.init_world(1)
        for n in range(4):
            await store.submit_intervention(f"Step {n}", 30.0, 30.0)
            await store.settle()
        return store

    store = asyncio.run(scenario())

    assert seen[0] == 1
    assert seen[-1] == 5
    assert all(b - a in (0, 1) for a, b in zip(seen, seen[1:]))
    assert store.current_epoch == 5


def test_score_pending_until_scoring_resolves():
    async def scenario():
        score_gate = asyncio.Event()
        gateway = FakeGateway(fail=True, score_gate=score_gate)
        store = make_store(gateway)
        store.init_world(1)
        for n in range(4):
            await store.submit_intervention(f"Attempt {n}", 0.0, 0.0)
            await asyncio.sleep(0)
            await asyncio.sleep(0)

        assert store.current_epoch == 5
        assert store.score_pending is True
        assert store.game_result is None

        score_gate.set()
        await store.settle()
        return store

    store = asyncio.run(scenario())

    assert store.score_pending is False
    assert store.game_result.score == 77


def test_chosen_city_is_locked_in_and_targeted_later():
    async def scenario():
        fake = FakeGateway()
        store = make_store(fake)
        store.init_world(1)

        store.select_city_by_id("jericho")
        await store.submit_intervention("Found an early trading post")
        await store.settle()

        assert store.selected_city is None
        assert store.chosen_city.id == "jericho"

        # no selection in epoch 2: the chosen city is still the target
        await store.submit_intervention("Build walls")
        await store.settle()
        return store, fake

    store, fake = asyncio.run(scenario())

    first, second = fake.requests
    assert first.target == GeoPoint(*JERICHO)
    assert second.target == GeoPoint(*JERICHO)
    assert second.chosen_city.id == "jericho"
    assert store.current_epoch == 3


def test_selection_in_later_epoch_does_not_become_chosen_city():
    async def scenario():
        store = make_store(FakeGateway(fail=True))
        store.init_world(1)
        await store.submit_intervention("Anything", 0.0, 0.0)
        await store.settle()

        store.select_city_by_id("ur")
        await store.submit_intervention("Anything else")
        await store.settle()
        return store

    store = asyncio.run(scenario())

    assert store.chosen_city is None
    assert store.current_epoch == 3


def test_early_image_is_reused_for_final_result():
    async def scenario():
        gateway = FakeGateway(image="aW1hZ2U=")
        store = make_store(gateway)
        store.init_world(1)
        for n in range(4):
            await store.submit_intervention(f"Step {n}", *JERICHO)
            await store.settle()
        return store, gateway

    store, gateway = asyncio.run(scenario())

    assert store.early_image == "aW1hZ2U="
    assert store.game_result.final_image == "aW1hZ2U="
    assert gateway.image_calls == 1


def test_image_failure_leaves_final_image_empty():
    async def scenario():
        gateway = FakeGateway(image_fail=True)
        store = make_store(gateway)
        store.init_world(1)
        for n in range(4):
            await store.submit_intervention(f"Step {n}", *JERICHO)
            await store.settle()
        return store

    store = asyncio.run(scenario())

    assert store.early_image is None
    assert store.game_result.final_image is None
    assert store.game_result.score == 77


def test_failing_listener_does_not_break_the_store():
    def broken(_store):
        raise RuntimeError("listener bug")

    async def scenario():
        store = make_store(FakeGateway(result=make_result()))
        store.subscribe(broken)
        store.init_world(1)
        resolved = await store.submit_intervention("Anything", *JERICHO)
        await store.settle()
        return store, resolved

    store, resolved = asyncio.run(scenario())

    assert resolved is not None
    assert store.current_epoch == 2


def test_unsubscribe_stops_notifications():
    calls = []
    store = make_store(FakeGateway())
    unsubscribe = store.subscribe(lambda s: calls.append(s.current_epoch))

    store.init_world(1)
    unsubscribe()
    store.init_world(1)

    assert calls == [1]


def test_snapshot_mirrors_store():
    store = make_store(FakeGateway())
    store.init_world(1)
    store.select_city_by_id("jericho")

    snapshot = store.snapshot()

    assert snapshot.current_epoch == 1
    assert snapshot.world_state == store.world_state
    assert snapshot.selected_city.id == "jericho"
    assert snapshot.loading is False
    assert snapshot.score_pending is False


def test_select_unknown_city_changes_nothing():
    store = make_store(FakeGateway())
    store.init_world(1)
    store.select_city_by_id("jericho")

    assert store.select_city_by_id("atlantis") is None
    assert store.selected_city.id == "jericho"


def test_select_nearest_city_to_clicked_point():
    store = make_store(FakeGateway())
    assert store.select_nearest_city(*JERICHO) is None

    store.init_world(1)
    city = store.select_nearest_city(31.5, 35.0)

    assert city.id == "jericho"
    assert store.selected_city is city


def test_describe_region_falls_back_to_offline_description():
    async def scenario():
        gateway = FakeGateway(fail=True)
        store = make_store(gateway)
        store.init_world(1)
        return gateway, await store.describe_region(*JERICHO)

    gateway, context = asyncio.run(scenario())

    assert gateway.region_calls == 1
    assert "Fertile Crescent" in context.description
    assert len(context.suggestions) == 3


def test_overlay_boosts_stay_clamped():
    world = get_mock_world(1)
    target = GeoPoint(*JERICHO)
    for _ in range(20):
        world = build_optimistic_overlay(world, "Boost", target, 25.0, 0.2, 1)

    jericho = world.find_city("jericho")
    assert jericho.brightness == 1.0
    assert jericho.tech_level == 10
    assert world.find_city("clovis").change == "unchanged"
    assert world.find_city("clovis").brightness == get_mock_world(1).find_city("clovis").brightness


def test_overlay_respects_radius():
    world = get_mock_world(1)
    overlay = build_optimistic_overlay(world, "Boost", GeoPoint(*JERICHO), 25.0, 0.2, 1)

    assert overlay.find_city("gobekli").change == "brighter"
    assert overlay.find_city("jomon").change == "unchanged"
    assert overlay.year == world.year
    assert len(overlay.cities) == len(world.cities)


def test_store_uses_injected_world_source():
    world = get_mock_world(3)
    store = GameStore(FakeGateway(), world_source=lambda epoch: world)

    assert store.init_world(1) is world
