"""Tests for tool validation and dispatch against a simple world."""

import pytest

from npcmind.errors import ToolValidationError, UnknownToolError
from npcmind.schemas import ToolCall, Vector3
from npcmind.tools import NO_ROCKS_MESSAGE, TOOL_NAMES, ToolDispatcher, speech_duration_ms, validate_tool_call
from npcmind.tools.schemas import MoveTo, ThrowRock
from npcmind.world import SimpleWorld


def make_world(**kwargs) -> SimpleWorld:
    world = SimpleWorld(**kwargs)
    world.add_agent("npc-1", Vector3(x=0, y=0, z=0))
    return world


class ExplodingWorld(SimpleWorld):
    def set_movement_target(self, agent_id, target):
        raise RuntimeError("navmesh offline")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_catalog_lists_every_tool():
    assert TOOL_NAMES == (
        "move_to",
        "speak",
        "collect_nearest_rock",
        "interact_with_nearest_lamp",
        "throw_rock",
        "get_player_position",
        "hide_from_rain",
    )


def test_validate_builds_typed_variants():
    move = validate_tool_call(ToolCall(name="move_to", args={"x": 1, "z": 2, "speed": "fast"}))
    assert isinstance(move, MoveTo)
    assert (move.x, move.y, move.z) == (1.0, 0.0, 2.0)

    throw = validate_tool_call(ToolCall(name="throw_rock", args={"target_id": "player"}))
    assert isinstance(throw, ThrowRock)


def test_validate_rejects_unknown_and_incomplete_calls():
    with pytest.raises(UnknownToolError):
        validate_tool_call(ToolCall(name="fly"))
    with pytest.raises(ToolValidationError) as excinfo:
        validate_tool_call(ToolCall(name="move_to", args={"x": 1}))
    assert "z" in str(excinfo.value)
    with pytest.raises(ToolValidationError):
        validate_tool_call(ToolCall(name="speak", args={}))


def test_args_cannot_override_tool_name():
    call = validate_tool_call(ToolCall(name="speak", args={"name": "throw_rock", "message": "hi"}))
    assert call.name == "speak"


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unknown_tool_is_skipped_without_aborting_siblings():
    world = make_world()
    dispatcher = ToolDispatcher(world, travel_delay=0)

    outcomes = await dispatcher.dispatch(
        "npc-1",
        [
            ToolCall(name="move_to", args={"x": 5, "z": 5}),
            ToolCall(name="nonexistent_tool"),
            ToolCall(name="speak", args={"message": "hi"}),
        ],
    )

    assert [o.status for o in outcomes] == ["ok", "skipped", "ok"]
    assert world.agent_position("npc-1") == Vector3(x=5, y=0, z=5)
    assert world.spoken_by("npc-1") == ["hi"]


@pytest.mark.asyncio
async def test_failing_tool_does_not_stop_later_calls():
    world = ExplodingWorld()
    world.add_agent("npc-1")
    dispatcher = ToolDispatcher(world, travel_delay=0)

    outcomes = await dispatcher.dispatch(
        "npc-1",
        [ToolCall(name="move_to", args={"x": 1, "z": 1}), ToolCall(name="speak", args={"message": "still here"})],
    )

    assert outcomes[0].status == "failed"
    assert "navmesh offline" in outcomes[0].detail
    assert outcomes[1].ok
    assert world.spoken_by("npc-1") == ["still here"]


@pytest.mark.asyncio
async def test_throw_without_rocks_is_refused():
    world = make_world(player_position=Vector3(x=0, y=0, z=10))
    dispatcher = ToolDispatcher(world, travel_delay=0)

    outcomes = await dispatcher.dispatch("npc-1", [ToolCall(name="throw_rock", args={"target_id": "player"})])

    assert outcomes[0].ok
    assert world.projectiles == []
    assert world.inventory("npc-1").count() == 0
    assert world.spoken_by("npc-1") == [NO_ROCKS_MESSAGE]


@pytest.mark.asyncio
async def test_throw_at_player_consumes_rock_and_aims_at_head_height():
    world = make_world(player_position=Vector3(x=0, y=0, z=10))
    world.inventory("npc-1").add(2)
    dispatcher = ToolDispatcher(world, travel_delay=0)

    outcomes = await dispatcher.dispatch("npc-1", [ToolCall(name="throw_rock", args={"target_id": "player"})])

    assert outcomes[0].ok
    assert world.inventory("npc-1").count() == 1
    projectile = world.projectiles[0]
    assert projectile.thrower_id == "npc-1"
    assert projectile.speed == 15
    assert projectile.origin == Vector3(x=0, y=1.5, z=0)
    assert projectile.direction.length() == pytest.approx(1.0)
    expected = Vector3(x=0, y=0.1, z=10).normalized()
    assert projectile.direction.y == pytest.approx(expected.y)
    assert projectile.direction.z == pytest.approx(expected.z)


@pytest.mark.asyncio
async def test_throw_at_another_npc():
    world = make_world()
    world.add_agent("npc-2", Vector3(x=3, y=0, z=4))
    world.inventory("npc-1").add(1)
    dispatcher = ToolDispatcher(world, travel_delay=0)

    outcomes = await dispatcher.dispatch("npc-1", [ToolCall(name="throw_rock", args={"target_id": "npc-2"})])

    assert outcomes[0].ok
    assert world.inventory("npc-1").count() == 0
    assert world.projectiles[0].direction.x > 0


@pytest.mark.asyncio
async def test_rejected_throw_refunds_the_rock():
    world = make_world(player_position=Vector3(x=0, y=0, z=10), accept_throws=False)
    world.inventory("npc-1").add(1)
    dispatcher = ToolDispatcher(world, travel_delay=0)

    outcomes = await dispatcher.dispatch("npc-1", [ToolCall(name="throw_rock", args={"target_id": "player"})])

    assert outcomes[0].status == "failed"
    assert world.inventory("npc-1").count() == 1
    assert world.projectiles == []


@pytest.mark.asyncio
async def test_throw_at_unknown_target_keeps_the_rock():
    world = make_world()
    world.inventory("npc-1").add(1)
    dispatcher = ToolDispatcher(world, travel_delay=0)

    outcomes = await dispatcher.dispatch("npc-1", [ToolCall(name="throw_rock", args={"target_id": "ghost"})])

    assert outcomes[0].status == "failed"
    assert world.inventory("npc-1").count() == 1


@pytest.mark.asyncio
async def test_collect_rock_in_range_is_immediate():
    world = make_world()
    world.add_rock("rock-1", Vector3(x=1, y=0, z=0))
    world.add_rock("rock-2", Vector3(x=8, y=0, z=0))
    dispatcher = ToolDispatcher(world, travel_delay=10)

    outcome = dispatcher.execute("npc-1", ToolCall(name="collect_nearest_rock"))

    assert outcome.detail == "collected rock rock-1"
    assert world.inventory("npc-1").count() == 1
    assert list(world.rocks) == ["rock-2"]
    assert dispatcher.pending_count() == 0


@pytest.mark.asyncio
async def test_collect_rock_out_of_range_walks_then_collects():
    world = make_world()
    world.add_rock("rock-1", Vector3(x=10, y=0, z=0))
    dispatcher = ToolDispatcher(world, travel_delay=0)

    outcome = dispatcher.execute("npc-1", ToolCall(name="collect_nearest_rock"))

    assert outcome.detail == "walking to rock rock-1"
    assert dispatcher.pending_count("npc-1") == 1
    await dispatcher.wait_pending("npc-1")
    assert world.inventory("npc-1").count() == 1
    assert world.rocks == {}
    assert dispatcher.pending_count() == 0


@pytest.mark.asyncio
async def test_completion_does_not_assume_arrival():
    world = make_world(instant_travel=False)
    world.add_rock("rock-1", Vector3(x=10, y=0, z=0))
    dispatcher = ToolDispatcher(world, travel_delay=0)

    dispatcher.execute("npc-1", ToolCall(name="collect_nearest_rock"))
    await dispatcher.wait_pending()

    assert world.inventory("npc-1").count() == 0
    assert "rock-1" in world.rocks
    assert world.agent_state("npc-1") == "walking"


@pytest.mark.asyncio
async def test_completion_collects_after_real_arrival():
    world = make_world(instant_travel=False)
    world.add_rock("rock-1", Vector3(x=10, y=0, z=0))
    dispatcher = ToolDispatcher(world, travel_delay=0)

    dispatcher.execute("npc-1", ToolCall(name="collect_nearest_rock"))
    world.arrive("npc-1")
    await dispatcher.wait_pending()

    assert world.inventory("npc-1").count() == 1


@pytest.mark.asyncio
async def test_completion_skips_rock_taken_meanwhile():
    world = make_world()
    world.add_rock("rock-1", Vector3(x=10, y=0, z=0))
    dispatcher = ToolDispatcher(world, travel_delay=0)

    dispatcher.execute("npc-1", ToolCall(name="collect_nearest_rock"))
    world.collect_rock("rock-1")
    await dispatcher.wait_pending()

    assert world.inventory("npc-1").count() == 0


@pytest.mark.asyncio
async def test_cancel_pending_stops_completions():
    world = make_world()
    world.add_rock("rock-1", Vector3(x=10, y=0, z=0))
    dispatcher = ToolDispatcher(world, travel_delay=30)

    dispatcher.execute("npc-1", ToolCall(name="collect_nearest_rock"))
    assert dispatcher.pending_count("npc-1") == 1

    await dispatcher.cancel_pending("npc-1")

    assert dispatcher.pending_count() == 0
    assert "rock-1" in world.rocks


@pytest.mark.asyncio
async def test_no_rocks_is_reported():
    world = make_world()
    dispatcher = ToolDispatcher(world, travel_delay=0)

    outcome = dispatcher.execute("npc-1", ToolCall(name="collect_nearest_rock"))

    assert outcome.ok
    assert outcome.detail == "no rocks available"


@pytest.mark.asyncio
async def test_lamp_toggle_near_and_far():
    world = make_world()
    near = world.add_lamp("lamp-1", Vector3(x=2, y=0, z=0))
    dispatcher = ToolDispatcher(world, travel_delay=0)

    dispatcher.execute("npc-1", ToolCall(name="interact_with_nearest_lamp"))
    assert near.active is True

    world.positions["npc-1"] = Vector3(x=0, y=0, z=40)
    far = world.add_lamp("lamp-2", Vector3(x=0, y=0, z=50))
    outcome = dispatcher.execute("npc-1", ToolCall(name="interact_with_nearest_lamp"))
    assert outcome.detail == "walking to lamp lamp-2"
    await dispatcher.wait_pending()
    assert far.active is True


@pytest.mark.asyncio
async def test_get_player_position_is_spoken():
    world = make_world(player_position=Vector3(x=1, y=0, z=2))
    dispatcher = ToolDispatcher(world, travel_delay=0)

    dispatcher.execute("npc-1", ToolCall(name="get_player_position"))

    assert world.spoken_by("npc-1") == ["Player is at (1.0, 0.0, 2.0)"]


@pytest.mark.asyncio
async def test_hide_from_rain_stops_short_of_nearest_shelter():
    world = make_world()
    world.positions["npc-1"] = Vector3(x=9, y=0, z=5)
    dispatcher = ToolDispatcher(world, travel_delay=0)

    dispatcher.execute("npc-1", ToolCall(name="hide_from_rain"))

    position = world.agent_position("npc-1")
    hut = Vector3(x=10, y=0, z=10)
    assert position.horizontal_distance_to(hut) == pytest.approx(1.5)
    # Stand-off is on the side the agent came from
    assert position.z < hut.z
    assert world.spoken_by("npc-1") == ["Going to hut for shelter"]


@pytest.mark.parametrize(
    "text, expected",
    [("", 2000), ("0123456789", 2600), ("x" * 200, 8000)],
)
def test_speech_duration_is_clamped(text, expected):
    assert speech_duration_ms(text) == expected


@pytest.mark.asyncio
async def test_speech_duration_reaches_world():
    world = make_world()
    dispatcher = ToolDispatcher(world, travel_delay=0)

    dispatcher.say("npc-1", "hello")

    assert world.speech_log[0].duration_ms == 2300
