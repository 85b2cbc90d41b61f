"""
Village: three NPCs reacting to the player and the weather
==========================================================

WHAT THIS SHOWS:
- Plugging a game world into the agent core (SimpleWorld stands in for the engine)
- Spawning NPCs with distinct personalities through AgentHost
- Non-blocking event dispatch from a fixed-interval "game loop"
- Reputation changing as the player talks to and hits an NPC
- Memory persisting across runs (./npc_memory by default)

REQUIRES (for real reasoning):
- REASONING_API_KEY (Gemini-style generateContent endpoint)
- Optionally SENTIMENT_API_KEY; without it sentiment uses keyword heuristics

Without REASONING_API_KEY the demo swaps in a scripted reasoning client so
the whole loop still runs offline.

RUN:
    export REASONING_API_KEY=your_key
    python -m examples.village.run
"""

import asyncio

from npcmind import (
    AgentHost,
    AgentIdentity,
    Config,
    EnvironmentState,
    Personality,
    ReasoningClient,
    ReasoningResponse,
    SimpleWorld,
    ToolCall,
    Vector3,
)


# ============================================================================
# Personalities
# ============================================================================

VILLAGERS = [
    AgentIdentity(
        agent_id="npc-mira",
        personality=Personality(
            name="Mira",
            display_name="Mira the Herbalist",
            backstory="Tends the lamp-lit garden by the hut and distrusts loud strangers.",
            traits={"friendliness": 0.6, "caution": 0.8, "curiosity": 0.4},
        ),
    ),
    AgentIdentity(
        agent_id="npc-finn",
        personality=Personality(
            name="Finn",
            display_name="Finn the Wanderer",
            backstory="A free-spirited traveller who collects interesting stones.",
            traits={"talkativeness": 0.9, "energy": 0.8, "curiosity": 0.9},
        ),
    ),
    AgentIdentity(
        agent_id="npc-bruna",
        personality=Personality(
            name="Bruna",
            display_name="Bruna of the Quarry",
            backstory="Strong, short-tempered, and quick to return a thrown rock.",
            traits={"aggression": 0.7, "patience": 0.2},
        ),
    ),
]


# ============================================================================
# Offline stand-in for the reasoning service
# ============================================================================

class ScriptedReasoning(ReasoningClient):
    """Answers from a small rulebook keyed on the event prompt."""

    async def generate(self, request, agent_id=None):
        message = request.current_message
        if message.startswith("You were hit"):
            return ReasoningResponse(
                text="Hey! That hurt.",
                tool_calls=[ToolCall(name="throw_rock", args={"target_id": "player"})],
            )
        if "weather" in message and "rain" in message:
            return ReasoningResponse(tool_calls=[ToolCall(name="hide_from_rain")])
        if message.startswith("The player nearby said"):
            if "where" in message.lower():
                return ReasoningResponse(tool_calls=[ToolCall(name="get_player_position")])
            return ReasoningResponse(text="Good day to you.")
        return ReasoningResponse(tool_calls=[ToolCall(name="collect_nearest_rock")])


def build_world() -> SimpleWorld:
    world = SimpleWorld(
        player_position=Vector3(x=0, y=0, z=0),
        environment=EnvironmentState(time_of_day="morning", weather="sunny", temperature=18.0),
    )
    world.add_agent("npc-mira", Vector3(x=8, y=0, z=8))
    world.add_agent("npc-finn", Vector3(x=-3, y=0, z=2))
    world.add_agent("npc-bruna", Vector3(x=4, y=0, z=-6), rocks=2)
    world.add_rock("rock-1", Vector3(x=-2, y=0, z=2.5))
    world.add_rock("rock-2", Vector3(x=5, y=0, z=-5))
    world.add_lamp("lamp-1", Vector3(x=9, y=0, z=9))
    return world


async def run_village() -> None:
    print(Config.display())
    print()

    world = build_world()
    reasoning = ReasoningClient() if Config.REASONING_API_KEY else ScriptedReasoning(api_key="offline")

    async with AgentHost(world, reasoning=reasoning, travel_delay=0.2) as host:
        for identity in VILLAGERS:
            await host.spawn(identity)

        # The game loop never awaits a decision; it just fires events and moves on.
        print("\n--- Tick 1: the player greets Finn ---")
        host.notify_player_speech("Hello friend, where am I?", ["npc-finn"])
        await asyncio.sleep(0.5)

        print("\n--- Tick 2: the player throws a rock at Bruna ---")
        host.notify_hit("npc-bruna", "player")
        await asyncio.sleep(0.5)

        print("\n--- Tick 3: it starts to rain ---")
        world.environment = EnvironmentState(time_of_day="noon", weather="rain", temperature=11.0)
        host.notify_environment_change("weather", previous="sunny", current="rain")
        await asyncio.sleep(0.5)

        print("\n--- Tick 4: periodic check ---")
        host.tick()
        await host.drain()

        print("\n--- Results ---")
        for agent_id, runtime in host.runtimes.items():
            name = runtime.identity.personality.name
            print(f"{name}: reputation {runtime.memory.reputation} ({runtime.memory.reputation_attitude()})")
            for line in world.spoken_by(agent_id):
                print(f"    said: {line}")
        print(f"Projectiles thrown: {len(world.projectiles)}")


if __name__ == "__main__":
    asyncio.run(run_village())
