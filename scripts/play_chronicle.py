"""
CLI entry point: play a game of Chronicle in the terminal.

Modes:
    interactive (default): pick a city, then type one intervention per epoch
    --script FILE: one intervention per line, played automatically
    --mock: force the offline generator regardless of .env
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

# Ensure project root is in sys.path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv
load_dotenv(PROJECT_ROOT / ".env")

from config import get_settings, setup_logging
from src.ai_layer.gateway import MockInterventionGateway, create_gateway
from src.simulation_layer.epochs import get_epoch, format_year, is_terminal
from src.simulation_layer.game_store import GameStore


def print_world(store: GameStore) -> None:
    world = store.world_state
    epoch = get_epoch(store.current_epoch)
    print("=" * 80)
    print(f"Epoch {epoch.epoch}/5 - {epoch.name} - {format_year(world.year)}")
    print("=" * 80)
    print(world.narrative)
    print()
    for city in sorted(world.cities, key=lambda c: c.brightness, reverse=True)[:8]:
        tag = f" [{city.change}]" if city.change and city.change != "unchanged" else ""
        print(f"  {city.name:<24} tech {city.tech_level:>2}  pop {city.population:>10,}{tag}")
        if city.causal_note:
            print(f"      {city.causal_note}")
    print()


def choose_city(store: GameStore, city_id: Optional[str]) -> None:
    cities = store.world_state.cities
    if city_id is None:
        for i, city in enumerate(cities, 1):
            print(f"  {i:>2}. {city.name} ({city.civilization})")
        while True:
            raw = input("Choose your city: ").strip()
            if raw.isdigit() and 1 <= int(raw) <= len(cities):
                store.select_city(cities[int(raw) - 1])
                return
            print("  Enter a number from the list.")
    if store.select_city_by_id(city_id) is None:
        raise SystemExit(f"Unknown city id: {city_id}")


async def play(store: GameStore, script: List[str], city_id: Optional[str]) -> None:
    store.init_world(1)
    print_world(store)
    choose_city(store, city_id or (store.world_state.cities[0].id if script else None))

    while not is_terminal(store.current_epoch):
        if script:
            description = script.pop(0)
            print(f"> {description}")
        else:
            home = store.chosen_city or store.selected_city
            context = await store.describe_region(home.lat, home.lng)
            print(context.description)
            for suggestion in context.suggestions:
                print(f"  - {suggestion.text}")
            description = input("Your intervention: ").strip()

        result = await store.submit_intervention(description)
        if result is None and not store.loading and store.interventions_remaining > 0:
            print("  Intervention rejected, try again.")
            continue
        if result is not None:
            print()
            print(result.narration_script)
        else:
            print("  The simulation faltered; history takes its default course.")

        await store.settle()
        if not is_terminal(store.current_epoch):
            print_world(store)

    await store.settle()
    result = store.game_result
    print("=" * 80)
    print(f"Final score: {result.score}/100")
    print(result.summary)
    for step in result.causal_chain:
        print(f"  -> {step}")


def main():
    parser = argparse.ArgumentParser(description="Chronicle: alternate history in five epochs")
    parser.add_argument(
        "--script",
        type=Path,
        default=None,
        help="Text file with one intervention per line (plays without prompting)",
    )
    parser.add_argument("--city", type=str, default=None, help="Id of the home city")
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the offline generator even when an API key is configured",
    )
    parser.add_argument("--log-level", type=str, default=None)
    args = parser.parse_args()

    setup_logging(args.log_level)
    settings = get_settings()
    gateway = MockInterventionGateway() if args.mock else create_gateway(settings)
    store = GameStore(gateway, settings.game)

    script = []
    if args.script is not None:
        script = [line.strip() for line in args.script.read_text(encoding="utf-8").splitlines() if line.strip()]
        if len(script) < 4:
            raise SystemExit("Script needs one intervention for each of the 4 playable epochs")

    print(f"Generator: {type(gateway).__name__} ({settings.llm.provider})")
    asyncio.run(play(store, script, args.city))


if __name__ == "__main__":
    main()
