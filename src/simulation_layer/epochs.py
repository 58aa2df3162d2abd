"""
Epoch table: playable eras 1..4 and the terminal results epoch 5.
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class EpochConfig:
    epoch: int
    start_year: int
    end_year: int
    name: str


EPOCHS: Tuple[EpochConfig, ...] = (
    EpochConfig(1, -10000, -2000, "Dawn of Civilization"),
    EpochConfig(2, -2000, 1, "Bronze Age"),
    EpochConfig(3, 1, 2000, "Classical Era"),
    EpochConfig(4, 2000, 4000, "Modern Day"),
    EpochConfig(5, 4000, 4000, "The Future"),
)

FIRST_EPOCH = EPOCHS[0].epoch
TERMINAL_EPOCH = EPOCHS[-1].epoch

# tech level 1 (dark amber) .. 10 (white)
CITY_COLORS = (
    "#4a3000", "#6b4400", "#8b6914", "#b8860b", "#daa520",
    "#f0c040", "#f5d060", "#fae080", "#fff4c0", "#ffffff",
)


def get_epoch(epoch: int) -> EpochConfig:
    if not FIRST_EPOCH <= epoch <= TERMINAL_EPOCH:
        raise ValueError(f"Unknown epoch: {epoch}")
    return EPOCHS[epoch - 1]


def is_terminal(epoch: int) -> bool:
    return epoch >= TERMINAL_EPOCH


def is_last_playable(epoch: int) -> bool:
    return epoch == TERMINAL_EPOCH - 1


def format_year(year: int) -> str:
    """-2000 -> '2000 BC', 0 -> '1 AD', 1500 -> '1500 AD'."""
    if year < 0:
        return f"{abs(year)} BC"
    if year == 0:
        return "1 AD"
    return f"{year} AD"


def city_color(tech_level: int) -> str:
    return CITY_COLORS[min(max(int(tech_level) - 1, 0), len(CITY_COLORS) - 1)]
