"""Mapping between wall-clock time and drand round numbers."""

import time
from dataclasses import dataclass

from .abi import DRAND_CHAINS


@dataclass(frozen=True)
class ChainInfo:
    """Identity and timing of one drand chain."""
    hash: str
    public_key: str
    period: int  # seconds
    genesis_time: int  # unix seconds
    scheme: str

    @classmethod
    def preset(cls, name: str) -> "ChainInfo":
        if name not in DRAND_CHAINS:
            raise KeyError(f"Unknown drand chain '{name}'. Available: {sorted(DRAND_CHAINS)}")
        return cls(**DRAND_CHAINS[name])


def now_ms() -> int:
    return int(time.time() * 1000)


def round_at(timestamp_ms: int, chain: ChainInfo) -> int:
    """Round that is (or was) the latest one at `timestamp_ms`.

    Rounds start at 1 at genesis; anything before genesis maps to 1.
    """
    elapsed = timestamp_ms - chain.genesis_time * 1000
    if elapsed < 0:
        return 1
    return max(1, elapsed // (chain.period * 1000) + 1)


def current_round(chain: ChainInfo, timestamp_ms: int | None = None) -> int:
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    return round_at(timestamp_ms, chain)


def round_time(round: int, chain: ChainInfo) -> int:
    """Unix time (seconds) at which `round` is published."""
    if round < 1:
        raise ValueError(f"round must be >= 1, got {round}")
    return chain.genesis_time + (round - 1) * chain.period
