from __future__ import annotations

import pytest
from _factories import fixed_clock

from lampfleet.config import FleetConfig
from lampfleet.state.store import FleetStore


@pytest.fixture
def fast_config() -> FleetConfig:
    return FleetConfig(
        flying_delay=0.01,
        replacing_delay=0.01,
        returning_delay=0.01,
        tick_interval=60.0,
        random_seed=7,
    )


@pytest.fixture
def store(fast_config: FleetConfig) -> FleetStore:
    return FleetStore(fast_config, clock=fixed_clock)
