from __future__ import annotations

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(999)


@pytest.fixture
def panel(rng):
    """Balanced panel of 12 units over 5 periods with additive effects."""
    n_units, n_periods = 12, 5
    unit = np.repeat(np.arange(n_units), n_periods)
    time = np.tile(np.arange(n_periods), n_units)
    y = (
        rng.standard_normal(n_units)[unit]
        + rng.standard_normal(n_periods)[time]
        + rng.standard_normal(n_units * n_periods)
    )
    return pd.DataFrame({"unit": unit, "time": time, "y": y})
