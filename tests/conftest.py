import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_population(n=350, seed=7):
    """Synthetic school population with the usual stratifying covariates."""
    rng = np.random.RandomState(seed)
    return pd.DataFrame(
        {
            "unitid": np.arange(100000, 100000 + n),
            "pct_female": rng.uniform(0.3, 0.7, n),
            "pct_black": rng.beta(2, 8, n),
            "pct_frlunch": rng.uniform(0.05, 0.95, n),
            "total": rng.randint(200, 3000, n).astype(float),
            "region": rng.choice(["Midwest", "Northeast", "South", "West"], n),
        }
    )


def make_blobs(per_blob=20, seed=3):
    """Three well separated groups on two continuous variables."""
    rng = np.random.RandomState(seed)
    centres = [(0.0, 0.0), (50.0, 0.0), (0.0, 50.0)]
    rows = []
    for g, (cx, cy) in enumerate(centres):
        for i in range(per_blob):
            rows.append(
                {
                    "id": f"g{g}_{i}",
                    "group": g,
                    "x": cx + rng.normal(0, 1),
                    "y": cy + rng.normal(0, 1),
                }
            )
    return pd.DataFrame(rows)


@pytest.fixture
def population():
    return make_population()


@pytest.fixture
def blobs():
    return make_blobs()
