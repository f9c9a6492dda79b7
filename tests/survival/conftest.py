"""
Shared survival fixtures.

Simulated datasets use seeded generators so every test sees the same data.
"""

import numpy as np
import pytest

from pystatsurv.survival import SurvivalDataset


def simulate_cox(rng, n=200, beta=(0.7, -0.5), censor_rate=0.3):
    """Exponential PH data: x1 ~ N(0,1), x2 ~ Bernoulli(0.5)."""
    x1 = rng.standard_normal(n)
    x2 = rng.binomial(1, 0.5, n).astype(np.float64)
    eta = beta[0] * x1 + beta[1] * x2
    t_event = rng.exponential(1.0 / np.exp(eta))
    t_cens = rng.exponential(1.0 / censor_rate, n)
    time = np.minimum(t_event, t_cens)
    event = (t_event <= t_cens).astype(np.float64)
    return time, event, np.column_stack([x1, x2])


def simulate_competing(rng, n=300, beta1=0.6, beta2=-0.4):
    """Two cause-specific exponential hazards plus uniform censoring."""
    x = rng.standard_normal(n)
    g = rng.binomial(1, 0.5, n)
    t1 = rng.exponential(1.0 / (0.5 * np.exp(beta1 * x)))
    t2 = rng.exponential(1.0 / (0.3 * np.exp(beta2 * x)))
    tc = rng.uniform(0.5, 4.0, n)
    time = np.minimum(np.minimum(t1, t2), tc)
    status = np.where(time == t1, 1, np.where(time == t2, 2, 0))
    return time, status, x, g


def simulate_clustered(rng, n_clusters=30, size=10, theta=1.0, beta=0.5):
    """Shared gamma frailty (mean 1, variance theta) per cluster."""
    n = n_clusters * size
    cluster = np.repeat(np.arange(n_clusters), size)
    z = rng.gamma(1.0 / theta, theta, n_clusters)[cluster]
    x = rng.standard_normal(n)
    t_event = rng.exponential(1.0 / (z * np.exp(beta * x)))
    t_cens = rng.exponential(2.0, n)
    time = np.minimum(t_event, t_cens)
    event = (t_event <= t_cens).astype(np.float64)
    return time, event, x, cluster


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def cox_dataset(rng):
    time, event, X = simulate_cox(rng)
    return SurvivalDataset.from_arrays(time, event, X, names=["x1", "x2"])


@pytest.fixture
def competing_dataset(rng):
    time, status, x, g = simulate_competing(rng)
    return SurvivalDataset.from_arrays(
        time, status, x,
        names=["x"],
        factors={"group": np.where(g == 1, "b", "a")},
        event_domain="competing",
    )


@pytest.fixture
def clustered_dataset(rng):
    time, event, x, cluster = simulate_clustered(rng)
    return SurvivalDataset.from_arrays(
        time, event, x, names=["x"], cluster=cluster
    )


@pytest.fixture
def large_cox_dataset(rng):
    time, event, X = simulate_cox(rng, n=2000)
    return SurvivalDataset.from_arrays(time, event, X, names=["x1", "x2"])


@pytest.fixture
def grouped_cox_dataset(rng):
    """120 subjects in 30 clusters of 4."""
    time, event, X = simulate_cox(rng, n=120)
    return SurvivalDataset.from_arrays(
        time, event, X, names=["x1", "x2"], cluster=np.repeat(np.arange(30), 4)
    )
