import numpy as np
import pytest

import chainkit
from chainkit.transitions import NO_TRANSITION

SEED = 3046987125


class StandardNormalModel:
    dim = 3


class IndependenceSampler:
    def step(self, rng, model, iteration, transition, **kwargs):
        return rng.standard_normal(model.dim)


class CountingSampler:
    def step(self, rng, model, iteration, transition, **kwargs):
        return 1 if transition is NO_TRANSITION else transition + 1


@pytest.fixture
def model():
    return StandardNormalModel()


@pytest.fixture
def sampler():
    return IndependenceSampler()


def test_sample_model_seed_reproducible(model, sampler):
    chains = [
        chainkit.sample_model(
            model, sampler, 4, seed=SEED, chain_type="array", progress=False
        )
        for _ in range(2)
    ]
    assert chains[0].shape == (4, model.dim)
    assert np.array_equal(chains[0], chains[1])


def test_sample_model_generator_seed(model, sampler):
    chain = chainkit.sample_model(
        model,
        sampler,
        4,
        seed=np.random.default_rng(SEED),
        chain_type="array",
        progress=False,
    )
    expected = np.random.default_rng(SEED).standard_normal((4, model.dim))
    assert np.array_equal(chain, expected)


def test_sample_model_stopping_criterion(model):
    transitions = chainkit.sample_model(
        model,
        CountingSampler(),
        lambda rng, model, sampler, transitions, iteration: transitions[-1] == 6,
        seed=SEED,
        progress=False,
    )
    assert transitions.to_list() == [1, 2, 3, 4, 5, 6]


def test_random_state_raises_deprecation_warning(model, sampler):
    rng = np.random.RandomState(SEED)
    with pytest.deprecated_call():
        chain = chainkit.sample_model(
            model, sampler, 2, seed=rng, chain_type="array", progress=False
        )
    assert chain.shape == (2, model.dim)


@pytest.mark.parametrize("ensemble", ("serial", "threaded"))
def test_sample_ensemble_seed_reproducible(model, sampler, ensemble):
    chains = [
        chainkit.sample_ensemble(
            model,
            sampler,
            3,
            4,
            ensemble=ensemble,
            seed=SEED,
            chain_type="array",
            progress=False,
        )
        for _ in range(2)
    ]
    assert chains[0].shape == (4, 3, model.dim)
    assert np.array_equal(chains[0], chains[1])
    assert not np.array_equal(chains[0][0], chains[0][1])


def test_sample_ensemble_matches_serial_and_threaded(model, sampler):
    serial, threaded = (
        chainkit.sample_ensemble(
            model,
            sampler,
            3,
            4,
            ensemble=ensemble,
            seed=SEED,
            n_worker=2,
            chain_type="array",
            progress=False,
        )
        for ensemble in ("serial", "threaded")
    )
    assert np.array_equal(serial, threaded)
