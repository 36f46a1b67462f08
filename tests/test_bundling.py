import numpy as np
import pytest

import chainkit
from chainkit.bundling import (
    bundle_samples,
    concatenate_chains,
    register_bundler,
    register_concatenator,
)
from chainkit.errors import BundleNotImplementedError
from chainkit.transitions import TransitionContainer

SEED = 3046987125


@pytest.fixture
def rng():
    return np.random.default_rng(SEED)


@pytest.fixture(autouse=True)
def isolated_registries(monkeypatch):
    monkeypatch.setattr(
        chainkit.bundling, "_BUNDLERS", dict(chainkit.bundling._BUNDLERS)
    )
    monkeypatch.setattr(
        chainkit.bundling, "_CONCATENATORS", dict(chainkit.bundling._CONCATENATORS)
    )


def _filled_container(values):
    container = TransitionContainer(len(values))
    for iteration, value in enumerate(values, 1):
        container.save(iteration, value)
    return container


def test_identity_bundle_returns_container(rng):
    container = _filled_container([1, 2, 3])
    assert bundle_samples(rng, None, None, 3, container) is container


def test_unregistered_chain_type_raises(rng):
    with pytest.raises(BundleNotImplementedError, match="not-a-chain-type"):
        bundle_samples(rng, None, None, 1, _filled_container([1]), "not-a-chain-type")


def test_register_identity_chain_type_raises():
    with pytest.raises(ValueError, match="identity"):
        register_bundler(None)


def test_registered_bundler_receives_arguments(rng):
    calls = []

    class Summary:
        pass

    @register_bundler(Summary)
    def bundle_summary(rng, model, sampler, n_sample, transitions, **kwargs):
        calls.append((model, sampler, n_sample, kwargs))
        return sum(transitions)

    container = _filled_container([1, 2, 3])
    assert bundle_samples(rng, "m", "s", 3, container, Summary, extra=1) == 6
    assert calls == [("m", "s", 3, {"extra": 1})]


def test_default_concatenation_returns_list():
    chains = [object(), object()]
    merged = concatenate_chains(tuple(chains))
    assert isinstance(merged, list)
    assert merged == chains


def test_registered_concatenator():
    @register_concatenator("sum")
    def concatenate_sum(chains):
        return sum(chains)

    assert concatenate_chains([1, 2, 3], "sum") == 6


def test_array_bundle_and_concatenation(rng):
    values = [rng.standard_normal(2) for _ in range(4)]
    chain = bundle_samples(rng, None, None, 4, _filled_container(values), "array")
    assert isinstance(chain, np.ndarray)
    assert chain.shape == (4, 2)
    assert np.array_equal(chain, np.stack(values))
    merged = concatenate_chains([chain, chain + 1, chain + 2], "array")
    assert merged.shape == (3, 4, 2)
    assert np.array_equal(merged[1], chain + 1)


def test_dict_bundle_and_concatenation(rng):
    values = [{"pos": rng.standard_normal(3), "accept": i % 2} for i in range(5)]
    chain = bundle_samples(rng, None, None, 5, _filled_container(values), "dict")
    assert chain.keys() == {"pos", "accept"}
    assert chain["pos"].shape == (5, 3)
    assert chain["accept"].tolist() == [0, 1, 0, 1, 0]
    merged = concatenate_chains([chain, chain], "dict")
    assert merged["pos"].shape == (2, 5, 3)
    assert merged["accept"].shape == (2, 5)


def test_dict_bundle_empty_container(rng):
    assert bundle_samples(rng, None, None, 0, TransitionContainer(), "dict") == {}
    assert concatenate_chains([], "dict") == {}


def test_registrations_do_not_leak_between_tests():
    assert "sum" not in chainkit.bundling._CONCATENATORS
    assert set(chainkit.bundling._BUNDLERS) == {"array", "dict"}
