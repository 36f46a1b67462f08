"""Higher-level functional interface to chainkit.

Functions for running samplers which construct the random number generator from a seed,
for cases where fine-grained control over the generator is not needed. For more control
use the functions in the :py:mod:`.samplers` and :py:mod:`.ensembles` modules directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from warnings import warn

import numpy as np

from chainkit.ensembles import EnsembleMode, sample_chains
from chainkit.samplers import sample

if TYPE_CHECKING:
    from chainkit.types import IsDoneFunction


def _get_rng(seed: np.random.Generator | int | None) -> np.random.Generator:
    """Construct NumPy random number generator from seed or generator."""
    if isinstance(seed, np.random.RandomState):
        warn(
            "Use of numpy.random.RandomState random number generators is "
            "deprecated. Please use a numpy.random.Generator instance "
            "instead for example from a call to numpy.random.default_rng.",
            DeprecationWarning,
            stacklevel=3,
        )
        return np.random.Generator(seed._bit_generator)  # noqa: SLF001
    return np.random.default_rng(seed)


def sample_model(
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    n_sample_or_is_done: int | IsDoneFunction,
    *,
    seed: np.random.Generator | int | None = None,
    **kwargs,
) -> Any:  # noqa: ANN401
    """Sample a single chain from a model.

    Args:
        model: Model to sample from. May be mutated in place by the sampler.
        sampler: Sampler to compute transitions with. May be mutated in place.
        n_sample_or_is_done: Either the number of transitions to retain or a stopping
            criterion function, see :py:func:`chainkit.samplers.sample_chain` and
            :py:func:`chainkit.samplers.sample_chain_until` respectively.
        seed: Integer seed or NumPy random number generator. If :code:`None` (the
            default) a generator seeded from operating system entropy is used.
        **kwargs: Any additional options, passed to the sampling loop.

    Returns:
        Transition container, or the result of converting it to any specified
        :code:`chain_type`.
    """
    return sample(_get_rng(seed), model, sampler, n_sample_or_is_done, **kwargs)


def sample_ensemble(
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    n_sample: int,
    n_chain: int,
    *,
    ensemble: EnsembleMode | str = EnsembleMode.THREADED,
    seed: np.random.Generator | int | None = None,
    **kwargs,
) -> Any:  # noqa: ANN401
    """Sample multiple independent chains from a model and merge them.

    Args:
        model: Model to sample from. Each chain uses a copy.
        sampler: Sampler to compute transitions with. Each chain uses a copy.
        n_sample: Number of transitions to retain per chain.
        n_chain: Number of chains to sample.
        ensemble: Concurrency to sample chains with. Defaults to sampling on a pool of
            threads.
        seed: Integer seed or NumPy random number generator to draw per-chain seeds
            from. If :code:`None` (the default) a generator seeded from operating
            system entropy is used.
        **kwargs: Any additional options, passed to
            :py:func:`chainkit.ensembles.sample_chains`.

    Returns:
        Merged chains, ordered by chain index.
    """
    return sample_chains(
        _get_rng(seed), model, sampler, ensemble, n_sample, n_chain, **kwargs
    )
