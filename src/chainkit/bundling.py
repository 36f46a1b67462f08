"""Conversion of sampled transitions into chain outputs.

The conversion applied at the end of a run is selected by a *chain type* key. The
default key :code:`None` leaves the transition container unchanged. Further conversions
can be added with :py:func:`register_bundler` and the corresponding merging of the
outputs of multiple chains with :py:func:`register_concatenator`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from chainkit.errors import BundleNotImplementedError

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.random import Generator
    from numpy.typing import NDArray

    from chainkit.transitions import TransitionContainer
    from chainkit.types import BundleFunction, ChainType, ConcatenateFunction


_BUNDLERS: dict[ChainType, BundleFunction] = {}
_CONCATENATORS: dict[ChainType, ConcatenateFunction] = {}


def register_bundler(
    chain_type: ChainType,
) -> Callable[[BundleFunction], BundleFunction]:
    """Register a function converting a transition container to a chain.

    The decorated function is called as
    :code:`func(rng, model, sampler, n_sample, transitions, **kwargs)`.
    """
    if chain_type is None:
        msg = "Conversion for chain_type=None is fixed to the identity."
        raise ValueError(msg)

    def decorator(func: BundleFunction) -> BundleFunction:
        _BUNDLERS[chain_type] = func
        return func

    return decorator


def register_concatenator(
    chain_type: ChainType,
) -> Callable[[ConcatenateFunction], ConcatenateFunction]:
    """Register a function merging a list of chains of a given type.

    The decorated function is passed a list of chains ordered by chain index and should
    return a single object with a new leading axis indexing the chains.
    """

    def decorator(func: ConcatenateFunction) -> ConcatenateFunction:
        _CONCATENATORS[chain_type] = func
        return func

    return decorator


def bundle_samples(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    n_sample: int,
    transitions: TransitionContainer,
    chain_type: ChainType = None,
    **kwargs,
) -> Any:  # noqa: ANN401
    """Convert the transitions of a run to a chain of the requested type.

    Args:
        rng: NumPy random number generator.
        model: Model sampled from.
        sampler: Sampler used.
        n_sample: Number of transitions in run.
        transitions: Container of transitions of run.
        chain_type: Key of conversion to apply. If :code:`None` (the default) the
            transition container is returned as is.
        **kwargs: Any additional options, forwarded to the conversion function.

    Returns:
        Chain object.

    Raises:
        BundleNotImplementedError: If no conversion is registered for `chain_type`.
    """
    if chain_type is None:
        return transitions
    try:
        bundler = _BUNDLERS[chain_type]
    except KeyError as e:
        msg = f"No conversion to chain type {chain_type!r} is registered."
        raise BundleNotImplementedError(msg) from e
    return bundler(rng, model, sampler, n_sample, transitions, **kwargs)


def concatenate_chains(chains: list[Any], chain_type: ChainType = None) -> Any:  # noqa: ANN401
    """Merge chains along a new leading chain axis.

    Args:
        chains: Chains ordered by chain index.
        chain_type: Key of conversion used to produce chains. If no concatenation
            function is registered for the key, a list of the chains is returned.

    Returns:
        Merged chains.
    """
    concatenator = _CONCATENATORS.get(chain_type)
    if concatenator is None:
        return list(chains)
    return concatenator(chains)


@register_bundler("array")
def _bundle_array(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    n_sample: int,
    transitions: TransitionContainer,
    **kwargs,
) -> NDArray:
    """Stack array-like transitions into array with leading iteration axis."""
    return np.stack([np.asarray(t) for t in transitions])


@register_concatenator("array")
def _concatenate_array(chains: list[NDArray]) -> NDArray:
    return np.stack(chains)


@register_bundler("dict")
def _bundle_dict(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    n_sample: int,
    transitions: TransitionContainer,
    **kwargs,
) -> dict[str, NDArray]:
    """Stack dictionary transitions into a dictionary of arrays.

    Each value in the returned dictionary has a leading iteration axis. Only keys
    present in the first transition are stacked.
    """
    if len(transitions) == 0:
        return {}
    return {
        key: np.stack([np.asarray(t[key]) for t in transitions])
        for key in transitions[0]
    }


@register_concatenator("dict")
def _concatenate_dict(chains: list[dict[str, NDArray]]) -> dict[str, NDArray]:
    if len(chains) == 0:
        return {}
    return {key: np.stack([chain[key] for chain in chains]) for key in chains[0]}
