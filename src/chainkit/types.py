"""Type aliases."""

from __future__ import annotations

from collections.abc import Callable, Hashable
from typing import Any, TypeAlias

from numpy.random import Generator

from chainkit.transitions import TransitionContainer

Transition: TypeAlias = Any
"""Opaque result of a single sampler step."""

StepFunction: TypeAlias = Callable[..., Transition]
"""Function :code:`(rng, model, sampler, iteration, transition, **kwargs)` returning
the next transition."""

CallbackFunction: TypeAlias = Callable[..., None]
"""Function :code:`(rng, model, sampler, n_sample, iteration, transition, **kwargs)`
called after every sampler step."""

IsDoneFunction: TypeAlias = Callable[
    [Generator, Any, Any, TransitionContainer, int], bool
]
"""Function :code:`(rng, model, sampler, transitions, iteration, **kwargs)` returning
whether a convergence-driven run should stop."""

BundleFunction: TypeAlias = Callable[..., Any]
"""Function :code:`(rng, model, sampler, n_sample, transitions, **kwargs)` converting a
transition container to a chain."""

ConcatenateFunction: TypeAlias = Callable[[list[Any]], Any]
"""Function merging a list of per-chain outputs along a new leading chain axis."""

ChainType: TypeAlias = Hashable | None
"""Key selecting a registered chain conversion, :code:`None` for the identity."""
