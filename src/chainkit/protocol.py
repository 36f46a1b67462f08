"""Interface between the sampling loops and the algorithms they drive.

An algorithm provides a *step function* producing the next transition of a chain from
the previous one. Step functions can be supplied either by registering a plain function
for a pair of model and sampler types with :py:func:`register_step` or by giving the
sampler object a :code:`step` method (see :py:class:`Stepper`). A sampler may also
define :code:`sample_init` and :code:`sample_end` methods which are called before the
first and after the last step of a run respectively.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from chainkit.errors import StepNotImplementedError
from chainkit.transitions import NO_TRANSITION

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.random import Generator

    from chainkit.transitions import TransitionContainer
    from chainkit.types import StepFunction, Transition


logger = logging.getLogger(__name__)

_STEP_FUNCTIONS: dict[tuple[type, type], StepFunction] = {}


class AbstractModel:
    """Base class for models describing a target distribution.

    Inheriting from this class is optional, it exists so that step functions can be
    registered for all models.
    """


class AbstractSampler:
    """Base class for samplers holding any persistent algorithm state.

    Inheriting from this class is optional, it exists so that step functions can be
    registered for all samplers.
    """


@runtime_checkable
class Stepper(Protocol):
    """Sampler which computes its own transitions."""

    def step(
        self,
        rng: Generator,
        model: Any,  # noqa: ANN401
        iteration: int,
        transition: Transition,
        **kwargs,
    ) -> Transition:
        """Compute next transition of chain.

        Args:
            rng: NumPy random number generator.
            model: Model being sampled from. May be mutated in place.
            iteration: One-based index of the iteration being computed.
            transition: Transition from previous iteration or
                :py:data:`chainkit.transitions.NO_TRANSITION` on first iteration.

        Returns:
            Transition for current iteration.
        """


def register_step(
    model_type: type, sampler_type: type
) -> Callable[[StepFunction], StepFunction]:
    """Register a step function for a model and sampler type pair.

    Used as a decorator, for example

        @register_step(MyModel, MySampler)
        def my_step(rng, model, sampler, iteration, transition, **kwargs):
            ...

    The registered function applies to subclasses of the given types unless a function
    is registered for a more specific pair.
    """

    def decorator(func: StepFunction) -> StepFunction:
        _STEP_FUNCTIONS[model_type, sampler_type] = func
        return func

    return decorator


def _sampler_step(rng, model, sampler, iteration, transition, **kwargs):
    return sampler.step(rng, model, iteration, transition, **kwargs)


def _find_step_function(model: Any, sampler: Any) -> StepFunction | None:  # noqa: ANN401
    for model_type in type(model).__mro__:
        for sampler_type in type(sampler).__mro__:
            func = _STEP_FUNCTIONS.get((model_type, sampler_type))
            if func is not None:
                return func
    if isinstance(sampler, Stepper):
        return _sampler_step
    return None


def step(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    iteration: int,
    transition: Transition = NO_TRANSITION,
    **kwargs,
) -> Transition:
    """Compute the next transition of a chain.

    Args:
        rng: NumPy random number generator.
        model: Model being sampled from.
        sampler: Sampler holding algorithm state.
        iteration: One-based index of the iteration being computed.
        transition: Transition from previous iteration. Defaults to
            :py:data:`chainkit.transitions.NO_TRANSITION`, corresponding to the first
            iteration.
        **kwargs: Any additional options, forwarded to step function unchanged.

    Returns:
        Transition for current iteration.

    Raises:
        StepNotImplementedError: If no step function is registered for the model and
            sampler types and the sampler does not implement a :code:`step` method.
    """
    func = _find_step_function(model, sampler)
    if func is None:
        msg = (
            f"No step function is implemented for models of type "
            f"{type(model).__name__}, samplers of type {type(sampler).__name__} and "
            f"transitions of type {type(transition).__name__}."
        )
        raise StepNotImplementedError(msg)
    return func(rng, model, sampler, iteration, transition, **kwargs)


def sample_init(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    n_sample: int,
    **kwargs,
) -> None:
    """Perform any set up of model and sampler (in place) before first step."""
    if hasattr(sampler, "sample_init"):
        sampler.sample_init(rng, model, n_sample, **kwargs)
    else:
        logger.debug(
            "the default sample_init hook is used for %s and %s",
            type(model).__name__,
            type(sampler).__name__,
        )


def sample_end(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    n_sample: int,
    transitions: TransitionContainer,
    **kwargs,
) -> None:
    """Perform any finalization of model and sampler (in place) after last step."""
    if hasattr(sampler, "sample_end"):
        sampler.sample_end(rng, model, n_sample, transitions, **kwargs)
    else:
        logger.debug(
            "the default sample_end hook is used for %s and %s",
            type(model).__name__,
            type(sampler).__name__,
        )
