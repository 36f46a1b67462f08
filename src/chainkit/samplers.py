"""Sequential loops sampling a single chain by repeatedly stepping a sampler."""

from __future__ import annotations

import logging
import numbers
from typing import TYPE_CHECKING, Any

from chainkit.bundling import bundle_samples
from chainkit.errors import InvalidArgumentError
from chainkit.progressbars import DummyProgressBar, FractionProgressBar, get_progress
from chainkit.protocol import sample_end, sample_init, step
from chainkit.transitions import NO_TRANSITION, TransitionContainer

if TYPE_CHECKING:
    from numpy.random import Generator

    from chainkit.progressbars import ProgressBar
    from chainkit.types import CallbackFunction, ChainType, IsDoneFunction


logger = logging.getLogger(__name__)


def _no_op_callback(*args, **kwargs) -> None:
    """Default callback, does nothing."""


def _check_integer(value: Any, name: str, minimum: int) -> int:  # noqa: ANN401
    """Check value is an integer no smaller than minimum, raising otherwise."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        msg = f"{name} must be an integer, got {value!r}."
        raise InvalidArgumentError(msg)
    if value < minimum:
        msg = f"{name} must be ≥ {minimum}, got {value}."
        raise InvalidArgumentError(msg)
    return int(value)


def _construct_progress_bar(
    progress: bool | None,  # noqa: FBT001
    progress_name: str,
    progress_bar_class: type[ProgressBar] | None,
) -> ProgressBar:
    """Set up progress bar, resolving the default progress setting at call time."""
    if progress is None:
        progress = get_progress()
    if not progress:
        return DummyProgressBar(progress_name)
    if progress_bar_class is None:
        progress_bar_class = FractionProgressBar
    return progress_bar_class(progress_name)


def n_internal_step(n_sample: int, discard_initial: int = 0, thinning: int = 1) -> int:
    """Number of sampler steps needed to retain a given number of transitions.

    Args:
        n_sample: Number of transitions to retain.
        discard_initial: Number of initial steps whose transitions are discarded.
        thinning: Retain only every `thinning`-th transition after discarded steps.

    Returns:
        Total number of sampler steps.
    """
    return discard_initial + (n_sample - 1) * thinning + 1


def sample_chain(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    n_sample: int,
    *,
    progress: bool | None = None,
    progress_name: str = "Sampling",
    progress_bar_class: type[ProgressBar] | None = None,
    callback: CallbackFunction | None = None,
    chain_type: ChainType = None,
    discard_initial: int = 0,
    thinning: int = 1,
    **kwargs,
) -> Any:  # noqa: ANN401
    """Sample a chain with a fixed number of retained transitions.

    The sampler is stepped :code:`discard_initial + (n_sample - 1) * thinning + 1`
    times. The transitions of the first :code:`discard_initial` steps are discarded and
    of the remainder only every :code:`thinning`-th is retained, starting with the
    first.

    Args:
        rng: NumPy random number generator. Used by the step function and so mutated.
        model: Model to sample from. May be mutated in place by the sampler.
        sampler: Sampler to compute transitions with. May be mutated in place.
        n_sample: Number of transitions to retain. Must be a positive integer.
        progress: Whether to report progress. If :code:`None` (the default) the value
            returned by :py:func:`chainkit.progressbars.get_progress` is used.
        progress_name: Description of task shown by progress bar.
        progress_bar_class: Class of progress bar to report progress to if enabled.
            Defaults to :py:class:`chainkit.progressbars.FractionProgressBar`.
        callback: Function called after every sampler step, including those whose
            transitions are discarded, as
            :code:`callback(rng, model, sampler, n_sample, iteration, transition,
            **kwargs)`.
        chain_type: Key of conversion applied to transition container at the end of the
            run. The default :code:`None` returns the container unchanged.
        discard_initial: Number of initial sampler steps whose transitions are
            discarded. Must be non-negative.
        thinning: Spacing between retained transitions. Must be a positive integer.
        **kwargs: Any additional options, forwarded to the step function, callback,
            set up and finalization hooks and conversion function.

    Returns:
        Transition container, or the result of converting it to `chain_type`.

    Raises:
        InvalidArgumentError: If `n_sample`, `discard_initial` or `thinning` are not
            valid. Raised before any sampler steps.
    """
    n_sample = _check_integer(n_sample, "Number of samples", 1)
    discard_initial = _check_integer(discard_initial, "discard_initial", 0)
    thinning = _check_integer(thinning, "thinning", 1)
    if callback is None:
        callback = _no_op_callback
    sample_init(rng, model, sampler, n_sample, **kwargs)
    transitions = TransitionContainer(n_sample)
    transition = NO_TRANSITION
    sample_index = 0
    with _construct_progress_bar(progress, progress_name, progress_bar_class) as pbar:
        for iteration in range(
            1, n_internal_step(n_sample, discard_initial, thinning) + 1
        ):
            transition = step(rng, model, sampler, iteration, transition, **kwargs)
            callback(rng, model, sampler, n_sample, iteration, transition, **kwargs)
            if (
                iteration > discard_initial
                and (iteration - discard_initial - 1) % thinning == 0
            ):
                sample_index += 1
                transitions.save(sample_index, transition)
                pbar.report(sample_index / n_sample)
    sample_end(rng, model, sampler, n_sample, transitions, **kwargs)
    return bundle_samples(
        rng, model, sampler, n_sample, transitions, chain_type, **kwargs
    )


def sample_chain_until(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    is_done: IsDoneFunction,
    *,
    progress: bool | None = None,
    progress_name: str = "Convergence sampling",
    progress_bar_class: type[ProgressBar] | None = None,
    callback: CallbackFunction | None = None,
    chain_type: ChainType = None,
    **kwargs,
) -> Any:  # noqa: ANN401
    """Sample a chain until a stopping criterion is satisfied.

    The first iteration is always run. After each iteration :code:`k` the stopping
    criterion is evaluated as
    :code:`is_done(rng, model, sampler, transitions, k, **kwargs)` where
    :code:`transitions` is the container of all :code:`k` transitions sampled so far,
    with sampling stopping when it returns :code:`True`. The criterion can therefore
    be a function of the whole chain history, for example a convergence diagnostic.

    Note that if :code:`is_done` depends on state external to its arguments, such as the
    wall-clock time, the number of iterations run is not reproducible even when the
    random number generator is seeded identically.

    Args:
        rng: NumPy random number generator. Used by the step function and so mutated.
        model: Model to sample from. May be mutated in place by the sampler.
        sampler: Sampler to compute transitions with. May be mutated in place.
        is_done: Stopping criterion, returning whether sampling should end.
        progress: Whether to report progress. If :code:`None` (the default) the value
            returned by :py:func:`chainkit.progressbars.get_progress` is used. As the
            number of iterations is not known in advance, completion is only reported
            once the criterion is satisfied.
        progress_name: Description of task shown by progress bar.
        progress_bar_class: Class of progress bar to report progress to if enabled.
            Defaults to :py:class:`chainkit.progressbars.FractionProgressBar`.
        callback: Function called after every sampler step as
            :code:`callback(rng, model, sampler, 1, iteration, transition, **kwargs)`.
        chain_type: Key of conversion applied to transition container at the end of the
            run. The default :code:`None` returns the container unchanged.
        **kwargs: Any additional options, forwarded to the step function, callback,
            stopping criterion, set up and finalization hooks and conversion function.

    Returns:
        Transition container, or the result of converting it to `chain_type`.
    """
    if callback is None:
        callback = _no_op_callback
    sample_init(rng, model, sampler, 1, **kwargs)
    transitions = TransitionContainer()
    with _construct_progress_bar(progress, progress_name, progress_bar_class) as pbar:
        iteration = 1
        transition = step(rng, model, sampler, iteration, NO_TRANSITION, **kwargs)
        callback(rng, model, sampler, 1, iteration, transition, **kwargs)
        transitions.save(iteration, transition)
        while not is_done(rng, model, sampler, transitions, iteration, **kwargs):
            iteration += 1
            transition = step(rng, model, sampler, iteration, transition, **kwargs)
            callback(rng, model, sampler, 1, iteration, transition, **kwargs)
            transitions.save(iteration, transition)
        pbar.report(1.0)
    logger.debug("Stopping criterion satisfied after %d iterations", iteration)
    sample_end(rng, model, sampler, iteration, transitions, **kwargs)
    return bundle_samples(
        rng, model, sampler, iteration, transitions, chain_type, **kwargs
    )


def sample(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    n_sample_or_is_done: int | IsDoneFunction,
    **kwargs,
) -> Any:  # noqa: ANN401
    """Sample a chain for a fixed number of samples or until a criterion is satisfied.

    Dispatches to :py:func:`sample_chain` if :code:`n_sample_or_is_done` is an integer
    and to :py:func:`sample_chain_until` if it is callable.
    """
    if isinstance(n_sample_or_is_done, numbers.Integral):
        return sample_chain(rng, model, sampler, n_sample_or_is_done, **kwargs)
    if callable(n_sample_or_is_done):
        return sample_chain_until(rng, model, sampler, n_sample_or_is_done, **kwargs)
    msg = (
        "Expected number of samples or stopping criterion function, got "
        f"{n_sample_or_is_done!r}."
    )
    raise InvalidArgumentError(msg)
