"""Sampling of ensembles of independent chains, optionally in parallel.

All ensemble modes share the same algorithm. Seeds for all chains are drawn from the
base random number generator before any chain is started, so the chain seeds depend
only on the generator state and the number of chains. Each worker (thread or process)
owns an independent copy of the random number generator, model and sampler, whose
generator is reseeded with the chain seed at the start of every chain it runs. A
dedicated thread consumes one completion signal per chain to track overall progress.
The per-chain outputs are merged in chain index order once every chain has finished.
"""

from __future__ import annotations

import enum
import logging
import os
import queue
import signal
import threading
from contextlib import contextmanager, nullcontext
from copy import deepcopy
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
from multiprocess import Pool
from multiprocess.managers import SyncManager
from multiprocess.pool import ThreadPool
from threadpoolctl import threadpool_limits

from chainkit.bundling import concatenate_chains
from chainkit.errors import ChainFailureError
from chainkit.samplers import _check_integer, _construct_progress_bar, sample_chain

if TYPE_CHECKING:
    from collections.abc import Generator as ContextGenerator
    from collections.abc import Sequence
    from contextlib import AbstractContextManager
    from multiprocessing.pool import AsyncResult

    from numpy.random import Generator

    from chainkit.progressbars import ProgressBar
    from chainkit.types import ChainType


logger = logging.getLogger(__name__)

MAX_SEED = 2**32
"""Exclusive upper bound on the integer seeds drawn for each chain."""


class EnsembleMode(enum.Enum):
    """Concurrency used to sample the chains of an ensemble."""

    SERIAL = "serial"
    """Chains sampled one after another in the calling thread."""

    THREADED = "threaded"
    """Chains sampled in parallel on a pool of threads."""

    DISTRIBUTED = "distributed"
    """Chains sampled in parallel on a pool of processes."""


class _ChainReplica(NamedTuple):
    """Random number generator, model and sampler owned by a single worker."""

    rng: Generator
    model: Any
    sampler: Any

    @classmethod
    def copy_of(
        cls,
        rng: Generator,
        model: Any,  # noqa: ANN401
        sampler: Any,  # noqa: ANN401
    ) -> _ChainReplica:
        # Copied together so references shared between the objects are preserved
        return cls(*deepcopy((rng, model, sampler)))


class _ChainOutput(NamedTuple):
    chain_index: int
    chain: Any
    exception: Exception | None


_worker_state = threading.local()


def _ignore_sigint_initializer() -> None:
    """Initializer for processes to force ignoring SIGINT interrupt signals."""
    signal.signal(signal.SIGINT, signal.SIG_IGN)


def _initialize_worker(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
) -> None:
    """Initializer for pool workers creating the worker's own replica.

    An exception raised while copying is recorded rather than propagated, and every
    chain subsequently sent to the worker fails with it.
    """
    _worker_state.replica = None
    _worker_state.copy_exception = None
    try:
        _worker_state.replica = _ChainReplica.copy_of(rng, model, sampler)
    except Exception as exception:
        logger.exception("Exception encountered copying replica for worker")
        _worker_state.copy_exception = exception


def _initialize_process_worker(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
) -> None:
    """Initializer for worker processes, also forcing ignoring SIGINT signals."""
    _ignore_sigint_initializer()
    _initialize_worker(rng, model, sampler)


@contextmanager
def _ignore_sigint_manager() -> ContextGenerator[SyncManager, None, None]:
    """Context-managed SyncManager which ignores SIGINT interrupt signals."""
    manager = SyncManager()
    try:
        manager.start(_ignore_sigint_initializer)
        yield manager
    finally:
        manager.shutdown()


@contextmanager
def _pool_context_manager(
    n_worker: int,
    initializer: Any,  # noqa: ANN401
    initargs: tuple,
    *,
    use_thread_pool: bool,
) -> ContextGenerator[Pool, None, None]:
    """Context-manager for worker pool that ensures clean exiting.

    Compared to built-in context-manager protocol implementation on Pool object which
    calls the `terminate` method on exit which immediately stops the workers, this
    manager instead ensures a clean exit by calling `close` to prevent any additional
    jobs being submitted to pool, and then `join` to wait for all jobs to finish.
    """
    pool_class = ThreadPool if use_thread_pool else Pool
    pool = pool_class(n_worker, initializer, initargs)
    try:
        yield pool
    finally:
        pool.close()
        pool.join()


def _draw_chain_seeds(rng: Generator, n_chain: int) -> list[int]:
    """Draw integer seeds for each of a set of chains in a single batch."""
    if hasattr(rng, "integers"):
        seeds = rng.integers(MAX_SEED, size=n_chain, dtype=np.int64)
    elif hasattr(rng, "randint"):
        seeds = rng.randint(MAX_SEED, size=n_chain, dtype=np.int64)
    else:
        msg = f"Unsupported random number generator type {type(rng)}."
        raise ValueError(msg)
    return seeds.tolist()


def _reseed(rng: Generator, seed: int) -> None:
    """Reseed random number generator in place.

    For NumPy generators the state of the existing bit generator is replaced by that of
    a new bit generator of the same type seeded with `seed`.
    """
    if hasattr(rng, "bit_generator"):
        rng.bit_generator.state = type(rng.bit_generator)(seed).state
    elif hasattr(rng, "seed"):
        rng.seed(seed)
    else:
        msg = f"Unsupported random number generator type {type(rng)}."
        raise ValueError(msg)


def _get_n_worker(ensemble: EnsembleMode, n_worker: int | None, n_chain: int) -> int:
    """Number of workers, each owning a replica, to sample chains with."""
    if ensemble is EnsembleMode.SERIAL:
        return 1
    if n_worker is None:
        n_worker = os.cpu_count() or 1
    else:
        n_worker = _check_integer(n_worker, "Number of workers", 1)
    return min(n_worker, n_chain)


class _ProgressAggregator(threading.Thread):
    """Thread consuming chain completion signals to report overall progress.

    Each item on the signal queue is a tuple :code:`(chain_index, succeeded)`. The
    thread stops after receiving one signal per chain or a :code:`None` item.
    """

    def __init__(
        self,
        signal_queue: queue.Queue,
        n_chain: int,
        progress_bar: ProgressBar,
    ) -> None:
        super().__init__(name="chainkit-progress-aggregator", daemon=True)
        self._signal_queue = signal_queue
        self._n_chain = n_chain
        self._progress_bar = progress_bar
        self.n_signal = 0
        self.n_completed = 0

    def run(self) -> None:
        while self.n_signal < self._n_chain:
            item = self._signal_queue.get()
            if item is None:
                break
            _, succeeded = item
            self.n_signal += 1
            if succeeded:
                self.n_completed += 1
                self._progress_bar.report(self.n_completed / self._n_chain)


@contextmanager
def _aggregate_progress(
    signal_queue: queue.Queue,
    n_chain: int,
    progress_bar: ProgressBar,
) -> ContextGenerator[_ProgressAggregator, None, None]:
    """Run progress aggregator thread for the duration of the context."""
    aggregator = _ProgressAggregator(signal_queue, n_chain, progress_bar)
    aggregator.start()
    try:
        yield aggregator
    finally:
        # Unblocks aggregator if fewer signals than chains were sent
        signal_queue.put(None)
        aggregator.join()


def _run_chain(
    replica: _ChainReplica,
    chain_index: int,
    seed: int,
    n_sample: int,
    signal_queue: queue.Queue,
    chain_kwargs: dict,
) -> _ChainOutput:
    """Sample a single chain of an ensemble using a worker's replica."""
    _reseed(replica.rng, seed)
    try:
        chain = sample_chain(
            replica.rng,
            replica.model,
            replica.sampler,
            n_sample,
            progress=False,
            **chain_kwargs,
        )
    except Exception as exception:
        # Log exception here so that correct traceback is logged
        logger.exception(f"Exception encountered sampling chain {chain_index + 1}")
        signal_queue.put((chain_index, False))
        return _ChainOutput(chain_index, None, exception)
    signal_queue.put((chain_index, True))
    return _ChainOutput(chain_index, chain, None)


def _sample_chain_worker(
    chain_index: int,
    seed: int,
    n_sample: int,
    signal_queue: queue.Queue,
    max_threads_per_process: int | None,
    chain_kwargs: dict,
) -> _ChainOutput:
    """Pool worker function sampling a chain with the worker's replica."""
    if _worker_state.copy_exception is not None:
        signal_queue.put((chain_index, False))
        return _ChainOutput(chain_index, None, _worker_state.copy_exception)
    context = (
        threadpool_limits(limits=max_threads_per_process)
        if max_threads_per_process is not None
        else nullcontext()
    )
    with context:
        return _run_chain(
            _worker_state.replica,
            chain_index,
            seed,
            n_sample,
            signal_queue,
            chain_kwargs,
        )


def _sample_chains_serial(
    replica: _ChainReplica,
    seeds: Sequence[int],
    n_sample: int,
    signal_queue: queue.Queue,
    chain_kwargs: dict,
) -> list[_ChainOutput]:
    """Sample multiple chains sequentially in the calling thread."""
    return [
        _run_chain(replica, chain_index, seed, n_sample, signal_queue, chain_kwargs)
        for chain_index, seed in enumerate(seeds)
    ]


def _gather_outputs(async_results: Sequence[AsyncResult]) -> list[_ChainOutput]:
    """Wait for all chains to finish and collect outputs in chain index order."""
    outputs = []
    for chain_index, async_result in enumerate(async_results):
        try:
            outputs.append(async_result.get())
        except Exception as exception:  # noqa: BLE001
            outputs.append(_ChainOutput(chain_index, None, exception))
    return outputs


def _worker_pool(
    ensemble: EnsembleMode,
    n_worker: int,
    replica: _ChainReplica,
) -> AbstractContextManager[Pool | None]:
    """Context-managed pool of workers each initialized with a copy of replica.

    No pool is created for :code:`EnsembleMode.SERIAL`.
    """
    if ensemble is EnsembleMode.SERIAL:
        return nullcontext()
    use_thread_pool = ensemble is EnsembleMode.THREADED
    return _pool_context_manager(
        n_worker,
        _initialize_worker if use_thread_pool else _initialize_process_worker,
        tuple(replica),
        use_thread_pool=use_thread_pool,
    )


def _sample_chains_parallel(
    pool: Pool,
    seeds: Sequence[int],
    n_sample: int,
    signal_queue: queue.Queue,
    chain_kwargs: dict,
    max_threads_per_process: int | None = None,
) -> list[_ChainOutput]:
    """Sample multiple chains in parallel over a pool of threads or processes."""
    async_results = [
        pool.apply_async(
            _sample_chain_worker,
            (
                chain_index,
                seed,
                n_sample,
                signal_queue,
                max_threads_per_process,
                chain_kwargs,
            ),
        )
        for chain_index, seed in enumerate(seeds)
    ]
    return _gather_outputs(async_results)


def _collate_chain_outputs(outputs: Sequence[_ChainOutput]) -> list[Any]:
    """Extract chains ordered by index, raising the error of first failed chain."""
    outputs = sorted(outputs, key=lambda output: output.chain_index)
    for output in outputs:
        if output.exception is not None:
            msg = (
                f"Sampling chain {output.chain_index + 1} of {len(outputs)} failed "
                f"with {type(output.exception).__name__}: {output.exception}"
            )
            raise ChainFailureError(msg, output.chain_index) from output.exception
    return [output.chain for output in outputs]


def sample_chains(
    rng: Generator,
    model: Any,  # noqa: ANN401
    sampler: Any,  # noqa: ANN401
    ensemble: EnsembleMode | str,
    n_sample: int,
    n_chain: int,
    *,
    n_worker: int | None = None,
    progress: bool | None = None,
    progress_name: str = "Parallel sampling",
    progress_bar_class: type[ProgressBar] | None = None,
    max_threads_per_process: int | None = None,
    chain_type: ChainType = None,
    **kwargs,
) -> Any:  # noqa: ANN401
    """Sample an ensemble of independent chains and merge them.

    Each chain is sampled with :py:func:`chainkit.samplers.sample_chain` using a copy
    of the random number generator, model and sampler owned by the worker running the
    chain, with the random number generator reseeded with a seed drawn for the chain
    from `rng` before any chain starts. The chains outputs are therefore independent of
    the ensemble mode and the number of workers.

    Chains are never cancelled once started. If sampling any chain raises an exception,
    all chains are still run to completion before a
    :py:class:`chainkit.errors.ChainFailureError` is raised for the lowest indexed
    failed chain, with no chain outputs returned.

    The random number generator, model and sampler are deep copied once in the
    calling thread before any worker starts, so any exception raised copying them,
    for example a :py:exc:`TypeError` for objects holding locks, propagates unchanged.

    Args:
        rng: NumPy random number generator to draw per-chain seeds from. Exactly
            `n_chain` values are drawn from it and it is not otherwise used.
        model: Model to sample from. Not mutated, each worker samples from a copy.
        sampler: Sampler to compute transitions with. Not mutated, each worker uses a
            copy.
        ensemble: Concurrency to sample chains with, a :py:class:`EnsembleMode` or
            its string value.
        n_sample: Number of transitions to retain per chain. Must be a positive integer.
        n_chain: Number of chains to sample. Must be a positive integer.
        n_worker: Number of threads or processes to sample chains over. Defaults to
            :py:func:`os.cpu_count` if :code:`None`. Never more workers than chains are
            started. Ignored for :code:`EnsembleMode.SERIAL`.
        progress: Whether to report progress as the fraction of chains completed. If
            :code:`None` (the default) the value returned by
            :py:func:`chainkit.progressbars.get_progress` is used. Progress within
            each chain is never reported.
        progress_name: Description of task shown by progress bar.
        progress_bar_class: Class of progress bar to report progress to if enabled.
            Defaults to :py:class:`chainkit.progressbars.FractionProgressBar`.
        max_threads_per_process: Maximum number of threads each worker process can use
            in thread pools of libraries supported by :py:mod:`threadpoolctl`, which
            include BLAS and OpenMP implementations. Only has an effect for
            :code:`EnsembleMode.DISTRIBUTED`. No limit is set if :code:`None`.
        chain_type: Key of conversion applied to the transitions of each chain, also
            selecting how chains are merged. The default :code:`None` returns a list of
            the transition containers of each chain.
        **kwargs: Any additional options, forwarded to
            :py:func:`chainkit.samplers.sample_chain` for every chain, for example
            :code:`callback`, :code:`discard_initial` and :code:`thinning`.

    Returns:
        Merged chains, with the chains ordered by chain index.

    Raises:
        InvalidArgumentError: If `n_sample`, `n_chain` or `n_worker` are not valid.
            Raised before any chain starts.
        ChainFailureError: If sampling any of the chains raised an exception,
            including a worker failing to copy the model and sampler.
    """
    ensemble = EnsembleMode(ensemble)
    n_sample = _check_integer(n_sample, "Number of samples", 1)
    n_chain = _check_integer(n_chain, "Number of chains", 1)
    n_worker = _get_n_worker(ensemble, n_worker, n_chain)
    # Errors copying the objects raise here in the calling thread
    replica = _ChainReplica.copy_of(rng, model, sampler)
    # Seeds must be drawn before starting workers so they do not depend on scheduling
    seeds = _draw_chain_seeds(rng, n_chain)
    chain_kwargs = {"chain_type": chain_type, **kwargs}
    logger.debug(
        "Sampling %d chains in %s mode with %d worker(s)",
        n_chain,
        ensemble.value,
        n_worker,
    )
    use_manager = ensemble is EnsembleMode.DISTRIBUTED
    # Worker processes are started before the progress aggregator thread
    with (
        (_ignore_sigint_manager() if use_manager else nullcontext()) as manager,
        _construct_progress_bar(progress, progress_name, progress_bar_class) as pbar,
        _worker_pool(ensemble, n_worker, replica) as pool,
    ):
        signal_queue = manager.Queue() if use_manager else queue.Queue()
        with _aggregate_progress(signal_queue, n_chain, pbar):
            if pool is None:
                outputs = _sample_chains_serial(
                    replica, seeds, n_sample, signal_queue, chain_kwargs
                )
            else:
                outputs = _sample_chains_parallel(
                    pool,
                    seeds,
                    n_sample,
                    signal_queue,
                    chain_kwargs,
                    max_threads_per_process if use_manager else None,
                )
    return concatenate_chains(_collate_chain_outputs(outputs), chain_type)
