"""Containers for the transitions produced by a sampler while running a chain."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from typing_extensions import Self

    from chainkit.types import Transition


class _NoTransition:
    """Type of the placeholder passed as previous transition on a chain's first step.

    Only a single instance exists. Copies and unpickled instances resolve to that same
    instance so identity checks remain valid in replicas and worker processes.
    """

    _instance = None

    def __new__(cls) -> Self:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __copy__(self) -> Self:
        return self

    def __deepcopy__(self, memo: dict) -> Self:
        return self

    def __reduce__(self) -> str:
        return "NO_TRANSITION"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_TRANSITION"


NO_TRANSITION = _NoTransition()
"""Previous transition passed to the step function on the first iteration of a run."""


class _Empty:
    """Marker for slots of a pre-sized container not yet written to."""

    def __reduce__(self) -> str:
        return "_EMPTY"

    def __repr__(self) -> str:
        return "<empty>"


_EMPTY = _Empty()


class TransitionContainer(Sequence):
    """Ordered store of the transitions of a single chain.

    Transitions are saved by (one-based) iteration number. If the number of transitions
    is known in advance the container is pre-sized and each transition is written to a
    fixed slot, otherwise transitions are appended in the order they are produced.

    Indexing follows Python conventions and is zero-based, so the transition saved for
    iteration :code:`k` is :code:`container[k - 1]`.
    """

    def __init__(self, n_sample: int | None = None) -> None:
        """
        Args:
            n_sample: Number of transitions to allocate storage for. If :code:`None`
                (the default) the container grows as transitions are saved.
        """
        self._presized = n_sample is not None
        self._items = [_EMPTY] * n_sample if self._presized else []
        self._n_saved = 0

    @property
    def is_presized(self) -> bool:
        """Whether storage was allocated for a fixed number of transitions."""
        return self._presized

    @property
    def n_saved(self) -> int:
        """Number of transitions saved so far."""
        return self._n_saved

    def save(self, iteration: int, transition: Transition) -> None:
        """Save transition for a given iteration.

        Args:
            iteration: One-based iteration number. For a pre-sized container must be
                between one and the container length. For a growable container must be
                one more than the number of transitions already saved.
            transition: Transition to store.
        """
        if self._presized:
            if not 1 <= iteration <= len(self._items):
                msg = (
                    f"Iteration {iteration} outside of range 1 to {len(self._items)} "
                    "of pre-sized transition container."
                )
                raise IndexError(msg)
            if self._items[iteration - 1] is _EMPTY:
                self._n_saved += 1
            self._items[iteration - 1] = transition
        else:
            if iteration != len(self._items) + 1:
                msg = (
                    f"Iteration {iteration} does not follow last saved iteration "
                    f"{len(self._items)}."
                )
                raise IndexError(msg)
            self._items.append(transition)
            self._n_saved += 1

    def to_list(self) -> list[Transition]:
        """List of saved transitions in iteration order."""
        return list(self)

    def __getitem__(self, index: int | slice) -> Transition | list[Transition]:
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        item = self._items[index]
        if item is _EMPTY:
            msg = f"No transition saved at index {index}."
            raise IndexError(msg)
        return item

    def __iter__(self) -> Iterator[Transition]:
        for item in self._items:
            if item is _EMPTY:
                return
            yield item

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return (
            f"TransitionContainer(n_saved={self._n_saved}, "
            f"presized={self._presized})"
        )
