"""Progress bar classes for tracking the fraction of sampling completed."""

from __future__ import annotations

import abc
import html
import importlib
import logging
import sys
from timeit import default_timer as timer
from typing import TYPE_CHECKING, Protocol

try:
    from IPython import get_ipython
    from IPython.display import display as ipython_display

    IPYTHON_AVAILABLE = True
except ImportError:
    IPYTHON_AVAILABLE = False

if TYPE_CHECKING:
    from collections.abc import Collection
    from types import TracebackType
    from typing import Any, TextIO

    from typing_extensions import Self


logger = logging.getLogger(__name__)

ON_COLAB = (
    importlib.util.find_spec("google") is not None
    and importlib.util.find_spec("google.colab") is not None
)

_progress_enabled = True


def get_progress() -> bool:
    """Whether progress is reported by default by the sampling entry points."""
    return _progress_enabled


def set_progress(enabled: bool) -> None:  # noqa: FBT001
    """Enable or disable progress reporting by default.

    Only affects sampling calls made after this function returns and which do not
    explicitly set the :code:`progress` argument.
    """
    global _progress_enabled  # noqa: PLW0603
    _progress_enabled = bool(enabled)
    logger.info(
        "progress reporting is %s globally",
        "enabled" if _progress_enabled else "disabled",
    )


_NOTEBOOK_SHELLS = {
    ("ipykernel.zmqshell", "ZMQInteractiveShell"),
    ("pyodide_kernel.interpreter", "Interpreter"),
}


def _in_interactive_shell() -> bool:
    """Whether running in a notebook shell supporting updateable displays."""
    if not IPYTHON_AVAILABLE:
        return False
    if ON_COLAB:
        return True
    shell = get_ipython()
    if shell is None:
        return False
    return (shell.__module__, shell.__class__.__name__) in _NOTEBOOK_SHELLS


class UpdateableDisplay(Protocol):
    """Updateable display."""

    def update(self, obj: Any) -> None:  # noqa: ANN401
        """Update display with representation of object."""


def _create_display(
    obj: Any,  # noqa: ANN401
    position: tuple[int, int],
) -> UpdateableDisplay:
    """Create a notebook display if available, otherwise a terminal line display."""
    if _in_interactive_shell():
        return ipython_display(obj, display_id=True)
    return FileDisplay(position)


def _format_time(total_seconds: float) -> str:
    """Format a time interval in seconds as a colon-delimited string [h:]m:s."""
    total_mins, seconds = divmod(int(total_seconds), 60)
    hours, mins = divmod(total_mins, 60)
    if hours != 0:
        return f"{hours:d}:{mins:02d}:{seconds:02d}"
    return f"{mins:02d}:{seconds:02d}"


class ProgressBar(abc.ABC):
    """Base class defining expected interface for progress sinks.

    Progress is reported as the fraction of a task completed, a float in [0, 1].
    """

    def __init__(
        self,
        description: str | None = None,
        position: tuple[int, int] = (0, 1),
    ) -> None:
        """
        Args:
            description: Description of task to prefix progress bar with.
            position: Tuple specifying position of progress bar within a sequence with
                first entry corresponding to zero-indexed position and the second entry
                the total number of progress bars.
        """
        self._description = description
        self._position = position
        self._active = False

    @property
    def description(self) -> str | None:
        """Description of task being tracked."""
        return self._description

    @abc.abstractmethod
    def report(self, fraction: float) -> None:
        """Report fraction of task completed.

        Args:
            fraction: Proportion of task completed, in [0, 1].
        """

    def __enter__(self) -> Self:
        """Set up progress bar and any associated resource."""
        self._active = True
        return self

    def __exit__(
        self,
        _exc_type: None | type[BaseException],
        _exc_value: None | BaseException,
        _traceback: None | TracebackType,
    ) -> bool:
        """Close down progress bar and any associated resources."""
        self._active = False
        return False


class DummyProgressBar(ProgressBar):
    """Placeholder progress bar which does not display progress updates."""

    def report(self, fraction: float) -> None:
        pass


class FractionProgressBar(ProgressBar):
    """Progress bar displaying the fraction of a task completed.

    Implements both string and HTML representations to allow richer
    display in interfaces which support HTML output, for example Jupyter
    notebooks or interactive terminals.
    """

    GLYPHS = " ▏▎▍▌▋▊▉█"
    """Characters used to create string representation of progress bar."""

    def __init__(
        self,
        description: str | None = None,
        position: tuple[int, int] = (0, 1),
        displays: Collection | None = None,
        n_col: int = 10,
        min_refresh_time: float = 0.25,
    ) -> None:
        """
        Args:
            description: Description of task to prefix progress bar with.
            position: Tuple specifying position of progress bar within a sequence with
                first entry corresponding to zero-indexed position and the second entry
                the total number of progress bars.
            displays: List of objects to use to display visual representation(s) of
                progress bar. Each object much have an `update` method which will be
                passed a single argument corresponding to the current progress bar.
            n_col: Number of columns (characters) to use in string representation of
                progress bar.
            min_refresh_time: Minimum time in seconds between each refresh of progress
                bar visual representation.
        """
        super().__init__(description, position)
        self._n_col = n_col
        self._prop_complete = 0.0
        self._start_time = None
        self._elapsed_time = 0
        self._last_refresh_time = -float("inf")
        self._displays = displays
        self._min_refresh_time = min_refresh_time

    @property
    def prop_complete(self) -> float:
        """Proportion complete (float value in [0, 1])."""
        return self._prop_complete

    @property
    def perc_complete(self) -> str:
        """Percentage complete formatted as string."""
        return f"{int(self.prop_complete * 100):3d}%"

    @property
    def elapsed_time(self) -> str:
        """Elapsed time formatted as string."""
        return _format_time(self._elapsed_time)

    @property
    def est_remaining_time(self) -> str:
        """Estimated remaining time to completion formatted as string."""
        if self.prop_complete == 0:
            return "?"
        return _format_time((1 / self.prop_complete - 1) * self._elapsed_time)

    @property
    def progress_bar(self) -> str:
        """Bar of block glyphs, the last filled column drawn as a partial block."""
        n_filled, remainder = divmod(self._n_col * self.prop_complete, 1)
        n_filled = int(n_filled)
        partial = (
            self.GLYPHS[int(remainder * len(self.GLYPHS))]
            if n_filled < self._n_col
            else ""
        )
        return f"|{(self.GLYPHS[-1] * n_filled + partial).ljust(self._n_col)}|"

    @property
    def prefix(self) -> str:
        """Text to prefix progress bar with."""
        return (
            f"{self.description + ': ' if self.description else ''}{self.perc_complete}"
        )

    @property
    def postfix(self) -> str:
        """Text to postfix progress bar with."""
        return f" [{self.elapsed_time}<{self.est_remaining_time}]"

    def reset(self) -> None:
        """Reset progress bar state."""
        self._prop_complete = 0.0
        self._start_time = timer()
        self._elapsed_time = 0
        self._last_refresh_time = -float("inf")

    def report(self, fraction: float) -> None:
        """Update progress bar state.

        Args:
            fraction: Proportion of task completed, in [0, 1].
        """
        self._prop_complete = max(0.0, min(float(fraction), 1.0))
        self._elapsed_time = timer() - self._start_time
        if (
            self._prop_complete == 1
            or timer() - self._last_refresh_time > self._min_refresh_time
        ):
            self.refresh()
            self._last_refresh_time = timer()

    def refresh(self) -> None:
        """Refresh visual display(s) of progress bar."""
        for display in self._displays:
            display.update(self)

    def __str__(self) -> str:
        return f"{self.prefix}{self.progress_bar}{self.postfix}"

    def __repr__(self) -> str:
        return self.__str__()

    def _repr_html_(self) -> str:
        return (
            '<div style="font-family: var(--jp-code-font-family, monospace);">'
            f"{html.escape(self.prefix)} "
            f'<progress value="{self.prop_complete:.3f}" max="1"></progress>'
            f"{html.escape(self.postfix)}</div>"
        )

    def __enter__(self) -> Self:
        super().__enter__()
        self.reset()
        if self._displays is None:
            self._displays = [_create_display(self, self._position)]
        return self

    def __exit__(
        self,
        exc_type: None | type[BaseException],
        exc_value: None | BaseException,
        traceback: None | TracebackType,
    ) -> bool:
        ret_val = super().__exit__(exc_type, exc_value, traceback)
        if self.prop_complete != 1:
            self.refresh()
        return ret_val


class LoggingProgressBar(ProgressBar):
    """Progress sink which emits log records as the task advances.

    A record at :code:`INFO` level is emitted each time the fraction completed crosses
    a multiple of :code:`step`.
    """

    def __init__(
        self,
        description: str | None = None,
        position: tuple[int, int] = (0, 1),
        step: float = 0.1,
    ) -> None:
        """
        Args:
            description: Description of task to prefix log messages with.
            position: Unused, accepted for compatibility with other progress bars.
            step: Spacing of fractions completed at which records are emitted.
        """
        super().__init__(description, position)
        self._step = step
        self._n_logged = 0
        self._start_time = None

    def report(self, fraction: float) -> None:
        n_step = int(fraction / self._step + 1e-9)
        if n_step > self._n_logged:
            self._n_logged = n_step
            logger.info(
                "%s%3d%% [%s]",
                f"{self.description}: " if self.description else "",
                int(fraction * 100),
                _format_time(timer() - self._start_time),
            )

    def __enter__(self) -> Self:
        super().__enter__()
        self._n_logged = 0
        self._start_time = timer()
        return self


class FileDisplay:
    """Use file which supports ANSI escape sequences as an updatable display."""

    CURSOR_UP = "\x1b[A"
    """ANSI escape sequence to move cursor up one line."""

    CURSOR_DOWN = "\x1b[B"
    """ANSI escape sequence to move cursor down one line."""

    def __init__(
        self,
        position: tuple[int, int] = (0, 1),
        file: TextIO | None = None,
    ) -> None:
        r"""
        Args:
            position: Tuple specifying position of display line within a sequence lines
                with first entry corresponding to zero-indexed line and the second entry
                the total number of lines.
            file: File object to write updates to. Must support ANSI escape sequences
                `\x1b[A}` (cursor up) and `\\x1b[B` (cursor down) for manipulating
                write position. Defaults to `sys.stdout` if `None`.
        """
        self._position = position
        self._file = file if file is not None else sys.stdout
        self._last_string_length = 0
        if self._position[0] == 0:
            self._file.write("\n" * self._position[1])
        self._file.flush()

    def _move_line(self, offset: int) -> None:
        self._file.write(self.CURSOR_DOWN * offset + self.CURSOR_UP * -offset)
        self._file.flush()

    def update(self, obj: Any) -> None:  # noqa: ANN401
        """Update display with string representation of object.

        Args:
            obj: Object to display.
        """
        self._move_line(self._position[0] - self._position[1])
        string = str(obj)
        self._file.write(f"{string: <{self._last_string_length}}\r")
        self._last_string_length = len(string)
        self._move_line(self._position[1] - self._position[0])
        self._file.flush()
