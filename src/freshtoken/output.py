"""Output formatting for the ``freshtoken`` command line.

Follows `clig.dev <https://clig.dev/>`_ conventions:

* **stdout** -- primary data only (the token, the JSON response, the
  ``Authorization`` value). This is what shell scripts capture.
* **stderr** -- all diagnostics (status, warnings, errors).
* **Colour control** -- respects ``NO_COLOR``, ``TERM=dumb``, and the
  ``--no-color`` CLI flag.

:class:`OutputManager` holds the Rich consoles; the module-level functions
(:func:`info`, :func:`error`, ...) delegate to the global instance installed
with :func:`set_output`.
"""

from __future__ import annotations

import json
import os
import sys
from typing import Any, Optional

from rich.console import Console


class OutputManager:
    """Routes data to stdout and diagnostics to stderr.

    Args:
        json_output: Render data as JSON instead of plain text.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress informational messages on stderr.
        verbose: Show debug messages on stderr.
    """

    def __init__(
        self,
        json_output: bool = False,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._json = json_output
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._stdout = Console(file=sys.stdout, no_color=self._no_color, highlight=False)
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def is_json(self) -> bool:
        return self._json

    def print_data(self, data: Any) -> None:
        """Write primary data to stdout, as JSON when requested or not a string."""
        if self._json or not isinstance(data, str):
            self._stdout.out(json.dumps(data, indent=2, default=str))
        else:
            self._stdout.out(data)

    def info(self, message: str) -> None:
        if not self._quiet:
            self._stderr.print(message, markup=False)

    def warning(self, message: str) -> None:
        self._stderr.print(f"[yellow]Warning:[/yellow] {_escape(message)}")

    def error(self, message: str) -> None:
        self._stderr.print(f"[red]Error:[/red] {_escape(message)}")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._stderr.print(f"[dim]{_escape(message)}[/dim]")


def _escape(message: str) -> str:
    from rich.markup import escape

    return escape(message)


def _should_disable_color() -> bool:
    """Check ``NO_COLOR`` and ``TERM=dumb``."""
    if "NO_COLOR" in os.environ:
        return True
    return os.environ.get("TERM") == "dumb"


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the global :class:`OutputManager`, creating a default one if needed."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Install ``output`` as the global :class:`OutputManager`."""
    global _output
    _output = output


def reset_output() -> None:
    """Drop the global :class:`OutputManager` (used between tests)."""
    global _output
    _output = None


def print_data(data: Any) -> None:
    get_output().print_data(data)


def info(message: str) -> None:
    get_output().info(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
