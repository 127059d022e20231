"""
Sequential step chain.

Runs an ordered list of steps one at a time. Each step decides when the
chain moves on by calling ``advance`` (usually from a callback), or ends the
operation by reporting to its own caller instead. Arguments given to
``advance`` are forwarded to the next step.

Fan-in: a step that starts N branches calls ``pause(N - 1)`` (or uses
``join(N)``) and lets every branch call ``advance``; only the last call
actually moves the chain forward.
"""

from typing import Any, Callable, Optional, Sequence

from joauth.utils.exceptions import ChainExhaustedError

Step = Callable[..., Any]


class Chain:
    """Ordered list of steps plus a cursor and a pause counter."""

    def __init__(self):
        self._steps: Sequence[Step] = ()
        self._index = -1
        self._pause = 0

    @property
    def index(self) -> int:
        return self._index

    @property
    def pause_count(self) -> int:
        return self._pause

    @property
    def finished(self) -> bool:
        return self._index >= len(self._steps) - 1

    def pause(self, amount: int = 1) -> None:
        """Absorb the next ``amount`` calls to ``advance``."""
        if amount < 0:
            raise ValueError("pause amount must not be negative")
        self._pause += amount

    def resume(self) -> None:
        """Drop any pending pauses so the next ``advance`` proceeds."""
        self._pause = 0

    def advance(self, *args, **kwargs) -> int:
        """
        Move to the next step, or consume one pause.

        Returns:
            The remaining pause count (0 when the chain actually advanced).

        Raises:
            ChainExhaustedError: If there is no step left to run.
        """
        if self._pause:
            self._pause -= 1
            return self._pause

        if self._index + 1 >= len(self._steps):
            raise ChainExhaustedError(
                f"Chain advanced past its last step ({len(self._steps)} steps)"
            )

        self._index += 1
        self._steps[self._index](*args, **kwargs)
        return 0

    def join(self, branches: int) -> Callable[..., int]:
        """
        Prepare a fan-in of ``branches`` completion signals.

        Returns a callable each branch invokes once when done; the call made
        by the last branch advances the chain with its arguments.
        """
        if branches < 1:
            raise ValueError("join needs at least one branch")
        self.pause(branches - 1)
        return self.advance

    def run(self, *steps: Step) -> Optional[int]:
        """Install ``steps`` and start the first one. Pending pauses are dropped."""
        if not steps:
            raise ValueError("Chain.run needs at least one step")
        self._steps = steps
        self._index = -1
        self._pause = 0
        return self.advance()
