"""
Capabilities handed to the high level entry points.

Nothing in the planner reaches for global state: the model client, the
confirmation primitive, configuration and the logger are passed in
explicitly through a :class:`Capabilities` bundle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

import click

if TYPE_CHECKING:
    from commit_planner.llm.base import ModelClient


ConfirmFn = Callable[[str, bool], bool]
ProgressFn = Callable[[str], None]


def click_confirm(question: str, default: bool = False) -> bool:
    """Ask a yes/no question on the terminal."""
    return click.confirm(question, default=default)


def auto_confirm(question: str, default: bool = False) -> bool:
    """Answer yes without asking, as with ``--yes``."""
    logging.getLogger(__name__).info("Auto-confirmed: %s", question)
    return True


@dataclass
class Capabilities:
    """Explicit dependencies of :mod:`commit_planner.api`.

    Attributes
    ----------
    model : ModelClient, optional
        Language model client. Without one, plans come from heuristics.
    confirm : callable
        ``confirm(question, default) -> bool``.
    config : dict
        Configuration as returned by :func:`commit_planner.config.load_config`.
    logger : logging.Logger, optional
        Logger for entry-point messages.
    progress : callable, optional
        Receives short progress messages.
    """

    model: Optional[ModelClient] = None
    confirm: ConfirmFn = click_confirm
    config: Dict[str, Any] = field(default_factory=dict)
    logger: Optional[logging.Logger] = None
    progress: Optional[ProgressFn] = None

    def report(self, message: str) -> None:
        if self.progress is not None:
            self.progress(message)
