"""Operator interaction for confirmation gates."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from rich.console import Console
from rich.prompt import Confirm

logger = logging.getLogger(__name__)


@dataclass
class InteractionRequest:
    """A yes/no question put to the operator before a mutating operation."""

    question: str
    context: Optional[str] = None
    default: bool = False

    def format_prompt(self) -> str:
        lines = [f"\n⚠️ {self.question}"]
        if self.context:
            lines.append(f"   ℹ️  {self.context}")
        return "\n".join(lines)


@dataclass
class InteractionResponse:
    """Operator's answer."""

    confirmed: bool
    cancelled: bool = False

    @classmethod
    def cancelled_response(cls) -> "InteractionResponse":
        return cls(confirmed=False, cancelled=True)


class UserInteractionHandler(ABC):
    """Abstract base class for handling operator interactions."""

    @abstractmethod
    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """Present a request to the operator and return the response."""
        pass

    def confirm(self, question: str, *, context: Optional[str] = None) -> bool:
        """Ask a yes/no question that defaults to no."""
        response = self.ask(InteractionRequest(question=question, context=context))
        return response.confirmed and not response.cancelled


class CLIInteractionHandler(UserInteractionHandler):
    """Terminal prompts rendered with rich."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        self.console.print(request.format_prompt())
        try:
            answer = Confirm.ask("   Proceed?", default=request.default, console=self.console)
        except (KeyboardInterrupt, EOFError):
            self.console.print("\n   (cancelled)")
            return InteractionResponse.cancelled_response()
        return InteractionResponse(confirmed=bool(answer))


class AutoResponseHandler(UserInteractionHandler):
    """
    Automatic responses for --skip-confirmation runs and tests.
    Records every request it answers.
    """

    def __init__(self, always_confirm: bool = True) -> None:
        self.always_confirm = always_confirm
        self.requests: List[InteractionRequest] = []

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        self.requests.append(request)
        logger.info("Auto-responding to: %s", request.question[:60])
        return InteractionResponse(confirmed=self.always_confirm)
