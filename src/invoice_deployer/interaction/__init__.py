"""Operator interaction module."""

from .handler import (
    UserInteractionHandler,
    InteractionRequest,
    InteractionResponse,
    CLIInteractionHandler,
    AutoResponseHandler,
)

__all__ = [
    "UserInteractionHandler",
    "InteractionRequest",
    "InteractionResponse",
    "CLIInteractionHandler",
    "AutoResponseHandler",
]
