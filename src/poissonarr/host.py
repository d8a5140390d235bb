"""
Resource host contract.

A host opens destinations (``Resource``) on the engine's behalf. Each opened
resource carries an interaction collaborator that, once attached and told to
``interact``, replies at most once with aggregate counts. The engine only
ever sees those counts, never page content.
"""

from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlsplit

from pydantic import ValidationError

from .errors import InvalidTargetError
from .models import InteractionReport, TaskDescriptor

INTERACT_COMMAND = "interact"
INTERACTION_COMPLETE = "interaction-complete"

ALLOWED_SCHEMES = ("http", "https")


def check_target(url: str) -> None:
    """
    Only plain http(s) destinations are ever opened.

    Raises:
        InvalidTargetError: scheme not allowed or no host
    """
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise InvalidTargetError(url) from e
    if parts.scheme not in ALLOWED_SCHEMES or not parts.netloc:
        raise InvalidTargetError(url)


def interact_message(task: TaskDescriptor) -> dict[str, Any]:
    return {
        "command": INTERACT_COMMAND,
        "durationBudgetMs": task.duration_budget_ms,
        "kind": task.kind.value,
    }


def parse_completion(message: dict[str, Any]) -> InteractionReport:
    """Validate an ``interaction-complete`` reply into counts."""
    if message.get("event") != INTERACTION_COMPLETE:
        raise ValueError(f"unexpected collaborator event: {message.get('event')!r}")
    try:
        return InteractionReport.model_validate(message)
    except ValidationError as e:
        raise ValueError(f"malformed interaction report: {e}") from e


class Resource(ABC):
    """One opened destination and its interaction collaborator."""

    url: str

    @abstractmethod
    async def load(self) -> None:
        """
        Navigate to the destination.

        Raises:
            ResourceOpenError: the destination could not be loaded
        """
        ...

    @abstractmethod
    async def attach(self) -> None:
        """
        Attach the collaborator once the destination has loaded.

        Raises:
            CollaboratorAttachError: destination refuses the collaborator
        """
        ...

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        """
        Deliver a command to the collaborator.

        Raises:
            HandoffError: collaborator is not listening yet
        """
        ...

    @abstractmethod
    async def completion(self) -> dict[str, Any]:
        """Wait for the collaborator's single reply. May never return."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the destination. Safe to call more than once."""
        ...


class ResourceHost(ABC):
    """Opens resources. One host is shared by every in-flight task."""

    @abstractmethod
    async def open(self, url: str) -> Resource:
        """
        Create a resource for ``url`` without loading it yet, so the caller
        can track it before the slow part starts.

        Raises:
            ResourceOpenError: the destination could not be opened
        """
        ...

    async def start(self) -> None:
        """Acquire host-wide resources (a browser, say). Default: nothing."""

    async def close(self) -> None:
        """Release host-wide resources. Default: nothing."""
