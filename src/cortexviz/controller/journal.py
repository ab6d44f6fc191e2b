"""
Journal Interface
=================
The journal is the remote process that computes and serves model data. This
module defines only the outbound message vocabulary and the reply handle;
the transport that carries messages is supplied by a Journal implementation.

Replies are delivered by the transport calling ``PendingReply.resolve`` on
the UI thread, at some later turn of the event loop (or never).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Protocol


class JournalCommand(StrEnum):
    GET_FF_IN_SYNAPSES = "get-ff-in-synapses"
    GET_FF_OUT_SYNAPSES = "get-ff-out-synapses"
    GET_CELL_SEGMENTS = "get-cell-segments"
    GET_INBITS_COLS = "get-inbits-cols"
    REGISTER_VIEWPORT = "register-viewport"
    UNREGISTER_VIEWPORT = "unregister-viewport"


@dataclass
class PendingReply:
    """
    A reply handle tagged with the generation of the request that created it.

    The callback receives ``(generation, value)`` so the receiver can cheaply
    reject replies to superseded requests.
    """
    generation: int
    on_value: Callable[[int, Any], None]
    resolved: bool = field(default=False, init=False)

    def resolve(self, value: Any) -> None:
        if self.resolved:
            return
        self.resolved = True
        self.on_value(self.generation, value)


class Journal(ABC):
    """Outbound channel to the journal."""

    @abstractmethod
    def send(self, command: JournalCommand, *args: Any, reply: PendingReply | None = None) -> None:
        """Queue a message; must return without waiting for the reply."""
        pass


class SimulationDriver(Protocol):
    """Whatever runs the model; the canvas only asks it to step or toggle."""

    def step(self) -> None: ...

    def toggle(self) -> None: ...
