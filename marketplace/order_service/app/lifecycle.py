"""Order status state machine.

Orders only ever move forward along ``pending -> paid -> shipped -> delivered``,
possibly skipping steps, and ``pending -> cancelled`` is the only way out of
that chain. Both ``delivered`` and ``cancelled`` are terminal.
"""

from __future__ import annotations

from typing import Final

from .errors import AlreadyCancelled, InvalidOrderStatus, InvalidTransition, OnlyPendingCancellable

FORWARD_FLOW: Final = ("pending", "paid", "shipped", "delivered")
TERMINAL_STATUSES: Final = frozenset({"delivered", "cancelled"})


def validate_status_update(status: str) -> str:
    """Return the normalised target of a plain status update.

    ``cancelled`` is not accepted here because cancelling carries compensation.
    """

    normalised = status.strip().lower()
    if normalised not in FORWARD_FLOW:
        raise InvalidOrderStatus(status)
    return normalised


def ensure_transition(current: str, target: str) -> None:
    if current in TERMINAL_STATUSES or current not in FORWARD_FLOW or target not in FORWARD_FLOW:
        raise InvalidTransition(current, target)
    if FORWARD_FLOW.index(target) <= FORWARD_FLOW.index(current):
        raise InvalidTransition(current, target)


def ensure_cancellable(current: str) -> None:
    if current == "cancelled":
        raise AlreadyCancelled()
    if current != "pending":
        raise OnlyPendingCancellable(current)
