"""
Finalizer protocol helpers.

These mutate the in-memory object only; the caller persists the change with
an explicit store update. Each owner touches its own token and nothing else.
"""
from typing import List, Protocol

from .errors import FinalizerError


class Finalizable(Protocol):
    finalizers: List[str]


def _check_token(token: str):
    if not token or not isinstance(token, str):
        raise FinalizerError(f"invalid finalizer token: {token!r}")


def has(obj: Finalizable, token: str) -> bool:
    _check_token(token)
    return token in obj.finalizers


def add(obj: Finalizable, token: str) -> bool:
    """Append the token if absent. Returns True if the object changed."""
    _check_token(token)
    if token in obj.finalizers:
        return False
    obj.finalizers.append(token)
    return True


def remove(obj: Finalizable, token: str) -> bool:
    """Drop the token, keeping other owners' tokens in order. Returns True if the object changed."""
    _check_token(token)
    if token not in obj.finalizers:
        return False
    obj.finalizers = [f for f in obj.finalizers if f != token]
    return True
