"""Shared schema exports."""

from .account import AccountProfile, Identity, Role

__all__ = [
    "AccountProfile",
    "Identity",
    "Role",
]
