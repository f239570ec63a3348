"""
Webhook callback delivery.
"""

from .dispatcher import CallbackDispatcher, is_transient

__all__ = ["CallbackDispatcher", "is_transient"]
