"""
Durable queue of mutations captured while offline.
"""
from .models import QueuedMutation
from .storage import MutationQueue

__all__ = [
    "QueuedMutation",
    "MutationQueue",
]
