"""Memo feature: leave messages for users who are away."""

from .commands import MEMO_TRIGGERS, MEMOSTAT_TRIGGERS, MemoCommands
from .database import MemoDatabase
from .models import Memo

__all__ = [
    "Memo",
    "MemoDatabase",
    "MemoCommands",
    "MEMO_TRIGGERS",
    "MEMOSTAT_TRIGGERS",
]
