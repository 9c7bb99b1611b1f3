"""Core progress logic: the completion ledger and the engine facade."""
from .engine import ItemAccess, ProgressEngine, SequenceGuard
from .ledger import CompletionLedger

__all__ = [
    "CompletionLedger",
    "ItemAccess",
    "ProgressEngine",
    "SequenceGuard",
]
