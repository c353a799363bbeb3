"""
Capsule ledger for Time Capsule.

This package holds the append-only capsule store and the rules that guard it.

Components:
    - CapsuleStore: SQLite persistence (one store record per owner)
    - CapsuleLedger: init/create/query/reveal with time-lock and party checks
    - Clock: Trusted time source (SystemClock, ManualClock)
    - LedgerClient: Account-bound access by entry/view function name
"""

from timecapsule.ledger.client import (
    ENTRY_FUNCTIONS,
    MODULE_NAME,
    VIEW_FUNCTIONS,
    LedgerClient,
    LocalLedgerClient,
    resolve_function,
)
from timecapsule.ledger.clock import Clock, ManualClock, SystemClock
from timecapsule.ledger.ledger import CapsuleLedger
from timecapsule.ledger.store import CapsuleStore, compute_hash

__all__ = [
    "CapsuleLedger",
    "CapsuleStore",
    "Clock",
    "ManualClock",
    "SystemClock",
    "LedgerClient",
    "LocalLedgerClient",
    "ENTRY_FUNCTIONS",
    "VIEW_FUNCTIONS",
    "MODULE_NAME",
    "resolve_function",
    "compute_hash",
]
