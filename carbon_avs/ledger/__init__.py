"""Downstream ledgers that receive published verdicts.

Core components:
    InMemoryLedger  - dict-backed ledger for demo mode and tests
    HttpLedgerSink  - PUT-per-credit HTTP ledger
    HookContract    - on-chain hook contract via web3 (see carbon_avs.ledger.contract)
"""

from carbon_avs.ledger.http import HttpLedgerSink
from carbon_avs.ledger.memory import InMemoryLedger

__all__ = [
    "HttpLedgerSink",
    "InMemoryLedger",
]
