"""
Contract interaction helpers.

ABI encoding of call payloads, read-only calls and event log queries.
"""

from txengine.contract.events import DecodedEvent, EventQuery
from txengine.contract.invoker import ContractInvoker

__all__ = [
    "ContractInvoker",
    "DecodedEvent",
    "EventQuery",
]
