from marketsync.dispatch.dispatcher import (
    ContractTable,
    DispatchOutcome,
    DispatchStats,
    ProtocolDispatcher,
)

__all__ = ["ContractTable", "DispatchOutcome", "DispatchStats", "ProtocolDispatcher"]
