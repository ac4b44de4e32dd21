"""
txpool: pooled, transactional statement execution over DB-API stores.

    adapter = make_adapter({"product_type": "sqlite", "path": "app.db"})
    with Pool(adapter, PoolConfig(max_size=5)) as pool:
        qx = QueryExecutor(pool)
        with qx.transactions.transaction() as tx:
            qx.execute("INSERT INTO users (name) VALUES (?)", ("alice",), transaction=tx)
        rows = qx.fetch_all("SELECT * FROM users")
"""

from txpool.core.config import PoolConfig, Settings, settings
from txpool.core.errors import (
    CommitFailed,
    ConnectError,
    ConstraintViolation,
    ErrorKind,
    ExecError,
    FatalExecError,
    InvalidRelease,
    PoolClosed,
    PoolError,
    PoolExhausted,
    QueryFailed,
    RollbackFailed,
    ShutdownTimedOut,
    TransactionClosed,
    TransactionError,
    TransactionFailed,
    TransactionStartFailed,
    TransientExecError,
    TxPoolError,
    UsageError,
)
from txpool.core.log import configure_logging
from txpool.core.pool import (
    Connection,
    ConnectionState,
    Pool,
    ProductTypeEnum,
    StoreAdapter,
    make_adapter,
)
from txpool.engines import (
    ABSENT,
    QueryExecutor,
    ResultSet,
    ResultShape,
    Statement,
    Transaction,
    TransactionManager,
    TransactionState,
)

__all__ = [
    "ABSENT",
    "CommitFailed",
    "ConnectError",
    "Connection",
    "ConnectionState",
    "ConstraintViolation",
    "ErrorKind",
    "ExecError",
    "FatalExecError",
    "InvalidRelease",
    "Pool",
    "PoolClosed",
    "PoolConfig",
    "PoolError",
    "PoolExhausted",
    "ProductTypeEnum",
    "QueryExecutor",
    "QueryFailed",
    "ResultSet",
    "ResultShape",
    "RollbackFailed",
    "Settings",
    "ShutdownTimedOut",
    "Statement",
    "StoreAdapter",
    "Transaction",
    "TransactionClosed",
    "TransactionError",
    "TransactionFailed",
    "TransactionManager",
    "TransactionStartFailed",
    "TransactionState",
    "TransientExecError",
    "TxPoolError",
    "UsageError",
    "configure_logging",
    "make_adapter",
    "settings",
]
