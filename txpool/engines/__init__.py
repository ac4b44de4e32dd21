"""
Statement execution on top of the pool.

Exports: Statement, ResultSet, ABSENT, TransactionManager, QueryExecutor.
"""

from .executor import QueryExecutor
from .statement import ABSENT, ResultSet, ResultShape, Statement, to_result_set
from .transaction import Transaction, TransactionManager, TransactionState

__all__ = [
    "ABSENT",
    "QueryExecutor",
    "ResultSet",
    "ResultShape",
    "Statement",
    "Transaction",
    "TransactionManager",
    "TransactionState",
    "to_result_set",
]
