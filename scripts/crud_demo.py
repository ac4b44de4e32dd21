#!/usr/bin/env python3
"""
Relational walkthrough: users/orders CRUD, aggregation, join and a
two-insert transaction, run through Pool / TransactionManager / QueryExecutor.

Runs against a throwaway SQLite file by default. For a server:
  python scripts/crud_demo.py --product-type postgres --host localhost \
      --database shop --username postgres --password secret

Usage:
  python scripts/crud_demo.py [--path FILE] [--fail-transaction]
  Or set env: TXPOOL_LOG_LEVEL=DEBUG to trace checkouts and commits.
"""

import argparse
import os
import sys
import tempfile
from collections.abc import Sequence
from typing import Any

from txpool import (
    Pool,
    PoolConfig,
    ProductTypeEnum,
    QueryExecutor,
    QueryFailed,
    TxPoolError,
    configure_logging,
    make_adapter,
)

_SCHEMA = {
    ProductTypeEnum.SQLITE: (
        """
        CREATE TABLE IF NOT EXISTS users (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          name VARCHAR(100) NOT NULL,
          email VARCHAR(100) UNIQUE NOT NULL,
          age INT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS orders (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          user_id INT REFERENCES users(id),
          product VARCHAR(100),
          amount INT
        )
        """,
    ),
    ProductTypeEnum.POSTGRES: (
        """
        CREATE TABLE IF NOT EXISTS users (
          id SERIAL PRIMARY KEY,
          name VARCHAR(100) NOT NULL,
          email VARCHAR(100) UNIQUE NOT NULL,
          age INT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS orders (
          id SERIAL PRIMARY KEY,
          user_id INT REFERENCES users(id),
          product VARCHAR(100),
          amount INT
        )
        """,
    ),
    ProductTypeEnum.MYSQL: (
        """
        CREATE TABLE IF NOT EXISTS users (
          id INT AUTO_INCREMENT PRIMARY KEY,
          name VARCHAR(100) NOT NULL,
          email VARCHAR(100) UNIQUE NOT NULL,
          age INT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS orders (
          id INT AUTO_INCREMENT PRIMARY KEY,
          user_id INT,
          product VARCHAR(100),
          amount INT,
          FOREIGN KEY (user_id) REFERENCES users(id)
        )
        """,
    ),
}


class Shop:
    """The demo's data access: one method per walkthrough step."""

    def __init__(self, qx: QueryExecutor, product_type: ProductTypeEnum) -> None:
        self.qx = qx
        self.product_type = product_type

    def sql(self, text: str) -> str:
        # psycopg and pymysql both use %s; sqlite3 uses ?
        if self.product_type == ProductTypeEnum.SQLITE:
            return text
        return text.replace("?", "%s")

    def create_tables(self) -> None:
        for ddl in _SCHEMA[self.product_type]:
            self.qx.execute(ddl)
        print("Tables created successfully")

    def create_user(self, name: str, email: str, age: int, *, transaction: Any = None) -> dict:
        self.qx.execute(
            self.sql("INSERT INTO users (name, email, age) VALUES (?, ?, ?)"),
            (name, email, age),
            transaction=transaction,
        )
        user = self.qx.fetch_one(
            self.sql("SELECT * FROM users WHERE email = ?"), (email,), transaction=transaction
        )
        return dict(user) if user is not None else {}

    def get_users(self) -> list[dict]:
        return [dict(r) for r in self.qx.fetch_all("SELECT * FROM users ORDER BY id")]

    def update_user(self, user_id: int, name: str, email: str, age: int) -> int:
        return self.qx.execute(
            self.sql("UPDATE users SET name = ?, email = ?, age = ? WHERE id = ?"),
            (name, email, age, user_id),
        )

    def delete_user(self, user_id: int) -> int:
        self.qx.execute(self.sql("DELETE FROM orders WHERE user_id = ?"), (user_id,))
        return self.qx.execute(self.sql("DELETE FROM users WHERE id = ?"), (user_id,))

    def create_order(self, user_id: int, product: str, amount: int) -> None:
        self.qx.execute(
            self.sql("INSERT INTO orders (user_id, product, amount) VALUES (?, ?, ?)"),
            (user_id, product, amount),
        )

    def order_totals(self, min_total: int = 100) -> list[dict]:
        rows = self.qx.fetch_all(
            self.sql(
                """
                SELECT user_id, SUM(amount) AS total_amount, AVG(amount) AS average_amount
                FROM orders
                GROUP BY user_id
                HAVING SUM(amount) > ?
                ORDER BY total_amount DESC
                """
            ),
            (min_total,),
        )
        return [dict(r) for r in rows]

    def users_with_orders(self) -> list[dict]:
        rows = self.qx.fetch_all(
            """
            SELECT u.name, u.email, o.product, o.amount
            FROM users u
            JOIN orders o ON u.id = o.user_id
            ORDER BY o.id
            """
        )
        return [dict(r) for r in rows]

    def count_users(self) -> int:
        return self.qx.fetch_scalar("SELECT COUNT(*) FROM users")

    def add_pair_in_transaction(
        self, first: tuple[str, str, int], second: tuple[str, str, int]
    ) -> bool:
        """Insert two users atomically. Returns False (after rollback) if either insert fails."""
        try:
            with self.qx.transactions.transaction() as tx:
                self.create_user(*first, transaction=tx)
                self.create_user(*second, transaction=tx)
        except QueryFailed as e:
            print(f"Error executing transaction, rolled back: {e.diagnostic}")
            return False
        print("Transaction completed successfully")
        return True


def run(shop: Shop, *, fail_transaction: bool = False) -> None:
    shop.create_tables()

    alice = shop.create_user("Alice", "alice@example.com", 25)
    print("User created:", alice)
    bob = shop.create_user("Bob", "bob@example.com", 30)
    print("User created:", bob)
    print("Users:", shop.get_users())

    shop.update_user(alice["id"], "Alice Smith", "alice.smith@example.com", 26)
    print("User updated:", shop.get_users()[0])

    for product, amount in (("keyboard", 80), ("monitor", 220)):
        shop.create_order(alice["id"], product, amount)
    shop.create_order(bob["id"], "mouse", 25)
    print("Aggregation results:", shop.order_totals())
    print("Users with orders:", shop.users_with_orders())

    print("User deleted:", shop.delete_user(bob["id"]))
    print("Users:", shop.get_users())

    # a duplicate email makes the second insert fail and the pair roll back
    second = (
        ("Dana", "charlie@example.com", 28)
        if fail_transaction
        else ("Dana", "dana@example.com", 28)
    )
    shop.add_pair_in_transaction(("Charlie", "charlie@example.com", 22), second)
    print("User count:", shop.count_users())


def _datasource(args: argparse.Namespace) -> dict[str, Any]:
    if args.product_type == ProductTypeEnum.SQLITE.value:
        path = args.path or os.path.join(tempfile.mkdtemp(prefix="txpool-"), "shop.db")
        return {"product_type": args.product_type, "path": path}
    return {
        "product_type": args.product_type,
        "host": args.host,
        "port": args.port,
        "database": args.database,
        "username": args.username,
        "password": args.password,
    }


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Users/orders walkthrough over a txpool connection pool."
    )
    parser.add_argument(
        "--product-type",
        choices=[p.value for p in ProductTypeEnum],
        default=os.environ.get("PRODUCT_TYPE", ProductTypeEnum.SQLITE.value),
        help="Store type (default sqlite)",
    )
    parser.add_argument("--path", help="SQLite database file (default: a temp file)")
    parser.add_argument("--host", default=os.environ.get("DB_HOST", "localhost"))
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--database", default=os.environ.get("DB_NAME"))
    parser.add_argument("--username", default=os.environ.get("DB_USER"))
    parser.add_argument("--password", default=os.environ.get("DB_PASSWORD", ""))
    parser.add_argument(
        "--max-size", type=int, default=4, help="Pool max size (default 4)"
    )
    parser.add_argument(
        "--fail-transaction",
        action="store_true",
        help="Make the transaction step hit a unique violation and roll back",
    )
    parser.add_argument("--log-level", default=None, help="Overrides TXPOOL_LOG_LEVEL")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    try:
        adapter = make_adapter(_datasource(args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    config = PoolConfig.from_settings(max_size=args.max_size, min_idle=0)
    try:
        with Pool(adapter, config) as pool:
            run(
                Shop(QueryExecutor(pool), adapter.product_type),
                fail_transaction=args.fail_transaction,
            )
            print("Pool stats:", pool.stats())
    except TxPoolError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
