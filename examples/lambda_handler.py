"""
Lambda Handler Example

Demonstrates the intended usage pattern inside a serverless function:
the client is created once at module level, queries connect lazily, and
``end()`` is called at the end of every invocation instead of closing
the connection.

Connection parameters are read from MYSQL_HOST, MYSQL_USER, MYSQL_PASSWORD,
MYSQL_DATABASE and MYSQL_PORT.
"""

import sys
import os
import asyncio
import logging

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from client import serverless_mysql

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

db = serverless_mysql(
    max_retries=10,
    backoff="decorrelated",
    on_retry=lambda error, retries, delay, backoff: logger.info(
        f"Retrying connection ({retries}) in {delay}ms using {backoff} backoff: {error}"
    ),
    on_kill=lambda zombie: logger.info(f"Killed zombie connection {zombie['ID']}"),
)


async def handler(event, context=None):
    """Record an order and return the customer's order count."""
    results = await (
        db.transaction()
        .query("INSERT INTO orders (customer_id, item) VALUES (?, ?)", [event["customer_id"], event["item"]])
        .query(lambda last, results: ("UPDATE customers SET last_order_id = ? WHERE id = ?",
                                      [last["insert_id"], event["customer_id"]]))
        .rollback(lambda error: logger.error(f"Order transaction rolled back: {error}"))
        .commit()
    )

    rows = await db.query("SELECT COUNT(*) AS orders FROM orders WHERE customer_id = ?", [event["customer_id"]])

    # Keep, reap or close before the function freezes
    await db.end()

    return {"order_id": results[0]["insert_id"], "orders": rows[0]["orders"]}


if __name__ == "__main__":
    print(asyncio.run(handler({"customer_id": 1, "item": "book"})))
