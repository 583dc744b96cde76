"""
Data access for the checkout flow.

Every call opens its own session and runs under QUERY_TIMEOUT seconds; the
pending database work is cancelled when the deadline passes. A missing row
surfaces as SQLAlchemy's ``NoResultFound``, callers map it to 404 themselves.
"""
import asyncio
from datetime import datetime
from typing import Tuple
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from checkout.models import Mac, Order, Transaction

QUERY_TIMEOUT = 3.0


class Store:
    def __init__(self, session_factory: async_sessionmaker, timeout: float = QUERY_TIMEOUT):
        self.session_factory = session_factory
        self.timeout = timeout

    async def _run(self, op):
        async with self.session_factory() as session:
            return await asyncio.wait_for(op(session), timeout=self.timeout)

    async def get_product(self, mac_id: int) -> Mac:
        async def op(db: AsyncSession):
            result = await db.execute(select(Mac).where(Mac.id == mac_id))
            return result.scalar_one()

        return await self._run(op)

    async def insert_transaction(self, txn: Transaction) -> int:
        """Insert a transaction and return its id."""
        async def op(db: AsyncSession):
            _stamp(txn)
            db.add(txn)
            await db.commit()
            return txn.id

        return await self._run(op)

    async def insert_order(self, order: Order) -> int:
        """Insert an order and return its id. Referenced rows are not checked here."""
        async def op(db: AsyncSession):
            _stamp(order)
            db.add(order)
            await db.commit()
            return order.id

        return await self._run(op)

    async def record_purchase(self, txn: Transaction, order: Order) -> Tuple[int, int]:
        """
        Insert a transaction and its order in one database transaction.

        The order is linked to the new transaction; if either insert fails
        neither row is kept.
        """
        async def op(db: AsyncSession):
            async with db.begin():
                _stamp(txn)
                db.add(txn)
                await db.flush()

                order.transaction_id = txn.id
                _stamp(order)
                db.add(order)
                await db.flush()
            return txn.id, order.id

        return await self._run(op)


def _stamp(row):
    now = datetime.now()
    row.created_at = now
    row.updated_at = now
