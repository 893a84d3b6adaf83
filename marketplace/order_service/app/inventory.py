"""Per-product stock counters.

Stock is only ever changed through :class:`InventoryLedger` inside the order
creation and cancellation transactions.
"""

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Product

logger = logging.getLogger(__name__)


class InventoryLedger:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def withdraw(self, product_id: int, quantity: int) -> bool:
        """Atomically take ``quantity`` units; False when stock is short or the product is gone.

        Check and decrement are one statement, so concurrent orders for the
        same product cannot both pass a stale availability read.
        """

        if quantity <= 0:
            msg = "quantity must be positive"
            raise ValueError(msg)
        result = await self.session.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.deleted_at.is_(None),
                Product.stock >= quantity,
            )
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        withdrawn = result.rowcount == 1
        if not withdrawn:
            logger.info("Stock withdrawal of %s for product %s refused", quantity, product_id)
        return withdrawn

    async def restock(self, product_id: int, quantity: int) -> None:
        """Return ``quantity`` units, the exact inverse of :meth:`withdraw`."""

        if quantity <= 0:
            msg = "quantity must be positive"
            raise ValueError(msg)
        await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )
