"""
FETCH STEP - Read the latest Premium Freight orders

Purpose:
    One read query over PremiumFreight with its lookups, optionally
    scoped to the plant of the user who created the order.

Data Flow:
    scope key -> SELECT ... ORDER BY id DESC LIMIT 100 -> OrderRecord list
"""

import logging
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from lucy.core import models, schemas
from lucy.core.errors import RetrievalError

logger = logging.getLogger(__name__)

ORDER_LIMIT = 100


def build_orders_query(scope_key: Optional[str] = None, limit: int = ORDER_LIMIT):
    """
    Build the SELECT for the latest orders.

    Origin and destination both point at Location, so each join
    gets its own alias.
    """
    origin = aliased(models.Location)
    destiny = aliased(models.Location)
    pf = models.PremiumFreight

    query = (
        select(
            pf.id.label("id"),
            pf.date.label("date"),
            pf.planta.label("plant"),
            pf.transport.label("transport"),
            pf.cost_euros.label("cost_euros"),
            pf.category_cause.label("category_cause"),
            models.Carrier.name.label("carrier"),
            models.Status.name.label("status_name"),
            origin.city.label("origin_city"),
            destiny.city.label("destiny_city"),
        )
        .select_from(pf)
        .outerjoin(models.User, pf.user_id == models.User.id)
        .outerjoin(models.Carrier, pf.carrier_id == models.Carrier.id)
        .outerjoin(models.Status, pf.status_id == models.Status.id)
        .outerjoin(origin, pf.origin_id == origin.id)
        .outerjoin(destiny, pf.destiny_id == destiny.id)
    )

    if scope_key:
        query = query.where(models.User.plant == scope_key)

    return query.order_by(pf.id.desc()).limit(limit)


async def fetch_orders(
    db: AsyncSession, scope_key: Optional[str] = None, limit: int = ORDER_LIMIT
) -> List[schemas.OrderRecord]:
    """
    Return up to `limit` most recent orders, newest first.

    Args:
        db: Database session
        scope_key: Plant code of the caller, empty/None means every plant
        limit: Row cap (100 by default)

    Returns:
        List of OrderRecord, empty when nothing matches

    Raises:
        RetrievalError: store unreachable or a row does not fit OrderRecord
    """
    query = build_orders_query(scope_key, limit)

    try:
        result = await db.execute(query)
        rows = result.mappings().all()
    except SQLAlchemyError as error:
        logger.error(f"Orders query failed (scope={scope_key!r}): {error}")
        raise RetrievalError("Could not read Premium Freight orders") from error

    try:
        return [schemas.OrderRecord.model_validate(dict(row)) for row in rows]
    except ValidationError as error:
        logger.error(f"Malformed order row: {error}")
        raise RetrievalError("Premium Freight orders came back malformed") from error
