from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lucy.core.database import get_db
from lucy.core.security import context_dep
from lucy.core.pipeline import fetch

router = APIRouter(prefix="/orders", tags=["Orders"])

db_dep = Annotated[AsyncSession, Depends(get_db)]


@router.get("")
async def latest_orders(context: context_dep, db: db_dep):
    """Latest 100 orders, limited to the caller's plant when it has one."""
    records = await fetch.fetch_orders(db, context.scope_key)
    return {
        "status": "success",
        "data": [record.model_dump(mode="json") for record in records],
        "user_info": {
            "plant": context.plant,
            "authorization_level": context.authorization_level,
        },
    }
