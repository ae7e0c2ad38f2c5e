import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lucy.core import schemas, models
from lucy.core.database import get_db
from lucy.core.errors import AuthError, NotFoundError, RetrievalError
from lucy.core.security import context_dep, end_session, start_session, verify_password

router = APIRouter(prefix="/auth", tags=["Authentication"])

db_dep = Annotated[AsyncSession, Depends(get_db)]


@router.post("/login", status_code=status.HTTP_200_OK)
async def login(user_credentials: schemas.UserLogin, request: Request, db: db_dep):
    query = select(models.User).where(models.User.email == user_credentials.email)
    try:
        result = await db.execute(query)
        db_user = result.scalars().first()
    except SQLAlchemyError as error:
        logging.error(f"Login lookup failed: {error}")
        raise RetrievalError("Could not verify credentials")

    if not db_user:
        raise NotFoundError("User not found")

    if not verify_password(user_credentials.password, db_user.password):
        raise AuthError("Incorrect credentials")

    user = schemas.SessionUser.model_validate(db_user)
    start_session(request, user)
    return {"status": "success", "data": user.model_dump()}


@router.post("/logout")
async def logout(request: Request):
    end_session(request)
    return {"status": "success", "message": "Logged out"}


@router.get("/me")
async def who_am_i(context: context_dep):
    return {
        "status": "success",
        "data": {
            "id": context.user_id,
            "name": context.name,
            "email": context.email,
            "plant": context.plant,
            "authorization_level": context.authorization_level,
            "role": context.role,
        },
    }
