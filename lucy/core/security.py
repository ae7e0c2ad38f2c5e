from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Request
from passlib.context import CryptContext

from lucy.core import schemas
from lucy.core.errors import AuthError

SESSION_USER_KEY = "user"

# Hash mechanism
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# Hash the password
def hash_password(password: str):
    return pwd_context.hash(password)


# Verify the password
def verify_password(plain_password, hashed_password):
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


@dataclass(frozen=True)
class RequestContext:
    """Authenticated identity for one request, built from the session."""

    user_id: int
    email: str
    name: str
    plant: Optional[str]
    authorization_level: int
    role: Optional[str] = None

    @property
    def scope_key(self) -> Optional[str]:
        # Orders are scoped by plant, a user without plant sees every plant
        return self.plant or None

    @property
    def is_authorized(self) -> bool:
        return bool(self.user_id) and bool(self.email) and self.authorization_level > 0


def start_session(request: Request, user: schemas.SessionUser) -> None:
    request.session[SESSION_USER_KEY] = user.model_dump()


def end_session(request: Request) -> None:
    request.session.clear()


# Read who is logged in from the signed session cookie
async def get_current_context(request: Request) -> RequestContext:
    raw_user = request.session.get(SESSION_USER_KEY)
    if not raw_user:
        raise AuthError("User not authenticated")

    try:
        user = schemas.SessionUser.model_validate(raw_user)
    except ValueError:
        # Cookie was signed by us but no longer matches the session shape
        end_session(request)
        raise AuthError("User not authenticated")

    return RequestContext(
        user_id=user.id,
        email=user.email,
        name=user.name,
        plant=user.plant,
        authorization_level=user.authorization_level,
        role=user.role,
    )


# The AI endpoints need a real identity and an authorization level above 0
async def require_authorized_context(
    context: Annotated[RequestContext, Depends(get_current_context)],
) -> RequestContext:
    if not context.is_authorized:
        raise AuthError("Unauthorized. Please log in with proper credentials.")
    return context


context_dep = Annotated[RequestContext, Depends(get_current_context)]
authorized_dep = Annotated[RequestContext, Depends(require_authorized_context)]
