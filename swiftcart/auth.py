from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

from .config import Settings
from .database import USERS, DocumentStore
from .results import ErrorKind, Failure, Result, StoreError, Success, invalid, parse_failure, remote_failure
from .schemas import User

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str, settings: Settings) -> Optional[str]:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    return payload.get("sub")


class Identity:
    def current_user_id(self) -> Optional[str]:
        raise NotImplementedError


class StaticIdentity(Identity):
    """Identity resolved once, e.g. from a request's bearer token."""

    def __init__(self, user_id: Optional[str]):
        self.user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self.user_id


class AuthService(Identity):
    """Email/password identity provider holding the signed-in user of one session."""

    def __init__(self, store: DocumentStore, settings: Settings):
        self.store = store
        self.settings = settings
        self._user_id: Optional[str] = None

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    async def sign_up(self, email: str, password: str, name: str = "") -> Result:
        logger.debug("auth.sign_up", email=email)
        try:
            user = User(email=email, name=name)
        except ValidationError:
            return invalid("Invalid email address")
        try:
            if await self.store.query(USERS, email=user.email):
                return invalid("Email already registered")
            doc = user.to_document()
            doc["password_hash"] = await run_in_threadpool(get_password_hash, password)
            user_id = await self.store.add_with_generated_id(USERS, doc)
        except StoreError as e:
            logger.error("auth.sign_up.failed", email=email, error=str(e))
            return remote_failure(e)
        self._user_id = user_id
        logger.info("auth.sign_up.ok", user_id=user_id)
        return Success(value=user_id)

    async def sign_in(self, email: str, password: str) -> Result:
        logger.debug("auth.sign_in", email=email)
        try:
            email = User(email=email).email
        except ValidationError:
            return Failure(kind=ErrorKind.UNAUTHENTICATED, message="Incorrect email or password")
        try:
            users = await self.store.query(USERS, email=email)
        except StoreError as e:
            logger.error("auth.sign_in.failed", email=email, error=str(e))
            return remote_failure(e)
        user = users[0] if users else None
        if not user or not await run_in_threadpool(verify_password, password, user.get("password_hash", "")):
            return Failure(kind=ErrorKind.UNAUTHENTICATED, message="Incorrect email or password")
        self._user_id = user["id"]
        logger.info("auth.sign_in.ok", user_id=self._user_id)
        return Success(value=create_access_token({"sub": self._user_id}, self.settings))

    def sign_out(self):
        self._user_id = None
        logger.info("auth.sign_out")

    async def current_user(self) -> Result:
        if self._user_id is None:
            return Success(value=None)
        return await self.fetch_user(self._user_id)

    async def fetch_user(self, user_id: str) -> Result:
        try:
            doc = await self.store.get(USERS, user_id)
        except StoreError as e:
            return remote_failure(e)
        if doc is None:
            return Success(value=None)
        try:
            return Success(value=User.model_validate(doc))
        except ValidationError:
            return parse_failure(f"Malformed user document: {user_id}")


async def get_current_user_id(request: Request, token: str = Depends(oauth2_scheme)) -> str:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = decode_access_token(token, request.app.state.settings)
    if user_id is None:
        raise credentials_exception

    try:
        user = await request.app.state.store.get(USERS, user_id)
    except StoreError:
        user = None

    if not user:
        raise credentials_exception
    return user_id
