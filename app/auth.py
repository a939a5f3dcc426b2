"""Authentication and authorization related routes and helpers."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import requests
from fakeredis.aioredis import FakeRedis
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
import redis.asyncio as redis
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import schemas, crud
from .database import get_db
from .errors import DependencyError
from .models import User
from .core import get_settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
router = APIRouter(prefix="/auth", tags=["auth"])


@dataclass
class CachedUser:
    """Serializable representation of a user stored in cache."""

    id: int
    email: str
    username: str | None
    auth_provider: str
    profile_picture: str | None
    password_hash: str | None = None

    @classmethod
    def from_model(cls, user: User) -> "CachedUser":
        """
        Create a CachedUser instance from a User ORM model.

        Args:
            user (User): SQLAlchemy User model.

        Returns:
            CachedUser: Serializable cached user representation.
        """
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            auth_provider=user.auth_provider,
            profile_picture=user.profile_picture,
            password_hash=user.password_hash,
        )

    def to_model(self) -> User:
        """
        Convert cached user data back into a detached User ORM model.

        Returns:
            User: SQLAlchemy User instance populated from cache.
        """
        return User(
            id=self.id,
            email=self.email,
            username=self.username,
            auth_provider=self.auth_provider,
            profile_picture=self.profile_picture,
            password_hash=self.password_hash,
        )

    def to_json(self) -> str:
        """
        Serialize cached user data to JSON string.

        Returns:
            str: JSON representation of cached user.
        """
        return json.dumps(self.__dict__)

    @classmethod
    def from_json(cls, raw: str) -> "CachedUser":
        """
        Deserialize cached user from JSON string.

        Args:
            raw (str): JSON string with cached user data.

        Returns:
            CachedUser: Restored cached user object.
        """
        data: dict[str, Any] = json.loads(raw)
        return cls(**data)


_cache_client: Any | None = None


async def get_cache_client():
    """
    Return a Redis client, or an in-process fakeredis when Redis is down.

    Returns:
        Redis | FakeRedis: Cache backend instance.
    """
    global _cache_client
    if _cache_client is not None:
        return _cache_client
    settings = get_settings()
    try:
        client = redis.from_url(
            settings.REDIS_URL, encoding="utf-8", decode_responses=True
        )
        await client.ping()
        _cache_client = client
    except Exception:
        logger.warning("Redis unavailable at %s, caching users in process", settings.REDIS_URL)
        _cache_client = FakeRedis(decode_responses=True)
    return _cache_client


async def cache_user(user: User, expire_minutes: int | None = None):
    """
    Store user data in cache to reduce database access.

    Args:
        user (User): User ORM model.
        expire_minutes (int | None): Cache expiration time.
    """
    client = await get_cache_client()
    settings = get_settings()
    expires = expire_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    await client.set(
        f"user:{user.email}", CachedUser.from_model(user).to_json(), ex=expires * 60
    )


async def get_cached_user(email: str) -> User | None:
    """
    Retrieve user from cache if available.

    Args:
        email (str): User email.

    Returns:
        User | None: Cached user or None.
    """
    client = await get_cache_client()
    cached = await client.get(f"user:{email}")
    if cached:
        return CachedUser.from_json(cached).to_model()
    return None


async def evict_cached_user(email: str):
    """Drop a user from cache after the account changes or disappears."""
    client = await get_cache_client()
    await client.delete(f"user:{email}")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Compare a plain password with its hashed value."""
    return pwd_context.verify(plain_password, password_hash)


def get_password_hash(password: str) -> str:
    """Generate a password hash using the configured context."""
    return pwd_context.hash(password)


def create_access_token(
    data: dict, expires_delta: timedelta | None = None, scope: str = "access"
) -> str:
    """Create a signed JWT access token."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "scope": scope})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token with a longer lifetime."""
    settings = get_settings()
    return create_access_token(
        data,
        expires_delta=timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES),
        scope="refresh",
    )


def issue_tokens(user: User) -> schemas.Token:
    """Build an access/refresh token pair for ``user``."""
    return schemas.Token(
        access_token=create_access_token({"sub": user.email}),
        refresh_token=create_refresh_token({"sub": user.email}),
    )


def verify_google_id_token(id_token: str) -> dict:
    """
    Verify a Google ID token against Google's token-info endpoint.

    Args:
        id_token (str): Token obtained by the client from Google Sign-In.

    Raises:
        DependencyError: If Google sign-in is not configured or unreachable.
        HTTPException: If the token is invalid, for another client, or
            carries an unverified email.

    Returns:
        dict: Token claims (``sub``, ``email``, ``name``, ``picture``...).
    """
    settings = get_settings()
    if not settings.GOOGLE_CLIENT_ID:
        raise DependencyError("Google sign-in is not configured", source="google")
    try:
        response = requests.get(
            settings.GOOGLE_TOKENINFO_URL,
            params={"id_token": id_token},
            timeout=settings.ORACLE_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.warning("Google token verification failed: %s", exc)
        raise DependencyError(
            "Could not reach Google to verify sign-in", source="google"
        ) from exc

    invalid = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Google token"
    )
    if response.status_code != 200:
        raise invalid
    try:
        claims = response.json()
    except ValueError:
        raise invalid
    if not isinstance(claims, dict):
        raise invalid
    if claims.get("aud") != settings.GOOGLE_CLIENT_ID or not claims.get("email"):
        raise invalid
    if str(claims.get("email_verified", "")).lower() != "true":
        raise invalid
    return claims


async def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    """Dependency that returns authenticated user from JWT token with caching."""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token, get_settings().SECRET_KEY, algorithms=[get_settings().ALGORITHM]
        )
        email: str | None = payload.get("sub")
        scope = payload.get("scope", "access")
        if email is None or scope != "access":
            raise credentials_exception
        token_data = schemas.TokenData(sub=email, scope=scope)
    except JWTError:
        raise credentials_exception
    cached_user = await get_cached_user(token_data.sub)
    if cached_user:
        return cached_user
    user = crud.get_user_by_email(db, email=token_data.sub)
    if user is None:
        raise credentials_exception
    await cache_user(user)
    return user


@router.post(
    "/signup", response_model=schemas.UserOut, status_code=status.HTTP_201_CREATED
)
def signup(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    """Register a new local user."""

    password_hash = get_password_hash(user_in.password)
    return crud.create_user(db, user_in, password_hash)


@router.post("/login", response_model=schemas.Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)
):
    """Authenticate a local user and return an access/refresh token pair."""

    user = crud.get_user_by_email(db, form_data.username)
    if user and user.auth_provider == "google" and not user.password_hash:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="This account uses Google Sign-In. Please sign in with Google.",
        )
    if not user or not await run_in_threadpool(
        verify_password, form_data.password, user.password_hash
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials"
        )
    await cache_user(user)
    return issue_tokens(user)


@router.post("/google", response_model=schemas.Token)
async def login_with_google(payload: schemas.GoogleLogin, db: Session = Depends(get_db)):
    """Exchange a Google ID token for an API token pair."""

    claims = await run_in_threadpool(verify_google_id_token, payload.id_token)
    user = crud.get_or_create_google_user(
        db,
        google_id=claims["sub"],
        email=claims["email"],
        display_name=claims.get("name"),
        picture=claims.get("picture"),
    )
    await cache_user(user)
    return issue_tokens(user)


@router.post("/refresh", response_model=schemas.Token)
async def refresh_tokens(payload: schemas.TokenRefresh, db: Session = Depends(get_db)):
    """Issue a new pair of tokens based on a refresh token."""

    try:
        token_data = jwt.decode(
            payload.refresh_token,
            get_settings().SECRET_KEY,
            algorithms=[get_settings().ALGORITHM],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )

    if token_data.get("scope") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token scope"
        )
    email = token_data.get("sub")
    user = crud.get_user_by_email(db, email)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        )
    await cache_user(user)
    return issue_tokens(user)
