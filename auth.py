import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from config import ACCESS_TOKEN_EXPIRE_MINUTES, ADMIN_IDENTITIES, ALGORITHM, SECRET_KEY
from database import ADMINS, REVOKED_TOKENS, DocumentStore, get_store

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

ACCESS_DENIED = "Access Denied: You are not the Admin."


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    username: Optional[str] = None
    jti: Optional[str] = None
    exp: Optional[int] = None


class LoginPayload(BaseModel):
    username: str
    password: str


class AdminPolicy:
    """Who may use the dashboard. Identities are compared verbatim."""

    def __init__(self, identities: Iterable[str]):
        self.identities = set(identities)

    def is_authorized(self, identity: Optional[str]) -> bool:
        return identity is not None and identity in self.identities


policy = AdminPolicy(ADMIN_IDENTITIES)


def get_policy() -> AdminPolicy:
    return policy


# Helper functions for auth

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> TokenData:
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    return TokenData(username=payload.get("sub"), jti=payload.get("jti"), exp=payload.get("exp"))


def authenticate(store: DocumentStore, admin_policy: AdminPolicy, username: str, password: str) -> dict:
    user = store.db[ADMINS].find_one({"username": username, "is_active": True})
    if not user or not verify_password(password, user["password_hash"]):
        raise HTTPException(status_code=400, detail="Incorrect username or password")
    if not admin_policy.is_authorized(username):
        # Valid account, wrong person: no session is handed out
        logger.warning("Login refused for %s: not an allowed identity", username)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
    return user


async def get_token_data(token: str = Depends(oauth2_scheme),
                         store: DocumentStore = Depends(get_store)) -> TokenData:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        token_data = decode_token(token)
    except JWTError:
        raise credentials_exception
    if token_data.username is None:
        raise credentials_exception
    if token_data.jti and store.db[REVOKED_TOKENS].find_one({"jti": token_data.jti}):
        raise credentials_exception
    return token_data


async def get_current_admin(token_data: TokenData = Depends(get_token_data),
                            store: DocumentStore = Depends(get_store),
                            admin_policy: AdminPolicy = Depends(get_policy)):
    user = store.db[ADMINS].find_one({"username": token_data.username, "is_active": True})
    if not user or not admin_policy.is_authorized(token_data.username):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ACCESS_DENIED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def _utc(dt: datetime) -> datetime:
    # pymongo hands back naive UTC; keep stored and compared values naive too
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def revoke(store: DocumentStore, token_data: TokenData) -> None:
    """Block the token until it expires. Entries for expired tokens are dropped by the TTL index and at each logout."""
    if not token_data.jti:
        return
    revoked = store.db[REVOKED_TOKENS]
    revoked.create_index("expiresAt", expireAfterSeconds=0)
    now = _utc(datetime.now(timezone.utc))
    pruned = revoked.delete_many({"expiresAt": {"$lt": now}}).deleted_count
    if pruned:
        logger.info("Pruned %d expired revoked tokens", pruned)
    if token_data.exp is not None:
        expires_at = _utc(datetime.fromtimestamp(token_data.exp, timezone.utc))
    else:
        expires_at = now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    revoked.insert_one({"jti": token_data.jti, "username": token_data.username,
                        "revokedAt": now, "expiresAt": expires_at})
