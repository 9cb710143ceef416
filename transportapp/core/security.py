"""Staff authentication: pbkdf2 password hashes and short-lived bearer JWTs.

Only access tokens exist; an expired token means logging in again.
"""
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from transportapp.core.config import settings

# pbkdf2 has no bcrypt backend quirks or 72-byte input limit
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
ALGORITHM = "HS256"
TOKEN_USE = "staff"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user_id: str, expires_minutes: int | None = None) -> str:
    issued = datetime.now(timezone.utc)
    ttl = timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": str(user_id), "use": TOKEN_USE, "iat": issued, "exp": issued + ttl}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def read_access_token(token: str) -> str:
    """User id carried by a valid staff token. Raises JWTError otherwise."""
    claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    if claims.get("use") != TOKEN_USE or not claims.get("sub"):
        raise JWTError("not a staff access token")
    return claims["sub"]
