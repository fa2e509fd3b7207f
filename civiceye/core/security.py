# File: civiceye/core/security.py
# Tokens are issued by the auth service; this side only verifies them.
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import time, jwt
from sqlalchemy import select
from sqlalchemy.orm import Session
from civiceye.core.config import settings
from civiceye.db.session import get_db, store_errors
from civiceye.models.user import User

ALGO = "HS256"
ACCESS_TTL = 15 * 60
bearer = HTTPBearer(auto_error=False)

def make_access_token(email: str, role: str, ttl: int = ACCESS_TTL, secret: Optional[str] = None) -> str:
    now = int(time.time())
    payload = {"sub": email, "role": role, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm=ALGO)

def _decode_token(creds: Optional[HTTPAuthorizationCredentials]) -> dict:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return jwt.decode(creds.credentials, settings.jwt_secret, algorithms=[ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

@store_errors
def _load_user(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(User.email == email))

def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                     db: Session = Depends(get_db)) -> User:
    payload = _decode_token(creds)
    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    user = _load_user(db, email)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="user_inactive")
    return user
