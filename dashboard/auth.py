"""
Transport Tracker API - Authentication
Signed bearer tokens for drivers and admins, with role-based permissions.
"""

import os
import base64
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass, asdict, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from database.db import get_user, get_user_by_username

SECRET_KEY = os.getenv('SECRET_KEY', secrets.token_hex(32))
TOKEN_EXPIRE_HOURS = int(os.getenv('TOKEN_EXPIRE_HOURS', 12))
HASH_ITERATIONS = 100_000

# Permissions granted to each role
ROLES = {
    'admin': ['read', 'edit_sessions', 'manage_users', 'export', 'audit'],
    'driver': ['read', 'track'],
}


@dataclass
class User:
    """Signed-in account as seen by route handlers."""
    id: int
    username: str
    name: str
    role: str
    permissions: List[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Dict) -> 'User':
        return cls(
            id=row['id'],
            username=row['username'],
            name=row['name'],
            role=row['role'],
            permissions=list(ROLES.get(row['role'], [])),
        )


# ============================================
# PASSWORDS
# ============================================

def hash_password(password: str, salt: str = None) -> str:
    """PBKDF2 hash stored as 'salt$digest'."""
    salt = salt or secrets.token_hex(8)
    digest = hashlib.pbkdf2_hmac('sha256', password.encode(), salt.encode(), HASH_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    salt, sep, _ = (password_hash or '').partition('$')
    if not sep:
        return False
    return hmac.compare_digest(hash_password(password, salt), password_hash)


# ============================================
# TOKENS
# ============================================

def _signature(body: str) -> str:
    return hmac.new(SECRET_KEY.encode(), body.encode(), hashlib.sha256).hexdigest()


def create_token(user_id: int, username: str, role: str) -> str:
    """Bearer token: base64 JSON claims plus an HMAC signature."""
    issued = datetime.utcnow()
    claims = {
        'user_id': user_id,
        'username': username,
        'role': role,
        'iat': issued.isoformat(),
        'exp': (issued + timedelta(hours=TOKEN_EXPIRE_HOURS)).isoformat(),
    }
    body = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode()
    return f"{body}.{_signature(body)}"


def verify_token(token: str) -> Optional[Dict]:
    """Claims of a valid token, None when forged, malformed or expired."""
    body, sep, signature = (token or '').partition('.')
    if not sep or not hmac.compare_digest(signature, _signature(body)):
        return None

    try:
        claims = json.loads(base64.urlsafe_b64decode(body.encode()))
        expires = datetime.fromisoformat(claims['exp'])
    except (ValueError, KeyError, TypeError):
        return None

    return claims if datetime.utcnow() <= expires else None


def authenticate(username: str, password: str) -> Optional[str]:
    """Token for valid credentials, else None."""
    row = get_user_by_username(username)
    if row is None or not verify_password(password, row['password_hash']):
        return None
    return create_token(row['id'], row['username'], row['role'])


def get_current_user(token: str) -> Optional[User]:
    claims = verify_token(token)
    if claims is None:
        return None
    row = get_user(claims['user_id'])
    return User.from_row(row) if row else None


def has_permission(user: User, permission: str) -> bool:
    return permission in user.permissions


# ============================================
# FASTAPI DEPENDENCIES
# ============================================

def _user_from_header(authorization: Optional[str]) -> User:
    if not authorization:
        raise HTTPException(status_code=401, detail="Not authenticated")

    scheme, _, token = authorization.partition(' ')
    if scheme.lower() != 'bearer' or not token:
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    user = get_current_user(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def require_auth():
    """Dependency resolving the signed-in user."""
    def _require_auth(authorization: Optional[str] = Header(None)) -> User:
        return _user_from_header(authorization)

    return _require_auth


def require_permission(permission: str):
    """Dependency resolving the signed-in user and checking one permission."""
    def _require_permission(authorization: Optional[str] = Header(None)) -> User:
        user = _user_from_header(authorization)
        if not has_permission(user, permission):
            raise HTTPException(status_code=403, detail="Permission denied")
        return user

    return _require_permission


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = TOKEN_EXPIRE_HOURS * 3600
    user: dict


def get_auth_router() -> APIRouter:
    """Login, current-user and logout endpoints under /api/auth."""
    router = APIRouter(prefix="/api/auth", tags=["Authentication"])

    @router.post("/login", response_model=TokenResponse)
    async def login(request: LoginRequest):
        token = authenticate(request.username, request.password)
        if token is None:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        return TokenResponse(access_token=token, user=get_current_user(token).to_dict())

    @router.get("/me")
    async def get_me(user: User = Depends(require_auth())):
        return user.to_dict()

    @router.post("/logout")
    async def logout():
        """Tokens are stateless; the client discards its copy."""
        return {"message": "Logged out successfully"}

    return router
