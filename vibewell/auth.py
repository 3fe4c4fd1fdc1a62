import base64
import json
import logging
import time
from typing import Optional

import httpx
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicNumbers
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import AUTH0_AUDIENCE, AUTH0_DOMAIN, AUTH0_ROLES_CLAIM
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

# kid -> JWK, fetched from the tenant's JWKS endpoint
_cached_keys: Optional[dict[str, dict]] = None

ELEVATED_ROLES = ("admin", "provider")


def _b64url_decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


async def get_auth0_signing_keys() -> Optional[dict[str, dict]]:
    """Fetch the Auth0 tenant's JWKS, cached until a token names an unknown kid"""
    global _cached_keys
    if _cached_keys:
        return _cached_keys

    url = f"https://{AUTH0_DOMAIN}/.well-known/jwks.json"
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.get(url)
    except httpx.HTTPError as e:
        logger.error(f"❌ Error fetching Auth0 JWKS: {e}")
        return None

    if response.status_code != 200:
        logger.error(f"❌ Failed to fetch Auth0 JWKS: HTTP {response.status_code}")
        return None

    _cached_keys = {key["kid"]: key for key in response.json().get("keys", []) if key.get("kid")}
    logger.info(f"✅ Fetched {len(_cached_keys)} Auth0 signing keys")
    return _cached_keys


async def verify_auth0_token(token: str) -> dict:
    """
    Verify an Auth0 RS256 access token.
    Checks the signature against the tenant JWKS, then exp, iss and aud.
    """
    global _cached_keys

    if not AUTH0_DOMAIN or not AUTH0_AUDIENCE:
        logger.error("❌ AUTH0_DOMAIN / AUTH0_AUDIENCE not configured")
        raise HTTPException(status_code=500, detail="Authentication not configured")

    parts = token.split(".")
    if len(parts) != 3:
        raise HTTPException(status_code=401, detail="Invalid token format")
    header_b64, payload_b64, signature_b64 = parts

    try:
        header = json.loads(_b64url_decode(header_b64))
        payload = json.loads(_b64url_decode(payload_b64))
        signature = _b64url_decode(signature_b64)
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning(f"⚠️ Undecodable token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token encoding") from e

    if header.get("alg") != "RS256":
        logger.error(f"❌ Invalid token algorithm: {header.get('alg')}")
        raise HTTPException(status_code=401, detail="Invalid token algorithm")

    kid = header.get("kid")
    if not kid:
        raise HTTPException(status_code=401, detail="Token missing key ID")

    keys = await get_auth0_signing_keys()
    if not keys or kid not in keys:
        logger.warning(f"⚠️ Key ID {kid} not in cached JWKS, refetching")
        _cached_keys = None
        keys = await get_auth0_signing_keys()
        if not keys or kid not in keys:
            logger.error(f"❌ Key ID {kid} not found after refetch")
            raise HTTPException(status_code=401, detail="Unable to verify token signature")

    jwk = keys[kid]
    public_key = RSAPublicNumbers(
        e=int.from_bytes(_b64url_decode(jwk["e"]), "big"),
        n=int.from_bytes(_b64url_decode(jwk["n"]), "big"),
    ).public_key()

    try:
        public_key.verify(
            signature, f"{header_b64}.{payload_b64}".encode(), padding.PKCS1v15(), hashes.SHA256()
        )
    except Exception as e:
        logger.error(f"❌ Token signature verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid token signature") from e

    if payload.get("exp", 0) < time.time():
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        )

    if payload.get("iss") != f"https://{AUTH0_DOMAIN}/":
        logger.error("❌ Token issuer mismatch")
        raise HTTPException(status_code=401, detail="Invalid token issuer")

    audience = payload.get("aud")
    audiences = audience if isinstance(audience, list) else [audience]
    if AUTH0_AUDIENCE not in audiences:
        logger.error("❌ Token audience mismatch")
        raise HTTPException(status_code=401, detail="Invalid token audience")

    return payload


def _resolve_user(claims: dict, db: Session) -> User:
    """Find the user for a verified token, creating the row on first sign-in"""
    sub = claims.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token claims")

    roles = claims.get(AUTH0_ROLES_CLAIM) or []
    token_role = next((r for r in ELEVATED_ROLES if r in roles), None)

    user = db.query(User).filter(User.auth0_sub == sub).first()
    if user:
        if token_role and user.role != token_role:
            logger.info(f"🔄 Syncing role for user {user.id}: {user.role} -> {token_role}")
            user.role = token_role
            db.commit()
        return user

    logger.info(f"🆕 Creating user for Auth0 subject {sub}")
    user = User(
        auth0_sub=sub,
        email=claims.get("email"),
        full_name=claims.get("name"),
        role=token_role or "customer",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(f"❌ Email {claims.get('email')} already belongs to another account")
        raise HTTPException(
            status_code=409,
            detail="This email is already registered. Please sign in with your existing account.",
        ) from e
    db.refresh(user)
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the Auth0 bearer token"""
    claims = await verify_auth0_token(credentials.credentials)
    user = _resolve_user(claims, db)
    logger.debug(f"✅ User authenticated: {user.id}")
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous requests get None"""
    if not credentials:
        return None
    claims = await verify_auth0_token(credentials.credentials)
    return _resolve_user(claims, db)


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        logger.warning(f"⚠️ User {user.id} attempted to access an admin route")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def require_provider(user: User = Depends(get_current_user)) -> User:
    if user.role not in ELEVATED_ROLES:
        raise HTTPException(status_code=403, detail="Provider account required")
    return user
