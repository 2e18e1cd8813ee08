"""
Credenciales de la API: hash de contraseñas de cuentas locales y JWT de sesión.

Claims del token:
- sub: principal (id de cuenta local o id del usuario del backend alojado)
- sid: clave de sesión, una por login; indexa el snapshot de identidad
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from nutriu.config import JWT_EXPIRE_MINUTES, JWT_SECRET

JWT_ALG = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(subject: str, extra: dict[str, Any] | None = None) -> str:
    emitido = datetime.now(timezone.utc)
    claims: dict[str, Any] = dict(extra or {})
    claims.update(
        sub=subject,
        sid=uuid.uuid4().hex,
        iat=int(emitido.timestamp()),
        exp=int((emitido + timedelta(minutes=JWT_EXPIRE_MINUTES)).timestamp()),
    )
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])


def get_claims(token: str) -> dict[str, Any] | None:
    """Claims de un token válido con principal y sesión; None en cualquier otro caso."""
    try:
        claims = decode_token(token)
    except JWTError:
        return None
    return claims if claims.get("sub") and claims.get("sid") else None
