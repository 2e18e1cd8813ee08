from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from nutriu.auth_models import Cuenta
from nutriu.auth_security import hash_password, verify_password
from nutriu.db import db_session
from nutriu.errores import ErrorPersistencia

logger = logging.getLogger(__name__)


def crea_cuenta(correo: str, password: str, factory: sessionmaker | None = None) -> str:
    correo = correo.strip().lower()
    if not correo or not password:
        raise ValueError("Correo y contraseña son obligatorios.")

    with db_session(factory) as s:
        if s.execute(select(Cuenta.id).where(Cuenta.correo == correo)).first() is not None:
            raise ValueError("Correo ya registrado.")

        cuenta = Cuenta(correo=correo, password_hash=hash_password(password), activa=True)
        s.add(cuenta)
        s.flush()
        return cuenta.id


def autentica(correo: str, password: str, factory: sessionmaker | None = None) -> Cuenta | None:
    """Cuenta activa cuyo hash coincide, o None (sin distinguir el motivo)."""
    with db_session(factory) as s:
        cuenta = s.execute(select(Cuenta).where(Cuenta.correo == correo.strip().lower())).scalar_one_or_none()
    if cuenta is None or not cuenta.activa:
        return None
    return cuenta if verify_password(password, cuenta.password_hash) else None


class AutenticadorLocal:
    """Cuentas de la tabla `cuentas`: el id de la cuenta es el principal."""

    def __init__(self, factory: sessionmaker | None = None) -> None:
        self.factory = factory

    def autenticar(self, correo: str, password: str) -> str | None:
        try:
            cuenta = autentica(correo, password, self.factory)
        except SQLAlchemyError as exc:
            logger.error("Error SQL autenticando %s: %s", correo, exc)
            raise ErrorPersistencia("No se pudo verificar la cuenta, intenta de nuevo.") from exc
        return cuenta.id if cuenta else None

    def registrar(self, correo: str, password: str) -> str:
        try:
            return crea_cuenta(correo, password, self.factory)
        except SQLAlchemyError as exc:
            logger.error("Error SQL registrando %s: %s", correo, exc)
            raise ErrorPersistencia("No se pudo crear la cuenta, intenta de nuevo.") from exc
