from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from nutriu.db import Base
from nutriu.models import utcnow_naive


class Cuenta(Base):
    """Cuenta local de acceso. Su id es el `id_auth_user` de los perfiles."""

    __tablename__ = "cuentas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    correo: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)  # siempre en minúsculas
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    activa: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    creada_el: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive, nullable=False)
