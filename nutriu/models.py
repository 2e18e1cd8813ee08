"""
Modelos ORM. Los nombres de tablas y columnas replican el esquema del backend
alojado para que los adaptadores SQL y REST hablen del mismo dato.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nutriu.db import Base
from nutriu.dominio import DURACION_DEFAULT_MINUTOS, EstadoCita, EstadoPago, ModalidadCita


def utcnow_naive() -> datetime:
    # las columnas DateTime guardan UTC sin tzinfo
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _valores(enum_cls) -> list[str]:
    return [e.value for e in enum_cls]


class Administrador(Base):
    __tablename__ = "administradores"

    id_admin: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id_auth_user: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(String(80), nullable=False)
    apellido: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    correo: Mapped[str | None] = mapped_column(String(120), nullable=True)


class Nutriologo(Base):
    __tablename__ = "nutriologos"

    id_nutriologo: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id_auth_user: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(String(80), nullable=False)
    apellido: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    correo: Mapped[str | None] = mapped_column(String(120), nullable=True)
    tarifa_consulta: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    relaciones: Mapped[list["PacienteNutriologo"]] = relationship(back_populates="nutriologo")
    citas: Mapped[list["CitaRow"]] = relationship(back_populates="nutriologo")

    def __repr__(self) -> str:
        return f"Nutriologo({self.nombre} {self.apellido})"


class Paciente(Base):
    __tablename__ = "pacientes"

    id_paciente: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(80), nullable=False)
    apellido: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    correo: Mapped[str | None] = mapped_column(String(120), nullable=True)

    relaciones: Mapped[list["PacienteNutriologo"]] = relationship(back_populates="paciente")
    citas: Mapped[list["CitaRow"]] = relationship(back_populates="paciente")

    def __repr__(self) -> str:
        return f"Paciente({self.nombre} {self.apellido})"


class PacienteNutriologo(Base):
    __tablename__ = "paciente_nutriologo"
    __table_args__ = (UniqueConstraint("id_paciente", "id_nutriologo", name="uq_paciente_nutriologo"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id_paciente: Mapped[int] = mapped_column(ForeignKey("pacientes.id_paciente"), nullable=False)
    id_nutriologo: Mapped[int] = mapped_column(ForeignKey("nutriologos.id_nutriologo"), nullable=False)
    activo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    paciente: Mapped["Paciente"] = relationship(back_populates="relaciones")
    nutriologo: Mapped["Nutriologo"] = relationship(back_populates="relaciones")


class CitaRow(Base):
    __tablename__ = "citas"

    id_cita: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id_paciente: Mapped[int] = mapped_column(ForeignKey("pacientes.id_paciente"), nullable=False)
    id_nutriologo: Mapped[int] = mapped_column(ForeignKey("nutriologos.id_nutriologo"), nullable=False, index=True)

    # instante absoluto en UTC
    fecha_hora: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    duracion_minutos: Mapped[int] = mapped_column(Integer, nullable=False, default=DURACION_DEFAULT_MINUTOS)

    tipo_cita: Mapped[ModalidadCita] = mapped_column(
        Enum(ModalidadCita, values_callable=_valores, native_enum=False),
        default=ModalidadCita.PRESENCIAL,
        nullable=False,
    )
    estado: Mapped[EstadoCita] = mapped_column(
        Enum(EstadoCita, values_callable=_valores, native_enum=False),
        default=EstadoCita.PENDIENTE,
        nullable=False,
    )

    paciente: Mapped["Paciente"] = relationship(back_populates="citas")
    nutriologo: Mapped["Nutriologo"] = relationship(back_populates="citas")
    pagos: Mapped[list["PagoRow"]] = relationship(back_populates="cita")


class PagoRow(Base):
    __tablename__ = "pagos"

    id_pago: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # opcional: hay pagos sin cita asociada
    id_cita: Mapped[int | None] = mapped_column(ForeignKey("citas.id_cita"), nullable=True, index=True)
    id_nutriologo: Mapped[int | None] = mapped_column(ForeignKey("nutriologos.id_nutriologo"), nullable=True)
    monto: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    estado: Mapped[EstadoPago] = mapped_column(
        Enum(EstadoPago, values_callable=_valores, native_enum=False),
        default=EstadoPago.PENDIENTE,
        nullable=False,
    )
    fecha_pago: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    cita: Mapped["CitaRow | None"] = relationship(back_populates="pagos")
