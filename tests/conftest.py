from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest
import requests
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nutriu.citas import GestorCitas
from nutriu.db import db_session
from nutriu.dominio import EstadoCita, EstadoPago
from nutriu.identidad import CacheIdentidad
from nutriu.models import Administrador, CitaRow, Nutriologo, Paciente, PacienteNutriologo, PagoRow
from nutriu.pagos import ResolutorPagos
from nutriu.repositorio_sql import SqlCitaStore, SqlRegistroPagos, SqlRelacionesPacientes
from nutriu.services import init_db

# 2026-01-15 11:00 hora local de la clínica
AHORA = datetime(2026, 1, 15, 18, 0, tzinfo=timezone.utc)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, future=True, expire_on_commit=False)


@pytest.fixture()
def clinica(factory) -> None:
    """
    - admin A1
    - nutriólogo 42 (principal U1): pacientes 1 y 2 activos, 3 inactivo
    - nutriólogo 7 (principal U7): paciente 9
    """
    with db_session(factory) as s:
        s.add(Administrador(id_admin=1, id_auth_user="A1", nombre="Ana", apellido="Robles", correo="ana@nutriu.local"))
        s.add_all(
            [
                Nutriologo(id_nutriologo=42, id_auth_user="U1", nombre="Lucía", apellido="Gámez", correo="lucia@nutriu.local"),
                Nutriologo(id_nutriologo=7, id_auth_user="U7", nombre="Jorge", apellido="Valenzuela"),
            ]
        )
        s.add_all(
            [
                Paciente(id_paciente=1, nombre="Mariana", apellido="Acosta", correo="mariana@correo.mx"),
                Paciente(id_paciente=2, nombre="Héctor", apellido="Durazo", correo="hector@correo.mx"),
                Paciente(id_paciente=3, nombre="Sofía", apellido="Encinas"),
                Paciente(id_paciente=9, nombre="Pablo", apellido="Ibarra"),
            ]
        )
        s.flush()
        s.add_all(
            [
                PacienteNutriologo(id_paciente=1, id_nutriologo=42, activo=True),
                PacienteNutriologo(id_paciente=2, id_nutriologo=42, activo=True),
                PacienteNutriologo(id_paciente=3, id_nutriologo=42, activo=False),
                PacienteNutriologo(id_paciente=9, id_nutriologo=7, activo=True),
            ]
        )


def agregar_cita(
    factory: sessionmaker,
    instante: datetime,
    estado: EstadoCita = EstadoCita.PENDIENTE,
    paciente_id: int = 1,
    nutriologo_id: int = 42,
) -> int:
    with db_session(factory) as s:
        row = CitaRow(
            id_paciente=paciente_id,
            id_nutriologo=nutriologo_id,
            fecha_hora=instante.astimezone(timezone.utc).replace(tzinfo=None),
            estado=estado,
        )
        s.add(row)
        s.flush()
        return row.id_cita


def agregar_pago(
    factory: sessionmaker,
    cita_id: int | None,
    monto: str,
    estado: EstadoPago,
    fecha_pago: datetime | None = None,
) -> int:
    with db_session(factory) as s:
        row = PagoRow(
            id_cita=cita_id,
            id_nutriologo=42,
            monto=Decimal(monto),
            estado=estado,
            fecha_pago=fecha_pago.astimezone(timezone.utc).replace(tzinfo=None) if fecha_pago else None,
        )
        s.add(row)
        s.flush()
        return row.id_pago


@pytest.fixture()
def gestor(factory, clinica) -> GestorCitas:
    pagos = ResolutorPagos(SqlRegistroPagos(factory), monto_default=Decimal("800"))
    return GestorCitas(
        SqlCitaStore(factory),
        SqlRelacionesPacientes(factory),
        pagos,
        reloj=lambda: AHORA,
        limite_proximas=6,
    )


@pytest.fixture()
def cache(tmp_path: Path) -> CacheIdentidad:
    return CacheIdentidad(tmp_path / "sesiones")


class FakeResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        return self.payload


class FakeSession:
    """Registra las llamadas y responde en orden."""

    def __init__(self, *respuestas) -> None:
        self.respuestas = list(respuestas)
        self.llamadas: list[tuple[str, str, dict]] = []

    def _responder(self, metodo: str, url: str, **kwargs):
        self.llamadas.append((metodo, url, kwargs))
        r = self.respuestas.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    def get(self, url, **kwargs):
        return self._responder("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._responder("POST", url, **kwargs)

    def patch(self, url, **kwargs):
        return self._responder("PATCH", url, **kwargs)
