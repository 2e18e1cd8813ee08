from __future__ import annotations

from datetime import datetime, timedelta, timezone

from conftest import AHORA, agregar_cita
from sqlalchemy import func, select

from nutriu.auth_models import Cuenta
from nutriu.db import db_session
from nutriu.dominio import ESTADOS_ACTIVOS, EstadoCita, NuevaCita
from nutriu.models import Administrador, CitaRow, Nutriologo, PacienteNutriologo
from nutriu.puertos import FiltroConsulta, Orden
from nutriu.repositorio_sql import SqlCitaStore, SqlRelacionesPacientes
from nutriu.seed import seed_base


def test_insertar_persiste_utc_naive(factory, clinica) -> None:
    store = SqlCitaStore(factory)
    cita_id = store.insertar(
        NuevaCita(paciente_id=1, nutriologo_id=42, fecha_hora=datetime(2026, 1, 20, 17, 0, tzinfo=timezone.utc))
    )

    with db_session(factory) as s:
        row = s.get(CitaRow, cita_id)
        assert row.fecha_hora == datetime(2026, 1, 20, 17, 0)
        assert row.estado is EstadoCita.PENDIENTE


def test_compare_and_swap_solo_escribe_si_coincide(factory, clinica) -> None:
    store = SqlCitaStore(factory)
    cita_id = agregar_cita(factory, AHORA, EstadoCita.CANCELADA)

    assert store.actualizar_estado_si(cita_id, EstadoCita.CONFIRMADA, EstadoCita.COMPLETADA) is False
    assert store.obtener(cita_id).estado is EstadoCita.CANCELADA

    assert store.actualizar_estado_si(cita_id, EstadoCita.CANCELADA, EstadoCita.PENDIENTE) is True
    assert store.obtener(cita_id).estado is EstadoCita.PENDIENTE


def test_actualizar_estado_es_last_write_wins(factory, clinica) -> None:
    store = SqlCitaStore(factory)
    cita_id = agregar_cita(factory, AHORA, EstadoCita.CANCELADA)

    store.actualizar_estado(cita_id, EstadoCita.COMPLETADA)

    assert store.obtener(cita_id).estado is EstadoCita.COMPLETADA


def test_consulta_filtrada_por_nutriologo_estado_y_desde(factory, clinica) -> None:
    store = SqlCitaStore(factory)
    agregar_cita(factory, AHORA - timedelta(hours=1), EstadoCita.PENDIENTE)
    a = agregar_cita(factory, AHORA + timedelta(hours=2), EstadoCita.PENDIENTE)
    b = agregar_cita(factory, AHORA + timedelta(hours=1), EstadoCita.CONFIRMADA)
    agregar_cita(factory, AHORA + timedelta(hours=3), EstadoCita.COMPLETADA)
    agregar_cita(factory, AHORA + timedelta(hours=1), EstadoCita.PENDIENTE, paciente_id=9, nutriologo_id=7)

    citas = store.consultar_por_nutriologo(
        42, Orden.ASC, FiltroConsulta(desde=AHORA, estados=ESTADOS_ACTIVOS, limite=10)
    )

    assert [c.id for c in citas] == [b, a]
    assert all(c.fecha_hora.tzinfo is not None for c in citas)
    assert len(store.consultar_por_nutriologo(42)) == 4


def test_relaciones_activas(factory, clinica) -> None:
    assert SqlRelacionesPacientes(factory).pacientes_activos(42) == {1, 2}
    assert SqlRelacionesPacientes(factory).pacientes_activos(7) == {9}
    assert SqlRelacionesPacientes(factory).pacientes_activos(1000) == set()


def test_seed_es_idempotente(factory) -> None:
    seed_base(factory)
    seed_base(factory)

    with db_session(factory) as s:
        assert s.scalar(select(func.count()).select_from(Cuenta)) == 3
        assert s.scalar(select(func.count()).select_from(Administrador)) == 1
        assert s.scalar(select(func.count()).select_from(Nutriologo)) == 2
        assert s.scalar(select(func.count()).select_from(PacienteNutriologo)) == 3
        assert s.scalar(select(func.count()).select_from(CitaRow)) == 4
