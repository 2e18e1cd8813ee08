"""Adaptadores de los puertos sobre SQLAlchemy (base local)."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload, sessionmaker

from nutriu.db import db_session
from nutriu.dominio import Cita, EstadoCita, NuevaCita, PacienteResumen, Pago
from nutriu.errores import ErrorPersistencia, ErrorTransporteResolucion
from nutriu.identidad import IdentidadAdministrador, IdentidadNutriologo
from nutriu.models import Administrador, CitaRow, Nutriologo, Paciente, PacienteNutriologo, PagoRow
from nutriu.puertos import FiltroConsulta, Orden

logger = logging.getLogger(__name__)


def _a_columna(instante: datetime) -> datetime:
    return instante.astimezone(timezone.utc).replace(tzinfo=None)


def _desde_columna(valor: datetime | None) -> datetime | None:
    if valor is None:
        return None
    if valor.tzinfo is None:
        return valor.replace(tzinfo=timezone.utc)
    return valor.astimezone(timezone.utc)


def _cita(row: CitaRow) -> Cita:
    nombre = None
    if row.paciente is not None:
        nombre = f"{row.paciente.nombre} {row.paciente.apellido}".strip()
    return Cita(
        id=row.id_cita,
        paciente_id=row.id_paciente,
        nutriologo_id=row.id_nutriologo,
        fecha_hora=_desde_columna(row.fecha_hora),
        estado=row.estado,
        duracion_minutos=row.duracion_minutos,
        modalidad=row.tipo_cita,
        paciente_nombre=nombre,
    )


class SqlDirectorioPerfiles:
    def __init__(self, factory: sessionmaker | None = None) -> None:
        self.factory = factory

    def buscar_administrador(self, principal_id: str) -> IdentidadAdministrador | None:
        try:
            with db_session(self.factory) as s:
                a = s.execute(
                    select(Administrador).where(Administrador.id_auth_user == principal_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Error SQL buscando administrador: %s", exc)
            raise ErrorTransporteResolucion() from exc

        if a is None:
            return None
        return IdentidadAdministrador(
            principal_id=principal_id,
            admin_id=a.id_admin,
            correo=a.correo or "",
            nombre=a.nombre or "",
            apellido=a.apellido or "",
        )

    def buscar_nutriologo(self, principal_id: str) -> IdentidadNutriologo | None:
        try:
            with db_session(self.factory) as s:
                n = s.execute(
                    select(Nutriologo).where(Nutriologo.id_auth_user == principal_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Error SQL buscando nutriólogo: %s", exc)
            raise ErrorTransporteResolucion() from exc

        if n is None:
            return None
        return IdentidadNutriologo(
            principal_id=principal_id,
            nutriologo_id=n.id_nutriologo,
            correo=n.correo or "",
            nombre=n.nombre or "",
            apellido=n.apellido or "",
        )


class SqlRelacionesPacientes:
    def __init__(self, factory: sessionmaker | None = None) -> None:
        self.factory = factory

    def pacientes_activos(self, nutriologo_id: int) -> set[int]:
        try:
            with db_session(self.factory) as s:
                ids = s.scalars(
                    select(PacienteNutriologo.id_paciente).where(
                        and_(PacienteNutriologo.id_nutriologo == nutriologo_id, PacienteNutriologo.activo.is_(True))
                    )
                )
                return set(ids)
        except SQLAlchemyError as exc:
            logger.error("Error SQL en pacientes_activos: %s", exc)
            raise ErrorPersistencia() from exc

    def pacientes_asignados(self, nutriologo_id: int) -> list[PacienteResumen]:
        q = (
            select(Paciente.id_paciente, Paciente.nombre, Paciente.apellido, Paciente.correo)
            .join(PacienteNutriologo, PacienteNutriologo.id_paciente == Paciente.id_paciente)
            .where(and_(PacienteNutriologo.id_nutriologo == nutriologo_id, PacienteNutriologo.activo.is_(True)))
            .order_by(Paciente.apellido, Paciente.nombre)
        )
        try:
            with db_session(self.factory) as s:
                rows = s.execute(q).all()
        except SQLAlchemyError as exc:
            logger.error("Error SQL en pacientes_asignados: %s", exc)
            raise ErrorPersistencia() from exc

        return [
            PacienteResumen(id=r.id_paciente, nombre=r.nombre, apellido=r.apellido, correo=r.correo)
            for r in rows
        ]


class SqlRegistroPagos:
    def __init__(self, factory: sessionmaker | None = None) -> None:
        self.factory = factory

    def pagos_por_cita(self, cita_ids: Iterable[int]) -> dict[int, list[Pago]]:
        ids = list(cita_ids)
        if not ids:
            return {}
        # orden por id: "el primero" de la política PRIMERO es el de menor id
        q = select(PagoRow).where(PagoRow.id_cita.in_(ids)).order_by(PagoRow.id_pago.asc())
        try:
            with db_session(self.factory) as s:
                rows = list(s.scalars(q))
        except SQLAlchemyError as exc:
            logger.error("Error SQL en pagos_por_cita: %s", exc)
            raise ErrorPersistencia() from exc

        resultado: dict[int, list[Pago]] = {}
        for r in rows:
            resultado.setdefault(r.id_cita, []).append(
                Pago(
                    id=r.id_pago,
                    monto=r.monto,
                    estado=r.estado,
                    nutriologo_id=r.id_nutriologo,
                    cita_id=r.id_cita,
                    fecha_pago=_desde_columna(r.fecha_pago),
                )
            )
        return resultado


class SqlCitaStore:
    def __init__(self, factory: sessionmaker | None = None) -> None:
        self.factory = factory

    def insertar(self, nueva: NuevaCita) -> int:
        try:
            with db_session(self.factory) as s:
                row = CitaRow(
                    id_paciente=nueva.paciente_id,
                    id_nutriologo=nueva.nutriologo_id,
                    fecha_hora=_a_columna(nueva.fecha_hora),
                    duracion_minutos=nueva.duracion_minutos,
                    tipo_cita=nueva.modalidad,
                    estado=nueva.estado,
                )
                s.add(row)
                s.flush()
                return row.id_cita
        except SQLAlchemyError as exc:
            logger.error("Error SQL insertando cita: %s", exc)
            raise ErrorPersistencia("No se pudo agendar la cita, intenta de nuevo.") from exc

    def obtener(self, cita_id: int) -> Cita | None:
        try:
            with db_session(self.factory) as s:
                row = s.execute(
                    select(CitaRow).options(selectinload(CitaRow.paciente)).where(CitaRow.id_cita == cita_id)
                ).scalar_one_or_none()
                return _cita(row) if row is not None else None
        except SQLAlchemyError as exc:
            logger.error("Error SQL leyendo cita %s: %s", cita_id, exc)
            raise ErrorPersistencia() from exc

    def actualizar_estado(self, cita_id: int, estado: EstadoCita) -> None:
        try:
            with db_session(self.factory) as s:
                s.execute(update(CitaRow).where(CitaRow.id_cita == cita_id).values(estado=estado))
        except SQLAlchemyError as exc:
            logger.error("Error SQL actualizando cita %s: %s", cita_id, exc)
            raise ErrorPersistencia("Error al actualizar la cita.") from exc

    def actualizar_estado_si(self, cita_id: int, esperado: EstadoCita, nuevo: EstadoCita) -> bool:
        try:
            with db_session(self.factory) as s:
                result = s.execute(
                    update(CitaRow)
                    .where(and_(CitaRow.id_cita == cita_id, CitaRow.estado == esperado))
                    .values(estado=nuevo)
                )
                return result.rowcount == 1
        except SQLAlchemyError as exc:
            logger.error("Error SQL actualizando cita %s: %s", cita_id, exc)
            raise ErrorPersistencia("Error al actualizar la cita.") from exc

    def consultar_por_nutriologo(
        self, nutriologo_id: int, orden: Orden = Orden.DESC, filtro: FiltroConsulta | None = None
    ) -> list[Cita]:
        filtro = filtro or FiltroConsulta()
        q = select(CitaRow).options(selectinload(CitaRow.paciente)).where(CitaRow.id_nutriologo == nutriologo_id)
        if filtro.desde is not None:
            q = q.where(CitaRow.fecha_hora >= _a_columna(filtro.desde))
        if filtro.estados:
            q = q.where(CitaRow.estado.in_(list(filtro.estados)))

        if orden is Orden.ASC:
            q = q.order_by(CitaRow.fecha_hora.asc(), CitaRow.id_cita.asc())
        else:
            q = q.order_by(CitaRow.fecha_hora.desc(), CitaRow.id_cita.desc())
        if filtro.limite:
            q = q.limit(filtro.limite)

        try:
            with db_session(self.factory) as s:
                return [_cita(r) for r in s.scalars(q)]
        except SQLAlchemyError as exc:
            logger.error("Error SQL en consultar_por_nutriologo: %s", exc)
            raise ErrorPersistencia("No se pudieron cargar las citas.") from exc
