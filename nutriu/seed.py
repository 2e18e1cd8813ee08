from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from nutriu.auth_models import Cuenta
from nutriu.auth_security import hash_password
from nutriu.config import SEED_PASSWORD
from nutriu.db import db_session
from nutriu.dominio import EstadoCita, EstadoPago
from nutriu.models import Administrador, CitaRow, Nutriologo, Paciente, PacienteNutriologo, PagoRow


def _cuenta(s, correo: str) -> Cuenta:
    c = s.execute(select(Cuenta).where(Cuenta.correo == correo)).scalar_one_or_none()
    if c is None:
        c = Cuenta(correo=correo, password_hash=hash_password(SEED_PASSWORD), activa=True)
        s.add(c)
        s.flush()
    return c


def seed_base(factory: sessionmaker | None = None) -> None:
    """
    Datos mínimos (idempotente):
    - una cuenta de administrador y dos de nutriólogo
    - pacientes con su asignación activa
    - citas de ejemplo con pagos, solo si el nutriólogo aún no tiene citas
    """
    with db_session(factory) as s:
        admin = _cuenta(s, "admin@nutriu.local")
        if s.execute(select(Administrador).where(Administrador.id_auth_user == admin.id)).scalar_one_or_none() is None:
            s.add(Administrador(id_auth_user=admin.id, nombre="Ana", apellido="Robles", correo=admin.correo))

        nutriologos = [
            ("lucia@nutriu.local", "Lucía", "Gámez", Decimal("800")),
            ("jorge@nutriu.local", "Jorge", "Valenzuela", Decimal("650")),
        ]
        perfiles: list[Nutriologo] = []
        for correo, nombre, apellido, tarifa in nutriologos:
            cuenta = _cuenta(s, correo)
            n = s.execute(select(Nutriologo).where(Nutriologo.id_auth_user == cuenta.id)).scalar_one_or_none()
            if n is None:
                n = Nutriologo(
                    id_auth_user=cuenta.id, nombre=nombre, apellido=apellido, correo=correo, tarifa_consulta=tarifa
                )
                s.add(n)
            perfiles.append(n)

        pacientes = [
            ("Mariana", "Acosta", "mariana.acosta@correo.mx"),
            ("Héctor", "Durazo", "hector.durazo@correo.mx"),
            ("Sofía", "Encinas", "sofia.encinas@correo.mx"),
        ]
        filas: list[Paciente] = []
        for nombre, apellido, correo in pacientes:
            p = s.execute(select(Paciente).where(Paciente.correo == correo)).scalar_one_or_none()
            if p is None:
                p = Paciente(nombre=nombre, apellido=apellido, correo=correo)
                s.add(p)
            filas.append(p)

        s.flush()

        lucia = perfiles[0]
        for p in filas:
            exists = s.execute(
                select(PacienteNutriologo).where(
                    PacienteNutriologo.id_paciente == p.id_paciente,
                    PacienteNutriologo.id_nutriologo == lucia.id_nutriologo,
                )
            ).scalar_one_or_none()
            if exists is None:
                s.add(PacienteNutriologo(id_paciente=p.id_paciente, id_nutriologo=lucia.id_nutriologo, activo=True))

        if s.execute(select(CitaRow.id_cita).where(CitaRow.id_nutriologo == lucia.id_nutriologo)).first() is not None:
            return

        ahora = datetime.now(timezone.utc).replace(tzinfo=None, minute=0, second=0, microsecond=0)
        ejemplos = [
            (filas[0], ahora - timedelta(days=14), EstadoCita.COMPLETADA, EstadoPago.COMPLETADO),
            (filas[1], ahora - timedelta(days=7), EstadoCita.COMPLETADA, EstadoPago.PENDIENTE),
            (filas[2], ahora + timedelta(days=2), EstadoCita.CONFIRMADA, None),
            (filas[0], ahora + timedelta(days=9), EstadoCita.PENDIENTE, None),
        ]
        for paciente, cuando, estado, estado_pago in ejemplos:
            cita = CitaRow(
                id_paciente=paciente.id_paciente,
                id_nutriologo=lucia.id_nutriologo,
                fecha_hora=cuando,
                estado=estado,
            )
            s.add(cita)
            s.flush()
            if estado_pago is not None:
                s.add(
                    PagoRow(
                        id_cita=cita.id_cita,
                        id_nutriologo=lucia.id_nutriologo,
                        monto=lucia.tarifa_consulta or Decimal("800"),
                        estado=estado_pago,
                        fecha_pago=cuando if estado_pago is EstadoPago.COMPLETADO else None,
                    )
                )
