from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal

DURACION_DEFAULT_MINUTOS = 60


class EstadoCita(enum.Enum):
    PENDIENTE = "pendiente"
    CONFIRMADA = "confirmada"
    COMPLETADA = "completada"
    CANCELADA = "cancelada"


class ModalidadCita(enum.Enum):
    PRESENCIAL = "presencial"
    EN_LINEA = "en_linea"


class EstadoPago(enum.Enum):
    PENDIENTE = "pendiente"
    COMPLETADO = "completado"
    CANCELADO = "cancelado"
    # estado ajeno a la agenda (p. ej. reembolsado): el pago existe pero no cuenta como cobrado
    OTRO = "otro"


# Aristas legales de la máquina de estados. Los estados terminales no tienen salida.
TRANSICIONES: dict[EstadoCita, frozenset[EstadoCita]] = {
    EstadoCita.PENDIENTE: frozenset({EstadoCita.CONFIRMADA, EstadoCita.CANCELADA}),
    EstadoCita.CONFIRMADA: frozenset({EstadoCita.COMPLETADA, EstadoCita.CANCELADA}),
    EstadoCita.COMPLETADA: frozenset(),
    EstadoCita.CANCELADA: frozenset(),
}

ESTADOS_ACTIVOS = frozenset({EstadoCita.PENDIENTE, EstadoCita.CONFIRMADA})


def puede_transicionar(origen: EstadoCita, destino: EstadoCita) -> bool:
    return destino in TRANSICIONES[origen]


@dataclass(frozen=True)
class NuevaCita:
    paciente_id: int
    nutriologo_id: int
    fecha_hora: datetime
    duracion_minutos: int = DURACION_DEFAULT_MINUTOS
    modalidad: ModalidadCita = ModalidadCita.PRESENCIAL
    estado: EstadoCita = EstadoCita.PENDIENTE


@dataclass(frozen=True)
class Cita:
    id: int
    paciente_id: int
    nutriologo_id: int
    fecha_hora: datetime
    estado: EstadoCita
    duracion_minutos: int = DURACION_DEFAULT_MINUTOS
    modalidad: ModalidadCita = ModalidadCita.PRESENCIAL
    paciente_nombre: str | None = None


@dataclass(frozen=True)
class Pago:
    id: int
    monto: Decimal
    estado: EstadoPago
    nutriologo_id: int | None = None
    cita_id: int | None = None
    fecha_pago: datetime | None = None


@dataclass(frozen=True)
class EstadoPagoCita:
    pagada: bool
    monto: Decimal
    pago_id: int | None = None


@dataclass(frozen=True)
class PacienteResumen:
    id: int
    nombre: str
    apellido: str
    correo: str | None = None

    @property
    def nombre_completo(self) -> str:
        return f"{self.nombre} {self.apellido}".strip()


@dataclass(frozen=True)
class CitaVista:
    """Cita lista para mostrar: hora local de la clínica y estado de pago."""

    cita: Cita
    fecha_local: date
    hora_local: time
    fecha_texto: str
    hora_texto: str
    pagada: bool
    monto: Decimal

    @property
    def id(self) -> int:
        return self.cita.id

    @property
    def estado(self) -> EstadoCita:
        return self.cita.estado


@dataclass(frozen=True)
class ParticionCitas:
    pendientes: list[CitaVista] = field(default_factory=list)
    completadas: list[CitaVista] = field(default_factory=list)


@dataclass(frozen=True)
class ResumenAgenda:
    citas_activas: int
    citas_completadas: int
    citas_canceladas: int
    cobrado: Decimal
    pendiente_cobro: Decimal
    citas_este_mes: int
