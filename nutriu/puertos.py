"""
Contratos con los colaboradores externos (cuentas, backend de identidad, relaciones
paciente-nutriólogo, pagos y almacén de citas).

Los adaptadores envuelven sus errores de infraestructura en
ErrorTransporteResolucion / ErrorPersistencia antes de devolver el control.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Protocol

from nutriu.dominio import Cita, EstadoCita, NuevaCita, PacienteResumen, Pago

if TYPE_CHECKING:
    from nutriu.identidad import IdentidadAdministrador, IdentidadNutriologo


class Orden(enum.Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class FiltroConsulta:
    desde: datetime | None = None
    estados: frozenset[EstadoCita] | None = None
    limite: int | None = None


class DirectorioPerfiles(Protocol):
    def buscar_administrador(self, principal_id: str) -> IdentidadAdministrador | None: ...

    def buscar_nutriologo(self, principal_id: str) -> IdentidadNutriologo | None: ...


class RelacionesPacientes(Protocol):
    def pacientes_activos(self, nutriologo_id: int) -> set[int]: ...

    def pacientes_asignados(self, nutriologo_id: int) -> list[PacienteResumen]: ...


class RegistroPagos(Protocol):
    def pagos_por_cita(self, cita_ids: Iterable[int]) -> dict[int, list[Pago]]: ...


class CitaStore(Protocol):
    def insertar(self, nueva: NuevaCita) -> int: ...

    def obtener(self, cita_id: int) -> Cita | None: ...

    def actualizar_estado(self, cita_id: int, estado: EstadoCita) -> None:
        """Escritura incondicional (last-write-wins)."""
        ...

    def actualizar_estado_si(self, cita_id: int, esperado: EstadoCita, nuevo: EstadoCita) -> bool:
        """Compare-and-swap: escribe solo si el estado actual es `esperado`."""
        ...

    def consultar_por_nutriologo(
        self, nutriologo_id: int, orden: Orden = Orden.DESC, filtro: FiltroConsulta | None = None
    ) -> list[Cita]: ...


class Autenticador(Protocol):
    """Verifica credenciales contra el proveedor de cuentas y devuelve el principal."""

    def autenticar(self, correo: str, password: str) -> str | None: ...

    def registrar(self, correo: str, password: str) -> str: ...
