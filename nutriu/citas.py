from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Callable

from nutriu.config import LIMITE_PROXIMAS
from nutriu.dominio import (
    ESTADOS_ACTIVOS,
    Cita,
    CitaVista,
    EstadoCita,
    EstadoPagoCita,
    NuevaCita,
    PacienteResumen,
    ParticionCitas,
    ResumenAgenda,
    puede_transicionar,
)
from nutriu.errores import (
    CitaEnElPasado,
    CitaNoEncontrada,
    PacienteNoAutorizado,
    TransicionInvalida,
)
from nutriu.pagos import ResolutorPagos
from nutriu.puertos import CitaStore, FiltroConsulta, Orden, RelacionesPacientes
from nutriu.zona_horaria import (
    a_absoluto,
    a_local,
    ahora_utc,
    formatear_fecha,
    formatear_hora,
    inicio_mes_local,
    inicio_mes_siguiente_local,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FiltroCitas:
    proximas: bool = False
    limite: int | None = None


def particionar(vistas: list[CitaVista]) -> ParticionCitas:
    """Particiones de vista: las canceladas no entran en ninguna."""
    return ParticionCitas(
        pendientes=[v for v in vistas if v.estado in ESTADOS_ACTIVOS],
        completadas=[v for v in vistas if v.estado is EstadoCita.COMPLETADA],
    )


class GestorCitas:
    """
    Casos de uso de la agenda:
    - crear: valida paciente asignado y fecha no pasada, siempre en 'pendiente'
    - transicionar: única puerta para cambiar estado (compare-and-swap en el store)
    - listar: citas del nutriólogo con hora local y estado de pago
    """

    def __init__(
        self,
        store: CitaStore,
        relaciones: RelacionesPacientes,
        pagos: ResolutorPagos,
        reloj: Callable[[], datetime] = ahora_utc,
        limite_proximas: int = LIMITE_PROXIMAS,
    ) -> None:
        self.store = store
        self.relaciones = relaciones
        self.pagos = pagos
        self.reloj = reloj
        self.limite_proximas = limite_proximas

    def crear(self, paciente_id: int, nutriologo_id: int, fecha_local: date, hora_local: time) -> Cita:
        if paciente_id not in self.relaciones.pacientes_activos(nutriologo_id):
            raise PacienteNoAutorizado()

        instante = a_absoluto(fecha_local, hora_local)
        if instante < self.reloj():
            raise CitaEnElPasado()

        nueva = NuevaCita(paciente_id=paciente_id, nutriologo_id=nutriologo_id, fecha_hora=instante)
        cita_id = self.store.insertar(nueva)
        logger.info("Cita %s agendada para nutriólogo %s en %s", cita_id, nutriologo_id, instante.isoformat())

        return Cita(
            id=cita_id,
            paciente_id=nueva.paciente_id,
            nutriologo_id=nueva.nutriologo_id,
            fecha_hora=nueva.fecha_hora,
            estado=nueva.estado,
            duracion_minutos=nueva.duracion_minutos,
            modalidad=nueva.modalidad,
        )

    def transicionar(self, nutriologo_id: int, cita_id: int, destino: EstadoCita) -> Cita:
        cita = self.store.obtener(cita_id)
        # una cita de otro nutriólogo se trata como inexistente
        if cita is None or cita.nutriologo_id != nutriologo_id:
            raise CitaNoEncontrada()

        if not puede_transicionar(cita.estado, destino):
            raise TransicionInvalida(
                f"No se puede pasar una cita {cita.estado.value} a {destino.value}."
            )

        if not self.store.actualizar_estado_si(cita_id, cita.estado, destino):
            actual = self.store.obtener(cita_id)
            estado_actual = actual.estado.value if actual else "desconocido"
            raise TransicionInvalida(f"La cita cambió a {estado_actual} mientras se actualizaba.")

        logger.info("Cita %s: %s -> %s", cita_id, cita.estado.value, destino.value)
        return Cita(
            id=cita.id,
            paciente_id=cita.paciente_id,
            nutriologo_id=cita.nutriologo_id,
            fecha_hora=cita.fecha_hora,
            estado=destino,
            duracion_minutos=cita.duracion_minutos,
            modalidad=cita.modalidad,
            paciente_nombre=cita.paciente_nombre,
        )

    def confirmar(self, nutriologo_id: int, cita_id: int) -> Cita:
        return self.transicionar(nutriologo_id, cita_id, EstadoCita.CONFIRMADA)

    def completar(self, nutriologo_id: int, cita_id: int) -> Cita:
        return self.transicionar(nutriologo_id, cita_id, EstadoCita.COMPLETADA)

    def cancelar(self, nutriologo_id: int, cita_id: int) -> Cita:
        return self.transicionar(nutriologo_id, cita_id, EstadoCita.CANCELADA)

    def listar(self, nutriologo_id: int, filtro: FiltroCitas | None = None) -> list[CitaVista]:
        filtro = filtro or FiltroCitas()
        if filtro.proximas:
            consulta = FiltroConsulta(
                desde=self.reloj(),
                estados=ESTADOS_ACTIVOS,
                limite=filtro.limite or self.limite_proximas,
            )
            citas = self.store.consultar_por_nutriologo(nutriologo_id, Orden.ASC, consulta)
        else:
            consulta = FiltroConsulta(limite=filtro.limite)
            citas = self.store.consultar_por_nutriologo(nutriologo_id, Orden.DESC, consulta)

        estados_pago = self.pagos.resolver_lote(citas)
        return [self._renderizar(c, estados_pago[c.id]) for c in citas]

    def vista(self, cita: Cita) -> CitaVista:
        return self._renderizar(cita, self.pagos.resolver(cita))

    @staticmethod
    def _renderizar(cita: Cita, pago: EstadoPagoCita) -> CitaVista:
        fecha, hora = a_local(cita.fecha_hora)
        return CitaVista(
            cita=cita,
            fecha_local=fecha,
            hora_local=hora,
            fecha_texto=formatear_fecha(fecha),
            hora_texto=formatear_hora(hora),
            pagada=pago.pagada,
            monto=pago.monto,
        )

    def resumen(self, nutriologo_id: int) -> ResumenAgenda:
        vistas = self.listar(nutriologo_id)
        particion = particionar(vistas)
        no_canceladas = [v for v in vistas if v.estado is not EstadoCita.CANCELADA]
        ahora = self.reloj()
        desde_mes, hasta_mes = inicio_mes_local(ahora), inicio_mes_siguiente_local(ahora)

        return ResumenAgenda(
            citas_activas=len(particion.pendientes),
            citas_completadas=len(particion.completadas),
            citas_canceladas=len(vistas) - len(no_canceladas),
            cobrado=sum((v.monto for v in no_canceladas if v.pagada), Decimal("0")),
            pendiente_cobro=sum((v.monto for v in no_canceladas if not v.pagada), Decimal("0")),
            citas_este_mes=sum(1 for v in no_canceladas if desde_mes <= v.cita.fecha_hora < hasta_mes),
        )

    def buscar_pacientes(self, nutriologo_id: int, texto: str = "") -> list[PacienteResumen]:
        pacientes = self.relaciones.pacientes_asignados(nutriologo_id)
        q = texto.strip().lower()
        if not q:
            return pacientes
        return [
            p
            for p in pacientes
            if q in p.nombre.lower() or q in p.apellido.lower() or q in (p.correo or "").lower()
        ]
