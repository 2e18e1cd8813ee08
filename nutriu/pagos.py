from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from nutriu.config import MONTO_CONSULTA_DEFAULT
from nutriu.dominio import Cita, EstadoPago, EstadoPagoCita, Pago
from nutriu.puertos import RegistroPagos

_MIN_INSTANTE = datetime.min.replace(tzinfo=timezone.utc)


class PoliticaPago(enum.Enum):
    """Cómo elegir el pago representativo cuando una cita tiene varios."""

    MAS_RECIENTE = "mas_reciente"
    MAYOR_MONTO = "mayor_monto"
    PRIMERO = "primero"


def elegir_representativo(pagos: list[Pago], politica: PoliticaPago) -> Pago | None:
    if not pagos:
        return None
    if politica is PoliticaPago.PRIMERO:
        return pagos[0]
    if politica is PoliticaPago.MAYOR_MONTO:
        return max(pagos, key=lambda p: (p.monto, p.id))
    return max(pagos, key=lambda p: (p.fecha_pago or _MIN_INSTANTE, p.id))


def estado_pago(
    pagos: list[Pago],
    monto_default: Decimal = MONTO_CONSULTA_DEFAULT,
    politica: PoliticaPago = PoliticaPago.MAS_RECIENTE,
) -> EstadoPagoCita:
    """
    - algún pago completado: pagada, con el monto del completado representativo
    - pagos sin completar: no pagada, con el monto del representativo
    - sin pagos: no pagada, con el monto por defecto (solo display)
    """
    completados = [p for p in pagos if p.estado is EstadoPago.COMPLETADO]
    if completados:
        rep = elegir_representativo(completados, politica)
        return EstadoPagoCita(pagada=True, monto=rep.monto, pago_id=rep.id)

    rep = elegir_representativo(pagos, politica)
    if rep is not None:
        return EstadoPagoCita(pagada=False, monto=rep.monto, pago_id=rep.id)
    return EstadoPagoCita(pagada=False, monto=monto_default)


class ResolutorPagos:
    """Solo lectura: nunca modifica registros de pago."""

    def __init__(
        self,
        registro: RegistroPagos,
        monto_default: Decimal = MONTO_CONSULTA_DEFAULT,
        politica: PoliticaPago = PoliticaPago.MAS_RECIENTE,
    ) -> None:
        self.registro = registro
        self.monto_default = monto_default
        self.politica = politica

    def resolver(self, cita: Cita) -> EstadoPagoCita:
        return self.resolver_lote([cita])[cita.id]

    def resolver_lote(self, citas: Iterable[Cita]) -> dict[int, EstadoPagoCita]:
        ids = [c.id for c in citas]
        if not ids:
            return {}
        por_cita = self.registro.pagos_por_cita(ids)
        return {
            cid: estado_pago(por_cita.get(cid, []), self.monto_default, self.politica)
            for cid in ids
        }
