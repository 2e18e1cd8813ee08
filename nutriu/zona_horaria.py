"""
Conversión entre hora local de la clínica y el instante absoluto persistido.

La clínica opera con un offset fijo UTC-7 (America/Hermosillo, sin horario de
verano). No se usa base de datos de zonas horarias: cambiarlo alteraría el
comportamiento observable.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

OFFSET_CLINICA = timedelta(hours=7)  # local = UTC - 7h

_MESES = ("ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sept", "oct", "nov", "dic")


def ahora_utc() -> datetime:
    return datetime.now(timezone.utc)


def a_absoluto(fecha: date, hora: time) -> datetime:
    """Interpreta (fecha, hora) como hora local de la clínica y devuelve el instante UTC."""
    como_utc = datetime.combine(fecha, hora.replace(tzinfo=None), tzinfo=timezone.utc)
    return como_utc + OFFSET_CLINICA


def a_local(instante: datetime) -> tuple[date, time]:
    """Inversa exacta de a_absoluto."""
    if instante.tzinfo is None:
        raise ValueError("Se requiere un instante con zona horaria.")
    local = instante.astimezone(timezone.utc) - OFFSET_CLINICA
    return local.date(), local.time().replace(tzinfo=None)


def inicio_mes_local(instante: datetime) -> datetime:
    """Instante UTC del primer día del mes local que contiene a `instante`."""
    fecha, _ = a_local(instante)
    return a_absoluto(fecha.replace(day=1), time(0, 0))


def inicio_mes_siguiente_local(instante: datetime) -> datetime:
    """Cota superior exclusiva del mes local que contiene a `instante`."""
    fecha, _ = a_local(instante)
    if fecha.month == 12:
        return a_absoluto(date(fecha.year + 1, 1, 1), time(0, 0))
    return a_absoluto(date(fecha.year, fecha.month + 1, 1), time(0, 0))


def formatear_fecha(fecha: date) -> str:
    # estilo es-MX "medium": 20 ene 2026
    return f"{fecha.day} {_MESES[fecha.month - 1]} {fecha.year}"


def formatear_hora(hora: time) -> str:
    # 12 horas con sufijo es-MX: 10:00 a.m.
    sufijo = "a.m." if hora.hour < 12 else "p.m."
    h12 = hora.hour % 12 or 12
    return f"{h12:02d}:{hora.minute:02d} {sufijo}"
