"""
Adaptadores de los puertos sobre el backend alojado (API REST estilo PostgREST/Supabase).

Filtros con la sintaxis del backend: `columna=eq.valor`, `in.(a,b)`, `gte.`,
`order=columna.desc`, `limit=n`. Las escrituras piden `return=representation`
para saber cuántas filas se tocaron.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable

import requests

from nutriu.config import HTTP_TIMEOUT, SUPABASE_KEY, SUPABASE_URL
from nutriu.dominio import Cita, EstadoCita, EstadoPago, ModalidadCita, NuevaCita, PacienteResumen, Pago
from nutriu.errores import ErrorPersistencia, ErrorTransporteResolucion
from nutriu.identidad import IdentidadAdministrador, IdentidadNutriologo
from nutriu.puertos import FiltroConsulta, Orden

logger = logging.getLogger(__name__)

_SELECT_CITA = "id_cita,id_paciente,id_nutriologo,fecha_hora,estado,duracion_minutos,tipo_cita,pacientes(nombre,apellido)"


class ClienteRest:
    """HTTP client del backend alojado (apikey + bearer)."""

    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        api_key: str = SUPABASE_KEY,
        access_token: str | None = None,
        timeout: float = HTTP_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }

    def _url(self, tabla: str) -> str:
        return f"{self.base_url}/rest/v1/{tabla}"

    def auth(self, ruta: str, payload: dict[str, Any], params: dict[str, str] | None = None) -> requests.Response:
        # endpoints de GoTrue: el llamador interpreta el status
        return self.session.post(
            f"{self.base_url}/auth/v1/{ruta}",
            headers={"apikey": self.api_key, "Content-Type": "application/json"},
            params=params,
            json=payload,
            timeout=self.timeout,
        )

    def get(self, tabla: str, params: dict[str, str]) -> list[dict[str, Any]]:
        r = self.session.get(self._url(tabla), headers=self.headers, params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def post(self, tabla: str, payload: dict[str, Any]) -> list[dict[str, Any]]:
        headers = {**self.headers, "Prefer": "return=representation"}
        r = self.session.post(self._url(tabla), headers=headers, json=payload, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def patch(self, tabla: str, params: dict[str, str], payload: dict[str, Any]) -> list[dict[str, Any]]:
        headers = {**self.headers, "Prefer": "return=representation"}
        r = self.session.patch(
            self._url(tabla), headers=headers, params=params, json=payload, timeout=self.timeout
        )
        r.raise_for_status()
        return r.json()


def _instante(valor: str | None) -> datetime | None:
    if not valor:
        return None
    dt = datetime.fromisoformat(valor.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(instante: datetime) -> str:
    return instante.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _estado_pago(valor: str) -> EstadoPago:
    try:
        return EstadoPago(valor)
    except ValueError:
        logger.warning("Estado de pago desconocido %r, se trata como no cobrado", valor)
        return EstadoPago.OTRO


def _cita(data: dict[str, Any]) -> Cita:
    try:
        estado = EstadoCita(data["estado"])
    except ValueError as exc:
        logger.error("Cita %s con estado desconocido %r", data.get("id_cita"), data["estado"])
        raise ErrorPersistencia("El backend devolvió una cita con estado desconocido.") from exc
    paciente = data.get("pacientes") or {}
    nombre = f"{paciente.get('nombre') or ''} {paciente.get('apellido') or ''}".strip() or None
    return Cita(
        id=int(data["id_cita"]),
        paciente_id=int(data["id_paciente"]),
        nutriologo_id=int(data["id_nutriologo"]),
        fecha_hora=_instante(data["fecha_hora"]),
        estado=estado,
        duracion_minutos=int(data.get("duracion_minutos") or 60),
        modalidad=ModalidadCita(data.get("tipo_cita") or ModalidadCita.PRESENCIAL.value),
        paciente_nombre=nombre,
    )


class RestDirectorioPerfiles:
    def __init__(self, cliente: ClienteRest) -> None:
        self.cliente = cliente

    def _uno(self, tabla: str, select: str, principal_id: str) -> dict[str, Any] | None:
        try:
            rows = self.cliente.get(tabla, {"select": select, "id_auth_user": f"eq.{principal_id}", "limit": "1"})
        except requests.RequestException as exc:
            logger.error("Error consultando %s: %s", tabla, exc)
            raise ErrorTransporteResolucion() from exc
        return rows[0] if rows else None

    def buscar_administrador(self, principal_id: str) -> IdentidadAdministrador | None:
        a = self._uno("administradores", "id_admin,nombre,apellido,correo", principal_id)
        if a is None:
            return None
        return IdentidadAdministrador(
            principal_id=principal_id,
            admin_id=int(a["id_admin"]),
            correo=a.get("correo") or "",
            nombre=a.get("nombre") or "",
            apellido=a.get("apellido") or "",
        )

    def buscar_nutriologo(self, principal_id: str) -> IdentidadNutriologo | None:
        n = self._uno("nutriologos", "id_nutriologo,nombre,apellido,correo", principal_id)
        if n is None:
            return None
        return IdentidadNutriologo(
            principal_id=principal_id,
            nutriologo_id=int(n["id_nutriologo"]),
            correo=n.get("correo") or "",
            nombre=n.get("nombre") or "",
            apellido=n.get("apellido") or "",
        )


class RestRelacionesPacientes:
    def __init__(self, cliente: ClienteRest) -> None:
        self.cliente = cliente

    def _relaciones(self, nutriologo_id: int, select: str) -> list[dict[str, Any]]:
        try:
            return self.cliente.get(
                "paciente_nutriologo",
                {"select": select, "id_nutriologo": f"eq.{nutriologo_id}", "activo": "eq.true"},
            )
        except requests.RequestException as exc:
            logger.error("Error consultando paciente_nutriologo: %s", exc)
            raise ErrorPersistencia() from exc

    def pacientes_activos(self, nutriologo_id: int) -> set[int]:
        return {int(r["id_paciente"]) for r in self._relaciones(nutriologo_id, "id_paciente")}

    def pacientes_asignados(self, nutriologo_id: int) -> list[PacienteResumen]:
        rows = self._relaciones(nutriologo_id, "id_paciente,pacientes(nombre,apellido,correo)")
        pacientes = [
            PacienteResumen(
                id=int(r["id_paciente"]),
                nombre=(r.get("pacientes") or {}).get("nombre") or "",
                apellido=(r.get("pacientes") or {}).get("apellido") or "",
                correo=(r.get("pacientes") or {}).get("correo"),
            )
            for r in rows
        ]
        return sorted(pacientes, key=lambda p: (p.apellido, p.nombre))


class RestRegistroPagos:
    def __init__(self, cliente: ClienteRest) -> None:
        self.cliente = cliente

    def pagos_por_cita(self, cita_ids: Iterable[int]) -> dict[int, list[Pago]]:
        ids = [str(i) for i in cita_ids]
        if not ids:
            return {}
        try:
            rows = self.cliente.get(
                "pagos",
                {
                    "select": "id_pago,id_cita,id_nutriologo,monto,estado,fecha_pago",
                    "id_cita": f"in.({','.join(ids)})",
                    "order": "id_pago.asc",
                },
            )
        except requests.RequestException as exc:
            logger.error("Error consultando pagos: %s", exc)
            raise ErrorPersistencia() from exc

        resultado: dict[int, list[Pago]] = {}
        for r in rows:
            cita_id = int(r["id_cita"])
            resultado.setdefault(cita_id, []).append(
                Pago(
                    id=int(r["id_pago"]),
                    monto=Decimal(str(r.get("monto") or 0)),
                    estado=_estado_pago(r["estado"]),
                    nutriologo_id=r.get("id_nutriologo"),
                    cita_id=cita_id,
                    fecha_pago=_instante(r.get("fecha_pago")),
                )
            )
        return resultado


class RestCitaStore:
    def __init__(self, cliente: ClienteRest) -> None:
        self.cliente = cliente

    def insertar(self, nueva: NuevaCita) -> int:
        payload = {
            "id_paciente": nueva.paciente_id,
            "id_nutriologo": nueva.nutriologo_id,
            "fecha_hora": _iso(nueva.fecha_hora),
            "estado": nueva.estado.value,
            "duracion_minutos": nueva.duracion_minutos,
            "tipo_cita": nueva.modalidad.value,
        }
        try:
            rows = self.cliente.post("citas", payload)
        except requests.RequestException as exc:
            logger.error("Error insertando cita: %s", exc)
            raise ErrorPersistencia("No se pudo agendar la cita, intenta de nuevo.") from exc
        if not rows:
            raise ErrorPersistencia("El backend no confirmó la cita.")
        return int(rows[0]["id_cita"])

    def obtener(self, cita_id: int) -> Cita | None:
        try:
            rows = self.cliente.get("citas", {"select": _SELECT_CITA, "id_cita": f"eq.{cita_id}", "limit": "1"})
        except requests.RequestException as exc:
            logger.error("Error leyendo cita %s: %s", cita_id, exc)
            raise ErrorPersistencia() from exc
        return _cita(rows[0]) if rows else None

    def actualizar_estado(self, cita_id: int, estado: EstadoCita) -> None:
        try:
            self.cliente.patch("citas", {"id_cita": f"eq.{cita_id}"}, {"estado": estado.value})
        except requests.RequestException as exc:
            logger.error("Error actualizando cita %s: %s", cita_id, exc)
            raise ErrorPersistencia("Error al actualizar la cita.") from exc

    def actualizar_estado_si(self, cita_id: int, esperado: EstadoCita, nuevo: EstadoCita) -> bool:
        try:
            rows = self.cliente.patch(
                "citas",
                {"id_cita": f"eq.{cita_id}", "estado": f"eq.{esperado.value}"},
                {"estado": nuevo.value},
            )
        except requests.RequestException as exc:
            logger.error("Error actualizando cita %s: %s", cita_id, exc)
            raise ErrorPersistencia("Error al actualizar la cita.") from exc
        return len(rows) == 1

    def consultar_por_nutriologo(
        self, nutriologo_id: int, orden: Orden = Orden.DESC, filtro: FiltroConsulta | None = None
    ) -> list[Cita]:
        filtro = filtro or FiltroConsulta()
        params = {
            "select": _SELECT_CITA,
            "id_nutriologo": f"eq.{nutriologo_id}",
            "order": f"fecha_hora.{orden.value},id_cita.{orden.value}",
        }
        if filtro.desde is not None:
            params["fecha_hora"] = f"gte.{_iso(filtro.desde)}"
        if filtro.estados:
            valores = ",".join(sorted(e.value for e in filtro.estados))
            params["estado"] = f"in.({valores})"
        if filtro.limite:
            params["limit"] = str(filtro.limite)

        try:
            rows = self.cliente.get("citas", params)
        except requests.RequestException as exc:
            logger.error("Error consultando citas: %s", exc)
            raise ErrorPersistencia("No se pudieron cargar las citas.") from exc
        return [_cita(r) for r in rows]


class AutenticadorRest:
    """
    Cuentas del backend alojado (GoTrue). El id del usuario es el principal que
    referencian `administradores.id_auth_user` y `nutriologos.id_auth_user`.
    Solo establece el principal: las consultas siguen usando la apikey del
    cliente, que es compartido entre sesiones.
    """

    def __init__(self, cliente: ClienteRest) -> None:
        self.cliente = cliente

    def autenticar(self, correo: str, password: str) -> str | None:
        try:
            r = self.cliente.auth(
                "token", {"email": correo.strip().lower(), "password": password}, {"grant_type": "password"}
            )
        except requests.RequestException as exc:
            logger.error("Error contactando el servicio de cuentas: %s", exc)
            raise ErrorTransporteResolucion("No se pudo iniciar sesión, intenta nuevamente.") from exc

        # 400: credenciales inválidas o correo sin confirmar
        if r.status_code in (400, 401):
            return None
        try:
            r.raise_for_status()
        except requests.HTTPError as exc:
            logger.error("Servicio de cuentas respondió %s", r.status_code)
            raise ErrorTransporteResolucion("No se pudo iniciar sesión, intenta nuevamente.") from exc

        return str(r.json()["user"]["id"])

    def registrar(self, correo: str, password: str) -> str:
        correo = correo.strip().lower()
        if not correo or not password:
            raise ValueError("Correo y contraseña son obligatorios.")
        try:
            r = self.cliente.auth("signup", {"email": correo, "password": password})
        except requests.RequestException as exc:
            logger.error("Error contactando el servicio de cuentas: %s", exc)
            raise ErrorPersistencia("No se pudo crear la cuenta, intenta de nuevo.") from exc

        if 400 <= r.status_code < 500:
            data = r.json() or {}
            raise ValueError(data.get("msg") or data.get("error_description") or "Registro rechazado.")
        try:
            r.raise_for_status()
        except requests.HTTPError as exc:
            raise ErrorPersistencia("No se pudo crear la cuenta, intenta de nuevo.") from exc

        data = r.json()
        usuario = data.get("user") or data
        return str(usuario["id"])
