from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel

from nutriu import config
from nutriu.auth_security import create_access_token, get_claims
from nutriu.citas import FiltroCitas, particionar
from nutriu.dominio import CitaVista, EstadoCita
from nutriu.errores import (
    AccesoDenegado,
    CitaEnElPasado,
    CitaNoEncontrada,
    ErrorTransitorio,
    IdentidadNoResuelta,
    NutriuError,
    PacienteNoAutorizado,
    TransicionInvalida,
)
from nutriu.identidad import Identidad, IdentidadNutriologo, alcance_de, requiere_nutriologo
from nutriu.logging_config import configure_logging
from nutriu.seed import seed_base
from nutriu.services import Servicios, init_db, servicios_default

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

# un snapshot sin uso más allá de la vida del token pertenece a una sesión expirada
_VIDA_SESION = timedelta(minutes=config.JWT_EXPIRE_MINUTES)

app = FastAPI(title="Nutriu API", version="1.0.0")


# Startup

@app.on_event("startup")
def startup() -> None:
    configure_logging()
    if config.BACKEND == "sql":
        # Crea tablas (incluida Cuenta) y seed base (idempotente)
        init_db()
        seed_base()
    get_servicios().cache.purgar(_VIDA_SESION)


# Errores del núcleo -> HTTP

_STATUS_POR_ERROR: list[tuple[type[NutriuError], int]] = [
    (IdentidadNoResuelta, status.HTTP_403_FORBIDDEN),
    (AccesoDenegado, status.HTTP_403_FORBIDDEN),
    (PacienteNoAutorizado, status.HTTP_403_FORBIDDEN),
    (CitaEnElPasado, status.HTTP_400_BAD_REQUEST),
    (CitaNoEncontrada, status.HTTP_404_NOT_FOUND),
    (TransicionInvalida, status.HTTP_409_CONFLICT),
    (ErrorTransitorio, status.HTTP_503_SERVICE_UNAVAILABLE),
]


@app.exception_handler(NutriuError)
def nutriu_error_handler(request: Request, exc: NutriuError) -> JSONResponse:
    code = next((c for cls, c in _STATUS_POR_ERROR if isinstance(exc, cls)), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(
        status_code=code,
        content={"detail": exc.mensaje, "tipo": type(exc).__name__, "reintentable": exc.reintentable},
    )


# Esquemas

class RegistroIn(BaseModel):
    correo: str
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    principal_id: str
    rol: str
    nombre: str
    apellido: str
    correo: str
    nutriologo_id: int | None = None
    admin_id: int | None = None


class CitaCreateIn(BaseModel):
    # fecha y hora locales de la clínica
    paciente_id: int
    fecha: date
    hora: time


class EstadoIn(BaseModel):
    estado: EstadoCita


class CitaOut(BaseModel):
    id: int
    paciente_id: int
    paciente_nombre: str | None
    fecha_hora: datetime
    fecha: date
    hora: time
    fecha_texto: str
    hora_texto: str
    estado: str
    modalidad: str
    duracion_minutos: int
    pagada: bool
    monto: Decimal


class AgendaOut(BaseModel):
    pendientes: list[CitaOut]
    completadas: list[CitaOut]


class ResumenOut(BaseModel):
    citas_activas: int
    citas_completadas: int
    citas_canceladas: int
    cobrado: Decimal
    pendiente_cobro: Decimal
    citas_este_mes: int


class PacienteOut(BaseModel):
    id: int
    nombre: str
    apellido: str
    correo: str | None


def _cita_out(v: CitaVista) -> CitaOut:
    return CitaOut(
        id=v.cita.id,
        paciente_id=v.cita.paciente_id,
        paciente_nombre=v.cita.paciente_nombre,
        fecha_hora=v.cita.fecha_hora,
        fecha=v.fecha_local,
        hora=v.hora_local,
        fecha_texto=v.fecha_texto,
        hora_texto=v.hora_texto,
        estado=v.estado.value,
        modalidad=v.cita.modalidad.value,
        duracion_minutos=v.cita.duracion_minutos,
        pagada=v.pagada,
        monto=v.monto,
    )


# Dependencias

@lru_cache(maxsize=1)
def get_servicios() -> Servicios:
    return servicios_default()


def get_claims_actuales(token: str = Depends(oauth2_scheme)) -> dict[str, Any]:
    # protección extra: espacios / comillas accidentales
    token = token.strip().strip('"').strip("'")

    claims = get_claims(token)
    if not claims:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token no válido")
    return claims


def get_identidad(
    claims: dict[str, Any] = Depends(get_claims_actuales),
    servicios: Servicios = Depends(get_servicios),
) -> Identidad:
    return servicios.resolutor(claims["sid"]).resolver(claims["sub"])


# AUTH endpoints

@app.post("/api/auth/register", response_model=dict)
def register(payload: RegistroIn, servicios: Servicios = Depends(get_servicios)) -> dict[str, Any]:
    try:
        cuenta_id = servicios.autenticador.registrar(payload.correo, payload.password)
        return {"ok": True, "cuenta_id": cuenta_id}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/auth/login", response_model=TokenOut)
def login(
    form: OAuth2PasswordRequestForm = Depends(),
    servicios: Servicios = Depends(get_servicios),
) -> TokenOut:
    principal_id = servicios.autenticador.autenticar(form.username, form.password)
    if principal_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciales no válidas")

    servicios.cache.purgar(_VIDA_SESION)
    token = create_access_token(subject=principal_id, extra={"correo": form.username.strip().lower()})
    return TokenOut(access_token=token)


@app.post("/api/auth/logout")
def logout(
    claims: dict[str, Any] = Depends(get_claims_actuales),
    servicios: Servicios = Depends(get_servicios),
) -> dict[str, Any]:
    servicios.resolutor(claims["sid"]).invalidar()
    return {"ok": True, "message": "Sesión cerrada correctamente"}


@app.get("/api/me", response_model=MeOut)
def me(identidad: Identidad = Depends(get_identidad)) -> MeOut:
    return MeOut(
        principal_id=identidad.principal_id,
        rol=identidad.rol.value,
        nombre=identidad.nombre,
        apellido=identidad.apellido,
        correo=identidad.correo,
        nutriologo_id=identidad.nutriologo_id if isinstance(identidad, IdentidadNutriologo) else None,
        admin_id=getattr(identidad, "admin_id", None),
    )


# CITAS endpoints (JWT)

@app.get("/api/citas", response_model=list[CitaOut])
def api_citas(
    proximas: bool = Query(False),
    nutriologo_id: int | None = Query(None),
    identidad: Identidad = Depends(get_identidad),
    servicios: Servicios = Depends(get_servicios),
) -> list[CitaOut]:
    alcance = alcance_de(identidad, nutriologo_id)
    vistas = servicios.gestor.listar(alcance, FiltroCitas(proximas=proximas))
    return [_cita_out(v) for v in vistas]


@app.get("/api/citas/agenda", response_model=AgendaOut)
def api_agenda(
    nutriologo_id: int | None = Query(None),
    identidad: Identidad = Depends(get_identidad),
    servicios: Servicios = Depends(get_servicios),
) -> AgendaOut:
    particion = particionar(servicios.gestor.listar(alcance_de(identidad, nutriologo_id)))
    return AgendaOut(
        pendientes=[_cita_out(v) for v in particion.pendientes],
        completadas=[_cita_out(v) for v in particion.completadas],
    )


@app.get("/api/citas/resumen", response_model=ResumenOut)
def api_resumen(
    nutriologo_id: int | None = Query(None),
    identidad: Identidad = Depends(get_identidad),
    servicios: Servicios = Depends(get_servicios),
) -> ResumenOut:
    r = servicios.gestor.resumen(alcance_de(identidad, nutriologo_id))
    return ResumenOut(**asdict(r))


@app.post("/api/citas", response_model=CitaOut, status_code=status.HTTP_201_CREATED)
def api_crea_cita(
    payload: CitaCreateIn,
    identidad: Identidad = Depends(get_identidad),
    servicios: Servicios = Depends(get_servicios),
) -> CitaOut:
    nutriologo = requiere_nutriologo(identidad)
    cita = servicios.gestor.crear(payload.paciente_id, nutriologo.nutriologo_id, payload.fecha, payload.hora)
    vista = servicios.gestor.vista(cita)
    return _cita_out(vista)


@app.post("/api/citas/{cita_id}/estado", response_model=dict)
def api_cambia_estado(
    cita_id: int,
    payload: EstadoIn,
    identidad: Identidad = Depends(get_identidad),
    servicios: Servicios = Depends(get_servicios),
) -> dict[str, Any]:
    nutriologo = requiere_nutriologo(identidad)
    cita = servicios.gestor.transicionar(nutriologo.nutriologo_id, cita_id, payload.estado)
    return {"ok": True, "cita_id": cita.id, "estado": cita.estado.value}


@app.get("/api/pacientes", response_model=list[PacienteOut])
def api_pacientes(
    q: str = Query(""),
    identidad: Identidad = Depends(get_identidad),
    servicios: Servicios = Depends(get_servicios),
) -> list[PacienteOut]:
    nutriologo = requiere_nutriologo(identidad)
    return [
        PacienteOut(id=p.id, nombre=p.nombre, apellido=p.apellido, correo=p.correo)
        for p in servicios.gestor.buscar_pacientes(nutriologo.nutriologo_id, q)
    ]
