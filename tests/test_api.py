from __future__ import annotations

import os
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from conftest import AHORA, FakeResponse, FakeSession, agregar_cita, agregar_pago
from fastapi.testclient import TestClient

from nutriu.api_main import app, get_servicios
from nutriu.auth_security import create_access_token, get_claims
from nutriu.auth_service import crea_cuenta
from nutriu.db import db_session
from nutriu.dominio import EstadoCita, EstadoPago
from nutriu.models import Nutriologo
from nutriu.repositorio_rest import ClienteRest
from nutriu.services import servicios_rest, servicios_sql


@pytest.fixture()
def servicios(factory, clinica, tmp_path):
    return servicios_sql(factory, cache_dir=tmp_path / "sesiones", reloj=lambda: AHORA)


@pytest.fixture()
def client(servicios):
    app.dependency_overrides[get_servicios] = lambda: servicios
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(principal: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(principal)}"}


def _instante(valor: str) -> datetime:
    return datetime.fromisoformat(valor.replace("Z", "+00:00"))


def test_me_nutriologo(client: TestClient) -> None:
    r = client.get("/api/me", headers=_auth("U1"))

    assert r.status_code == 200
    body = r.json()
    assert body["rol"] == "nutriologo"
    assert body["nutriologo_id"] == 42
    assert body["admin_id"] is None


def test_me_administrador(client: TestClient) -> None:
    body = client.get("/api/me", headers=_auth("A1")).json()

    assert body["rol"] == "admin"
    assert body["admin_id"] == 1


def test_sin_token_o_token_invalido(client: TestClient) -> None:
    assert client.get("/api/me").status_code == 401
    assert client.get("/api/me", headers={"Authorization": "Bearer basura"}).status_code == 401


def test_principal_sin_perfil_es_403_no_reintentable(client: TestClient) -> None:
    r = client.get("/api/me", headers=_auth("U-desconocido"))

    assert r.status_code == 403
    assert r.json()["tipo"] == "IdentidadNoResuelta"
    assert r.json()["reintentable"] is False


def test_crear_cita_en_hora_local(client: TestClient) -> None:
    r = client.post(
        "/api/citas",
        json={"paciente_id": 1, "fecha": "2026-01-20", "hora": "10:00"},
        headers=_auth("U1"),
    )

    assert r.status_code == 201
    body = r.json()
    assert _instante(body["fecha_hora"]) == datetime(2026, 1, 20, 17, 0, tzinfo=timezone.utc)
    assert body["fecha"] == "2026-01-20"
    assert body["hora"] == "10:00:00"
    assert body["estado"] == "pendiente"
    assert body["paciente_nombre"] == "Mariana Acosta"
    assert body["pagada"] is False
    assert Decimal(str(body["monto"])) == Decimal("800")


def test_crear_cita_en_el_pasado_es_400(client: TestClient) -> None:
    r = client.post(
        "/api/citas",
        json={"paciente_id": 1, "fecha": "2026-01-15", "hora": "10:59"},
        headers=_auth("U1"),
    )

    assert r.status_code == 400
    assert r.json()["detail"] == "No se puede agendar citas en fechas pasadas."


def test_crear_cita_con_paciente_ajeno_es_403(client: TestClient) -> None:
    r = client.post(
        "/api/citas",
        json={"paciente_id": 9, "fecha": "2026-01-20", "hora": "10:00"},
        headers=_auth("U1"),
    )

    assert r.status_code == 403
    assert r.json()["tipo"] == "PacienteNoAutorizado"


def test_administrador_no_agenda(client: TestClient) -> None:
    r = client.post(
        "/api/citas",
        json={"paciente_id": 1, "fecha": "2026-01-20", "hora": "10:00"},
        headers=_auth("A1"),
    )

    assert r.status_code == 403
    assert r.json()["tipo"] == "AccesoDenegado"


def test_transiciones_y_conflicto(client: TestClient, factory) -> None:
    cita_id = agregar_cita(factory, AHORA + timedelta(days=1), EstadoCita.PENDIENTE)
    url = f"/api/citas/{cita_id}/estado"

    assert client.post(url, json={"estado": "confirmada"}, headers=_auth("U1")).json()["estado"] == "confirmada"
    assert client.post(url, json={"estado": "completada"}, headers=_auth("U1")).status_code == 200

    r = client.post(url, json={"estado": "completada"}, headers=_auth("U1"))
    assert r.status_code == 409
    assert r.json()["tipo"] == "TransicionInvalida"


def test_transicion_de_cita_ajena_es_404(client: TestClient, factory) -> None:
    ajena = agregar_cita(factory, AHORA, EstadoCita.CONFIRMADA, paciente_id=9, nutriologo_id=7)

    r = client.post(f"/api/citas/{ajena}/estado", json={"estado": "cancelada"}, headers=_auth("U1"))

    assert r.status_code == 404


def test_listado_y_agenda(client: TestClient, factory) -> None:
    completada = agregar_cita(factory, AHORA - timedelta(days=2), EstadoCita.COMPLETADA)
    agregar_pago(factory, completada, "650", EstadoPago.COMPLETADO, AHORA - timedelta(days=2))
    futura = agregar_cita(factory, AHORA + timedelta(days=2), EstadoCita.CONFIRMADA)
    agregar_cita(factory, AHORA + timedelta(days=3), EstadoCita.CANCELADA)

    todas = client.get("/api/citas", headers=_auth("U1")).json()
    assert len(todas) == 3
    assert todas[-1]["id"] == completada
    assert Decimal(str(todas[-1]["monto"])) == Decimal("650")

    proximas = client.get("/api/citas", params={"proximas": True}, headers=_auth("U1")).json()
    assert [c["id"] for c in proximas] == [futura]

    agenda = client.get("/api/citas/agenda", headers=_auth("U1")).json()
    assert [c["id"] for c in agenda["pendientes"]] == [futura]
    assert [c["id"] for c in agenda["completadas"]] == [completada]


def test_alcance_de_administrador_y_nutriologo(client: TestClient, factory) -> None:
    agregar_cita(factory, AHORA, EstadoCita.PENDIENTE, paciente_id=9, nutriologo_id=7)

    assert client.get("/api/citas", headers=_auth("A1")).status_code == 403
    assert len(client.get("/api/citas", params={"nutriologo_id": 7}, headers=_auth("A1")).json()) == 1
    assert client.get("/api/citas", params={"nutriologo_id": 7}, headers=_auth("U1")).status_code == 403


def test_resumen(client: TestClient, factory) -> None:
    cita_id = agregar_cita(factory, AHORA - timedelta(days=1), EstadoCita.COMPLETADA)
    agregar_pago(factory, cita_id, "700", EstadoPago.COMPLETADO)

    body = client.get("/api/citas/resumen", headers=_auth("U1")).json()

    assert body["citas_completadas"] == 1
    assert Decimal(str(body["cobrado"])) == Decimal("700")
    assert Decimal(str(body["pendiente_cobro"])) == Decimal("0")


def test_pacientes_con_busqueda(client: TestClient) -> None:
    r = client.get("/api/pacientes", params={"q": "durazo"}, headers=_auth("U1"))

    assert [p["id"] for p in r.json()] == [2]


def test_registro_login_y_me(client: TestClient, factory) -> None:
    r = client.post("/api/auth/register", json={"correo": "Nueva@Nutriu.local", "password": "secreta"})
    assert r.status_code == 200
    cuenta_id = r.json()["cuenta_id"]

    assert client.post("/api/auth/register", json={"correo": "nueva@nutriu.local", "password": "x"}).status_code == 400

    with db_session(factory) as s:
        s.add(Nutriologo(id_nutriologo=50, id_auth_user=cuenta_id, nombre="Nora", apellido="Leyva"))

    assert client.post(
        "/api/auth/login", data={"username": "nueva@nutriu.local", "password": "mala"}
    ).status_code == 401

    token = client.post(
        "/api/auth/login", data={"username": "nueva@nutriu.local", "password": "secreta"}
    ).json()["access_token"]
    me = client.get("/api/me", headers={"Authorization": f"Bearer {token}"}).json()

    assert me["principal_id"] == cuenta_id
    assert me["nutriologo_id"] == 50


def test_logout_borra_el_snapshot_de_la_sesion(client: TestClient, servicios) -> None:
    token = create_access_token("U1")
    headers = {"Authorization": f"Bearer {token}"}
    sid = get_claims(token)["sid"]

    client.get("/api/me", headers=headers)
    assert servicios.cache.cargar(sid) is not None

    assert client.post("/api/auth/logout", headers=headers).json()["ok"] is True
    assert servicios.cache.cargar(sid) is None


def test_login_purga_snapshots_de_sesiones_expiradas(client: TestClient, servicios, factory) -> None:
    crea_cuenta("nora@nutriu.local", "secreta", factory)
    servicios.resolutor("sid-expirado").resolver("U1")
    hace_un_dia = time.time() - 24 * 3600
    os.utime(servicios.cache.directorio / "sid-expirado.json", (hace_un_dia, hace_un_dia))

    r = client.post("/api/auth/login", data={"username": "nora@nutriu.local", "password": "secreta"})

    assert r.status_code == 200
    assert servicios.cache.cargar("sid-expirado") is None


def test_login_con_backend_alojado(tmp_path) -> None:
    session = FakeSession(
        FakeResponse({"access_token": "tok", "user": {"id": "U1"}}),
        FakeResponse([]),
        FakeResponse([{"id_nutriologo": 42, "nombre": "Lucía", "apellido": "Gámez", "correo": "lucia@nutriu.local"}]),
    )
    servicios = servicios_rest(
        ClienteRest("https://demo.supabase.co", "anon-key", session=session), cache_dir=tmp_path / "sesiones"
    )
    app.dependency_overrides[get_servicios] = lambda: servicios
    try:
        client = TestClient(app)
        token = client.post(
            "/api/auth/login", data={"username": "lucia@nutriu.local", "password": "secreta"}
        ).json()["access_token"]
        me = client.get("/api/me", headers={"Authorization": f"Bearer {token}"}).json()
    finally:
        app.dependency_overrides.clear()

    assert get_claims(token)["sub"] == "U1"
    assert me["nutriologo_id"] == 42
