from __future__ import annotations

import pytest
from jose import jwt

from nutriu.auth_security import (
    JWT_ALG,
    create_access_token,
    decode_token,
    get_claims,
    hash_password,
    verify_password,
)
from nutriu.auth_service import AutenticadorLocal, autentica, crea_cuenta
from nutriu.config import JWT_SECRET
from nutriu.db import Base
from nutriu.errores import ErrorPersistencia


def test_hash_y_verificacion() -> None:
    h = hash_password("secreta")

    assert h != "secreta"
    assert verify_password("secreta", h)
    assert not verify_password("otra", h)


def test_token_lleva_sub_sid_y_extra() -> None:
    claims = decode_token(create_access_token("U1", extra={"correo": "lucia@nutriu.local"}))

    assert claims["sub"] == "U1"
    assert claims["correo"] == "lucia@nutriu.local"
    assert claims["exp"] > claims["iat"]
    assert len(claims["sid"]) == 32


def test_cada_token_es_una_sesion_distinta() -> None:
    assert get_claims(create_access_token("U1"))["sid"] != get_claims(create_access_token("U1"))["sid"]


def test_claims_invalidos() -> None:
    assert get_claims("no-es-un-jwt") is None
    assert get_claims(jwt.encode({"sub": "U1"}, "otro-secreto", algorithm=JWT_ALG)) is None
    # firmado pero sin sid
    assert get_claims(jwt.encode({"sub": "U1"}, JWT_SECRET, algorithm=JWT_ALG)) is None


def test_cuentas_locales(factory) -> None:
    cuenta_id = crea_cuenta("  Lucia@Nutriu.local ", "secreta", factory)

    cuenta = autentica("LUCIA@nutriu.local", "secreta", factory)
    assert cuenta.id == cuenta_id
    assert cuenta.correo == "lucia@nutriu.local"
    assert autentica("lucia@nutriu.local", "mala", factory) is None
    assert autentica("nadie@nutriu.local", "secreta", factory) is None


@pytest.mark.parametrize(
    "correo, password",
    [("LUCIA@nutriu.local", "x"), ("", "x"), ("otra@nutriu.local", "")],
)
def test_cuenta_duplicada_o_vacia(factory, correo: str, password: str) -> None:
    crea_cuenta("lucia@nutriu.local", "secreta", factory)

    with pytest.raises(ValueError):
        crea_cuenta(correo, password, factory)


def test_autenticador_local_devuelve_el_principal(factory) -> None:
    autenticador = AutenticadorLocal(factory)
    cuenta_id = autenticador.registrar("nora@nutriu.local", "secreta")

    assert autenticador.autenticar("Nora@nutriu.local", "secreta") == cuenta_id
    assert autenticador.autenticar("nora@nutriu.local", "mala") is None


def test_autenticador_local_sin_tabla_es_error_reintentable(engine, factory) -> None:
    Base.metadata.drop_all(engine)

    with pytest.raises(ErrorPersistencia) as info:
        AutenticadorLocal(factory).autenticar("nora@nutriu.local", "secreta")

    assert info.value.reintentable is True


def test_extra_no_reemplaza_sub_ni_sid() -> None:
    claims = get_claims(create_access_token("U1", extra={"sub": "A1", "sid": "fijo"}))

    assert claims["sub"] == "U1"
    assert claims["sid"] != "fijo"
