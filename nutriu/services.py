"""Ensamblado de los casos de uso con sus adaptadores (SQL local o backend alojado)."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.orm import sessionmaker

from nutriu import config
from nutriu.auth_service import AutenticadorLocal
from nutriu.citas import GestorCitas
from nutriu.db import Base, engine
from nutriu.identidad import CacheIdentidad, ResolutorIdentidad
from nutriu.pagos import PoliticaPago, ResolutorPagos
from nutriu.puertos import Autenticador, DirectorioPerfiles
from nutriu.repositorio_rest import (
    AutenticadorRest,
    ClienteRest,
    RestCitaStore,
    RestDirectorioPerfiles,
    RestRegistroPagos,
    RestRelacionesPacientes,
)
from nutriu.repositorio_sql import SqlCitaStore, SqlDirectorioPerfiles, SqlRegistroPagos, SqlRelacionesPacientes


def init_db(bind=None) -> None:
    """Crea las tablas si no existen."""
    # registra Cuenta en el metadata
    from nutriu import auth_models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


@dataclass
class Servicios:
    gestor: GestorCitas
    directorio: DirectorioPerfiles
    cache: CacheIdentidad
    autenticador: Autenticador
    # sesiones SQL para cuentas locales (None = SessionLocal global)
    factory: sessionmaker | None = None

    def resolutor(self, clave_sesion: str) -> ResolutorIdentidad:
        return ResolutorIdentidad(self.directorio, self.cache, clave_sesion)


def servicios_sql(factory: sessionmaker | None = None, cache_dir: Path | None = None, **kwargs) -> Servicios:
    pagos = ResolutorPagos(
        SqlRegistroPagos(factory),
        monto_default=config.MONTO_CONSULTA_DEFAULT,
        politica=PoliticaPago(config.POLITICA_PAGO),
    )
    gestor = GestorCitas(SqlCitaStore(factory), SqlRelacionesPacientes(factory), pagos, **kwargs)
    return Servicios(
        gestor=gestor,
        directorio=SqlDirectorioPerfiles(factory),
        cache=CacheIdentidad(cache_dir or config.IDENTIDAD_CACHE_DIR),
        autenticador=AutenticadorLocal(factory),
        factory=factory,
    )


def servicios_rest(cliente: ClienteRest | None = None, cache_dir: Path | None = None, **kwargs) -> Servicios:
    cliente = cliente or ClienteRest()
    pagos = ResolutorPagos(
        RestRegistroPagos(cliente),
        monto_default=config.MONTO_CONSULTA_DEFAULT,
        politica=PoliticaPago(config.POLITICA_PAGO),
    )
    gestor = GestorCitas(RestCitaStore(cliente), RestRelacionesPacientes(cliente), pagos, **kwargs)
    return Servicios(
        gestor=gestor,
        directorio=RestDirectorioPerfiles(cliente),
        cache=CacheIdentidad(cache_dir or config.IDENTIDAD_CACHE_DIR),
        autenticador=AutenticadorRest(cliente),
    )


def servicios_default() -> Servicios:
    if config.BACKEND == "rest":
        return servicios_rest()
    return servicios_sql()
