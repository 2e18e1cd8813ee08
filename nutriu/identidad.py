"""
Resolución de identidad y rol por sesión.

- Identidad = IdentidadAdministrador | IdentidadNutriologo
- ResolutorIdentidad mantiene dos niveles: valor en memoria (autoritativo) y
  snapshot durable en disco para restaurar la sesión sin esperar al backend.
  La resolución autoritativa siempre sobrescribe el snapshot.
"""
from __future__ import annotations

import enum
import json
import logging
import re
import time
from dataclasses import asdict, dataclass
from datetime import timedelta
from pathlib import Path
from typing import Union

from nutriu.errores import AccesoDenegado, ErrorTransporteResolucion, IdentidadNoResuelta
from nutriu.puertos import DirectorioPerfiles

logger = logging.getLogger(__name__)


class Rol(enum.Enum):
    ADMINISTRADOR = "admin"
    NUTRIOLOGO = "nutriologo"


@dataclass(frozen=True)
class IdentidadAdministrador:
    principal_id: str
    admin_id: int
    correo: str = ""
    nombre: str = ""
    apellido: str = ""

    rol = Rol.ADMINISTRADOR


@dataclass(frozen=True)
class IdentidadNutriologo:
    principal_id: str
    nutriologo_id: int
    correo: str = ""
    nombre: str = ""
    apellido: str = ""

    rol = Rol.NUTRIOLOGO


Identidad = Union[IdentidadAdministrador, IdentidadNutriologo]


def identidad_a_dict(identidad: Identidad) -> dict:
    data = asdict(identidad)
    data["rol"] = identidad.rol.value
    return data


def identidad_desde_dict(data: dict) -> Identidad:
    data = dict(data)
    rol = Rol(data.pop("rol"))
    if rol is Rol.ADMINISTRADOR:
        return IdentidadAdministrador(**data)
    return IdentidadNutriologo(**data)


def requiere_nutriologo(identidad: Identidad) -> IdentidadNutriologo:
    if not isinstance(identidad, IdentidadNutriologo):
        raise AccesoDenegado("Solo un nutriólogo puede realizar esta operación.")
    return identidad


def alcance_de(identidad: Identidad, nutriologo_id: int | None = None) -> int:
    """
    Devuelve el nutriologo_id con el que se filtran las consultas.
    - nutriólogo: siempre el propio; pedir otro es acceso denegado
    - administrador: debe indicar explícitamente el nutriólogo (solo lectura)
    """
    if isinstance(identidad, IdentidadNutriologo):
        if nutriologo_id is not None and nutriologo_id != identidad.nutriologo_id:
            raise AccesoDenegado("Solo puedes consultar tu propia agenda.")
        return identidad.nutriologo_id

    if nutriologo_id is None:
        raise AccesoDenegado("Indica el nutriólogo cuya agenda quieres consultar.")
    return nutriologo_id


class CacheIdentidad:
    """Snapshot durable (JSON en disco) de la última identidad buena, por clave de sesión."""

    def __init__(self, directorio: Path) -> None:
        self.directorio = Path(directorio)

    def _ruta(self, clave: str) -> Path:
        segura = re.sub(r"[^A-Za-z0-9_.-]", "_", clave)
        return self.directorio / f"{segura}.json"

    def guardar(self, clave: str, identidad: Identidad) -> None:
        self.directorio.mkdir(parents=True, exist_ok=True)
        self._ruta(clave).write_text(json.dumps(identidad_a_dict(identidad)), encoding="utf-8")

    def cargar(self, clave: str) -> Identidad | None:
        ruta = self._ruta(clave)
        if not ruta.exists():
            return None
        try:
            return identidad_desde_dict(json.loads(ruta.read_text(encoding="utf-8")))
        except (ValueError, KeyError, TypeError):
            logger.warning("Cache de identidad corrupto para la sesión %s, eliminando.", clave)
            ruta.unlink(missing_ok=True)
            return None

    def borrar(self, clave: str) -> None:
        self._ruta(clave).unlink(missing_ok=True)

    def purgar(self, max_inactividad: timedelta) -> int:
        """
        Elimina snapshots sin uso por más de `max_inactividad`. Cada resolución
        reescribe el archivo, así que su mtime es el último uso de la sesión.
        """
        if not self.directorio.exists():
            return 0
        limite = time.time() - max_inactividad.total_seconds()
        borrados = 0
        for ruta in self.directorio.glob("*.json"):
            if ruta.stat().st_mtime < limite:
                ruta.unlink(missing_ok=True)
                borrados += 1
        if borrados:
            logger.info("Eliminados %s snapshots de sesión inactivos", borrados)
        return borrados


class ResolutorIdentidad:
    """Una instancia por sesión: nunca se comparte entre llamadores."""

    def __init__(self, directorio: DirectorioPerfiles, cache: CacheIdentidad, clave_sesion: str) -> None:
        self._directorio = directorio
        self._cache = cache
        self.clave_sesion = clave_sesion
        self._identidad: Identidad | None = None
        self._provisional = False

    @property
    def es_provisional(self) -> bool:
        return self._identidad is not None and self._provisional

    def restaurar(self) -> Identidad | None:
        """Reconstruye una identidad provisional desde el snapshot, sin tocar el backend."""
        if self._identidad is not None:
            return self._identidad

        cached = self._cache.cargar(self.clave_sesion)
        if cached is not None:
            self._identidad = cached
            self._provisional = True
            logger.info("Identidad restaurada desde cache, rol=%s", cached.rol.value)
        return cached

    def resolver(self, principal_id: str) -> Identidad:
        """Resolución autoritativa: primero administradores, luego nutriólogos."""
        try:
            identidad: Identidad | None = self._directorio.buscar_administrador(principal_id)
            if identidad is None:
                identidad = self._directorio.buscar_nutriologo(principal_id)
        except ErrorTransporteResolucion:
            self.invalidar()
            raise

        if identidad is None:
            logger.warning("No se encontró perfil asociado al principal %s", principal_id)
            self.invalidar()
            raise IdentidadNoResuelta()

        self._identidad = identidad
        self._provisional = False
        self._cache.guardar(self.clave_sesion, identidad)
        logger.info("Perfil resuelto, rol=%s", identidad.rol.value)
        return identidad

    def identidad_actual(self) -> Identidad:
        if self._identidad is None:
            raise IdentidadNoResuelta("No hay sesión activa.")
        return self._identidad

    def invalidar(self) -> None:
        self._identidad = None
        self._provisional = False
        self._cache.borrar(self.clave_sesion)
