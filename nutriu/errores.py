"""
Errores del núcleo de agenda.

Dos familias:
- ErrorDeEntrada: la petición no es válida (datos, permisos, estado). Reintentar no sirve.
- ErrorTransitorio: algo falló en la infraestructura. El llamador puede reintentar con backoff.

Nada en el núcleo reintenta por su cuenta.
"""
from __future__ import annotations


class NutriuError(Exception):
    """Error base con mensaje apto para mostrar al usuario."""

    reintentable = False
    mensaje_default = "Ocurrió un error."

    def __init__(self, mensaje: str | None = None) -> None:
        self.mensaje = mensaje or self.mensaje_default
        super().__init__(self.mensaje)


class ErrorDeEntrada(NutriuError):
    mensaje_default = "La solicitud no es válida."


class ErrorTransitorio(NutriuError):
    reintentable = True
    mensaje_default = "Algo falló, intenta de nuevo."


class IdentidadNoResuelta(ErrorDeEntrada):
    """La cuenta no tiene perfil de administrador ni de nutriólogo. Terminal."""

    mensaje_default = "No se encontró perfil asociado a esta cuenta."


class AccesoDenegado(ErrorDeEntrada):
    mensaje_default = "No tienes permiso para realizar esta operación."


class PacienteNoAutorizado(ErrorDeEntrada):
    mensaje_default = "El paciente no está asignado a este nutriólogo."


class CitaEnElPasado(ErrorDeEntrada):
    mensaje_default = "No se puede agendar citas en fechas pasadas."


class TransicionInvalida(ErrorDeEntrada):
    mensaje_default = "La cita no admite ese cambio de estado."


class CitaNoEncontrada(ErrorDeEntrada):
    mensaje_default = "La cita no existe."


class ErrorTransporteResolucion(ErrorTransitorio):
    mensaje_default = "Error al cargar el perfil, intenta nuevamente."


class ErrorPersistencia(ErrorTransitorio):
    mensaje_default = "No se pudo guardar o leer la información, intenta de nuevo."
