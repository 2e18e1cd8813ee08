from __future__ import annotations

import argparse
import sys
from datetime import date, time

from nutriu import config
from nutriu.citas import FiltroCitas, particionar
from nutriu.errores import IdentidadNoResuelta, NutriuError
from nutriu.identidad import Identidad, ResolutorIdentidad, alcance_de, requiere_nutriologo
from nutriu.logging_config import configure_logging
from nutriu.seed import seed_base
from nutriu.services import Servicios, init_db, servicios_default

# Una sola sesión de CLI por usuario del sistema: el snapshot sobrevive entre ejecuciones
CLAVE_SESION_CLI = "cli"


def _fecha(valor: str) -> date:
    try:
        return date.fromisoformat(valor)
    except ValueError:
        raise argparse.ArgumentTypeError(f"fecha no válida: {valor!r} (usa AAAA-MM-DD)") from None


def _hora(valor: str) -> time:
    try:
        return time.fromisoformat(valor)
    except ValueError:
        raise argparse.ArgumentTypeError(f"hora no válida: {valor!r} (usa HH:MM)") from None


def _sesion(servicios: Servicios) -> tuple[ResolutorIdentidad, Identidad]:
    """Restaura la identidad del snapshot y la confirma contra el backend."""
    resolutor = servicios.resolutor(CLAVE_SESION_CLI)
    provisional = resolutor.restaurar()
    if provisional is None:
        raise IdentidadNoResuelta("No hay sesión activa. Ejecuta `login` primero.")
    return resolutor, resolutor.resolver(provisional.principal_id)


def cmd_init(args: argparse.Namespace, servicios: Servicios) -> None:
    init_db()
    seed_base(servicios.factory)
    print("DB inicializada y seed completado.")


def cmd_login(args: argparse.Namespace, servicios: Servicios) -> None:
    principal_id = servicios.autenticador.autenticar(args.correo, args.password)
    if principal_id is None:
        print("Credenciales no válidas.")
        raise SystemExit(1)
    identidad = servicios.resolutor(CLAVE_SESION_CLI).resolver(principal_id)
    print(f"Sesión iniciada como {identidad.rol.value}: {identidad.nombre} {identidad.apellido}")


def cmd_logout(args: argparse.Namespace, servicios: Servicios) -> None:
    servicios.resolutor(CLAVE_SESION_CLI).invalidar()
    print("Sesión cerrada correctamente.")


def cmd_whoami(args: argparse.Namespace, servicios: Servicios) -> None:
    _, identidad = _sesion(servicios)
    scope = getattr(identidad, "nutriologo_id", None)
    print(f"{identidad.principal_id} | {identidad.rol.value} | {identidad.correo}" + (f" | nutriólogo {scope}" if scope else ""))


def cmd_citas(args: argparse.Namespace, servicios: Servicios) -> None:
    _, identidad = _sesion(servicios)
    alcance = alcance_de(identidad, args.nutriologo_id)
    vistas = servicios.gestor.listar(alcance, FiltroCitas(proximas=args.proximas))
    if args.pendientes or args.completadas:
        particion = particionar(vistas)
        vistas = particion.pendientes if args.pendientes else particion.completadas

    if not vistas:
        print("Sin citas.")
        return
    for v in vistas:
        pago = "pagada" if v.pagada else "pendiente de pago"
        print(
            f"{v.id} | {v.fecha_texto} {v.hora_texto} | {v.cita.paciente_nombre or v.cita.paciente_id} "
            f"| {v.estado.value} | ${v.monto} {pago}"
        )


def cmd_agendar(args: argparse.Namespace, servicios: Servicios) -> None:
    _, identidad = _sesion(servicios)
    nutriologo = requiere_nutriologo(identidad)
    cita = servicios.gestor.crear(
        args.paciente_id,
        nutriologo.nutriologo_id,
        args.fecha,
        args.hora,
    )
    print("Cita agendada exitosamente.")
    print(f"Cita ID: {cita.id} ({cita.fecha_hora.isoformat()} UTC)")


def _cmd_transicion(accion: str):
    def cmd(args: argparse.Namespace, servicios: Servicios) -> None:
        _, identidad = _sesion(servicios)
        nutriologo = requiere_nutriologo(identidad)
        cita = getattr(servicios.gestor, accion)(nutriologo.nutriologo_id, args.cita_id)
        print(f"Cita {cita.id} marcada como {cita.estado.value}.")

    return cmd


def cmd_resumen(args: argparse.Namespace, servicios: Servicios) -> None:
    _, identidad = _sesion(servicios)
    r = servicios.gestor.resumen(alcance_de(identidad, args.nutriologo_id))
    print(f"Citas activas     : {r.citas_activas}")
    print(f"Citas completadas : {r.citas_completadas}")
    print(f"Citas canceladas  : {r.citas_canceladas}")
    print(f"Citas este mes    : {r.citas_este_mes}")
    print(f"Cobrado           : ${r.cobrado}")
    print(f"Pendiente de cobro: ${r.pendiente_cobro}")


def cmd_pacientes(args: argparse.Namespace, servicios: Servicios) -> None:
    _, identidad = _sesion(servicios)
    nutriologo = requiere_nutriologo(identidad)
    pacientes = servicios.gestor.buscar_pacientes(nutriologo.nutriologo_id, args.buscar or "")
    if not pacientes:
        print("No se encontró ningún paciente.")
        return
    for p in pacientes:
        print(f"{p.id} | {p.apellido} {p.nombre} | {p.correo or '-'}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="nutriu", description="CLI Nutriu (agenda de citas)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB y carga seed")
    p_init.set_defaults(func=cmd_init)

    p_login = sub.add_parser("login", help="Inicia sesión y resuelve el perfil")
    p_login.add_argument("--correo", required=True)
    p_login.add_argument("--password", required=True)
    p_login.set_defaults(func=cmd_login)

    p_logout = sub.add_parser("logout", help="Cierra la sesión")
    p_logout.set_defaults(func=cmd_logout)

    p_who = sub.add_parser("whoami", help="Muestra la identidad actual")
    p_who.set_defaults(func=cmd_whoami)

    p_citas = sub.add_parser("citas", help="Lista citas")
    p_citas.add_argument("--proximas", action="store_true", help="Solo próximas citas (ascendente)")
    p_citas.add_argument("--nutriologo-id", type=int, default=None, help="Solo administradores")
    grupo = p_citas.add_mutually_exclusive_group()
    grupo.add_argument("--pendientes", action="store_true")
    grupo.add_argument("--completadas", action="store_true")
    p_citas.set_defaults(func=cmd_citas)

    p_agendar = sub.add_parser("agendar", help="Agenda una cita (hora local de la clínica)")
    p_agendar.add_argument("--paciente-id", type=int, required=True)
    p_agendar.add_argument("--fecha", required=True, type=_fecha, help="AAAA-MM-DD ej: 2026-01-20")
    p_agendar.add_argument("--hora", required=True, type=_hora, help="HH:MM ej: 10:00")
    p_agendar.set_defaults(func=cmd_agendar)

    for accion, estado in (("confirmar", "confirmada"), ("completar", "completada"), ("cancelar", "cancelada")):
        p_t = sub.add_parser(accion, help=f"Marca la cita como {estado}")
        p_t.add_argument("--cita-id", type=int, required=True)
        p_t.set_defaults(func=_cmd_transicion(accion))

    p_res = sub.add_parser("resumen", help="Resumen de agenda y cobros")
    p_res.add_argument("--nutriologo-id", type=int, default=None)
    p_res.set_defaults(func=cmd_resumen)

    p_pac = sub.add_parser("pacientes", help="Pacientes asignados")
    p_pac.add_argument("--buscar", default=None, help="Nombre, apellido o correo")
    p_pac.set_defaults(func=cmd_pacientes)

    return p


def main(argv: list[str] | None = None, servicios: Servicios | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    if servicios is None:
        if config.BACKEND == "sql":
            init_db()  # garantiza tablas
        servicios = servicios_default()

    try:
        args.func(args, servicios)
    except NutriuError as exc:
        print(exc.mensaje, file=sys.stderr)
        if exc.reintentable:
            print("Algo falló, intenta de nuevo.", file=sys.stderr)
            return 2
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
