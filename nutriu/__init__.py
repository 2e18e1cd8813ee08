"""
Backend de agenda Nutriu (clínica de nutrición).

Estructura:
- zona_horaria.py    : hora local de la clínica (UTC-7 fijo) <-> instante UTC
- identidad.py       : resolución de rol por sesión y cache de identidad
- dominio.py         : entidades y máquina de estados de las citas
- puertos.py         : contratos con backend de identidad, pagos, relaciones y almacén
- citas.py           : casos de uso (crear, transicionar, listar, resumen)
- pagos.py           : estado de pago representativo por cita
- repositorio_sql.py : adaptadores SQLAlchemy
- repositorio_rest.py: adaptadores del backend alojado (REST)
- api_main.py / cli.py: superficies HTTP y de consola
"""
