from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

ROOT_DIR = Path(__file__).resolve().parents[1]

# SQLite en archivo junto al proyecto, sobrescribible por env
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{ROOT_DIR / 'nutriu.sqlite'}")

# En producción: definirla como variable de entorno
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

# Monto mostrado cuando una cita no tiene ningún pago (solo display)
MONTO_CONSULTA_DEFAULT = Decimal(os.getenv("MONTO_CONSULTA_DEFAULT", "800"))
LIMITE_PROXIMAS = int(os.getenv("LIMITE_PROXIMAS", "6"))
POLITICA_PAGO = os.getenv("POLITICA_PAGO", "mas_reciente")

IDENTIDAD_CACHE_DIR = Path(os.getenv("IDENTIDAD_CACHE_DIR", str(ROOT_DIR / ".nutriu_sesiones")))

# "sql" = base local via SQLAlchemy, "rest" = backend alojado (PostgREST)
BACKEND = os.getenv("BACKEND", "sql").strip().lower()
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

SEED_PASSWORD = os.getenv("SEED_PASSWORD", "nutriu123")
