import os

def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"

# ---------- Service ----------
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./traceaudit.db")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ---------- Threshold registry ----------
ADMIN_USER = os.getenv("ADMIN_USER", "admin")
DEFAULT_MAX_TRANSPORT_TEMP_C = int(os.getenv("DEFAULT_MAX_TRANSPORT_TEMP_C", "800"))  # °C x100
DEFAULT_MAX_WEIGHT_DEVIATION_PCT = int(os.getenv("DEFAULT_MAX_WEIGHT_DEVIATION_PCT", "5"))
DEFAULT_MIN_DRY_MATTER_PCT = int(os.getenv("DEFAULT_MIN_DRY_MATTER_PCT", "21"))

# ---------- Audit policy ----------
# transport data alone does not re-audit a lot unless this is switched on
AUDIT_ON_TRANSPORT = _flag("AUDIT_ON_TRANSPORT")
# empty inspection batches fall back to one conformant unit unless strict
STRICT_EMPTY_BATCH = _flag("STRICT_EMPTY_BATCH")
