"""Configuration for the EHR integration layer.

Loads settings from environment variables (via a .env file or the system
environment). Every setting has a default so the package can be imported
in CI without any secrets; missing secrets surface as errors only when the
code that needs them actually runs.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists (it won't exist in CI or Docker)
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# --- Plasma FHIR gateway (SMART-on-FHIR OAuth2) ---
# Plasma fronts Epic and other EHRs behind one OAuth2 + FHIR R4 API.
PLASMA_CLIENT_ID: str = os.getenv("PLASMA_CLIENT_ID", "")
PLASMA_REDIRECT_URI: str = os.getenv(
    "PLASMA_REDIRECT_URI", "http://localhost:8000/epic/callback"
)
PLASMA_AUTH_URL: str = os.getenv(
    "PLASMA_AUTH_URL", "https://api.plasma.health/oauth2/authorize"
)
PLASMA_TOKEN_URL: str = os.getenv(
    "PLASMA_TOKEN_URL", "https://api.plasma.health/oauth2/token"
)
# Also sent as the "aud" parameter of the authorization request
PLASMA_FHIR_API_BASE: str = os.getenv(
    "PLASMA_FHIR_API_BASE", "https://api.plasma.health/fhir/r4"
)
PLASMA_SCOPES: str = os.getenv(
    "PLASMA_SCOPES", "patient/*.read launch/patient openid fhirUser"
)

# --- Demo mode ---
# When on, nobody is sent to the real gateway: connections are synthesized
# and patient data comes from built-in fixtures.
EHR_DEMO_MODE: bool = _flag("EHR_DEMO_MODE")
EHR_DEMO_PRINCIPAL: str = os.getenv("EHR_DEMO_PRINCIPAL", "demo.doctor@amma.health")

# --- Encryption at rest ---
# Base64-encoded 32-byte key for AES-256-GCM. Generate one with
#   python -c "from ehr_connect.cipher import generate_key; print(generate_key())"
EHR_ENCRYPTION_KEY: str = os.getenv("EHR_ENCRYPTION_KEY", "")

# "production" disables the unencrypted development fallback
APP_ENV: str = os.getenv("APP_ENV", "development")
IS_PRODUCTION: bool = APP_ENV.strip().lower() == "production"

# --- Timeouts and limits ---
OAUTH_STATE_TTL_SECONDS: int = int(os.getenv("OAUTH_STATE_TTL_SECONDS", "600"))
FHIR_PAGE_SIZE: int = int(os.getenv("FHIR_PAGE_SIZE", "50"))
FHIR_SEARCH_LIMIT: int = int(os.getenv("FHIR_SEARCH_LIMIT", "20"))
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# --- Retention ---
SNAPSHOT_RETENTION_DAYS: int = int(os.getenv("SNAPSHOT_RETENTION_DAYS", "30"))
AUDIT_RETENTION_DAYS: int = int(os.getenv("AUDIT_RETENTION_DAYS", "90"))
# How often the app runs the retention sweep itself; 0 leaves it to cron
RETENTION_SWEEP_INTERVAL_HOURS: float = float(
    os.getenv("RETENTION_SWEEP_INTERVAL_HOURS", "24")
)

# --- Logging ---
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
