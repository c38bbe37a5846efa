"""Application-wide constants for caddy-tap.

Constants that define application behavior.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    "CONFIG_PATH_ENV_VAR",
    # Caddy admin API
    "DEFAULT_ADMIN_URL",
    "DEFAULT_ADMIN_TIMEOUT_SECONDS",
    "MIN_ADMIN_TIMEOUT_SECONDS",
    "MAX_ADMIN_TIMEOUT_SECONDS",
    "CADDY_SERVERS_PATH",
    # Route documents
    "MITM_ROUTE_ID_PREFIX",
    "HEALTH_CHECK_PATH",
    "DEFAULT_HSTS_MAX_AGE_SECONDS",
    # mitmproxy / mitmweb
    "MITMWEB_BINARY",
    "MITMWEB_PID_FILENAME",
    "DEFAULT_MITM_HOST",
    "DEFAULT_MITM_PROXY_PORT",
    "DEFAULT_MITM_WEB_PORT",
    "DEFAULT_MITM_LISTEN_ADDRESS",
    "MITMWEB_STARTUP_TIMEOUT_SECONDS",
    "MITMWEB_STARTUP_POLL_INTERVAL_SECONDS",
    "MITMWEB_STOP_TIMEOUT_SECONDS",
    "MITMWEB_STOP_POLL_INTERVAL_SECONDS",
    # Control API server
    "DEFAULT_API_PORT",
]

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names, logger names, etc.
APP_NAME: str = "caddy-tap"

# Overrides the config file location (useful for containers and tests)
CONFIG_PATH_ENV_VAR: str = "CADDY_TAP_CONFIG"

# ============================================================================
# Caddy Admin API
# ============================================================================

DEFAULT_ADMIN_URL: str = "http://127.0.0.1:2019"

# Every admin call is bounded by this timeout (seconds)
DEFAULT_ADMIN_TIMEOUT_SECONDS: float = 5.0
MIN_ADMIN_TIMEOUT_SECONDS: float = 0.1
MAX_ADMIN_TIMEOUT_SECONDS: float = 300.0

# Config tree path holding the map of named HTTP servers
CADDY_SERVERS_PATH: str = "/config/apps/http/servers"

# ============================================================================
# Route Documents
# ============================================================================

# Interception routes carry "@id": "mitm_<service_id>" so removal-by-id works
MITM_ROUTE_ID_PREFIX: str = "mitm_"

HEALTH_CHECK_PATH: str = "/asd/healthcheck"

DEFAULT_HSTS_MAX_AGE_SECONDS: int = 31536000

# ============================================================================
# mitmproxy / mitmweb
# ============================================================================

MITMWEB_BINARY: str = "mitmweb"
MITMWEB_PID_FILENAME: str = "mitmweb.pid"

DEFAULT_MITM_HOST: str = "127.0.0.1"
DEFAULT_MITM_PROXY_PORT: int = 8080
DEFAULT_MITM_WEB_PORT: int = 8081
DEFAULT_MITM_LISTEN_ADDRESS: str = "127.0.0.1"

# Web UI readiness polling after spawn
MITMWEB_STARTUP_TIMEOUT_SECONDS: float = 10.0
MITMWEB_STARTUP_POLL_INTERVAL_SECONDS: float = 0.5

# SIGTERM grace period before SIGKILL
MITMWEB_STOP_TIMEOUT_SECONDS: float = 5.0
MITMWEB_STOP_POLL_INTERVAL_SECONDS: float = 0.1

# ============================================================================
# Control API Server
# ============================================================================

DEFAULT_API_PORT: int = 8765
