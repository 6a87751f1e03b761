"""Shared constants for the siteforge ecosystem."""

from pathlib import Path

# NGINX layout (overridable via SiteforgeConfig / env vars)
NGINX_ROOT = Path("/etc/nginx")
SITES_ENABLED_DIR = "sites-enabled"
SITES_QUARANTINE_DIR = "sites-quarantine"
CERTS_DIR = "certs"
HTPASSWD_DIR = "htpasswd"
CONF_D_DIR = "conf.d"
TEST_HARNESS_DIR = "test-harness"
LOCK_DIR = ".locks"
RELOAD_FLAG_NAME = ".reload_needed"
EMERGENCY_FALLBACK_NAME = "emergency-fallback.conf"

# ACME client output (one directory per domain)
ACME_DIR = Path("/acme.sh")

# Audit / logging
LOG_DIR = Path("/var/log/siteforge")
AUDIT_JSONL_PATH = LOG_DIR / "audit.jsonl"
AUDIT_DB_PATH = Path("/var/lib/siteforge/audit.db")
QUARANTINE_LOG_PATH = LOG_DIR / "quarantine.jsonl"

# Timeouts (seconds)
PROBE_TIMEOUT = 2.0
PROXY_COMMAND_TIMEOUT = 60

# Compiler defaults
CATCHALL_DOMAIN = "_"
UPSTREAM_SUFFIX = "_backend"
DEFAULT_CLIENT_MAX_BODY_SIZE = "256M"
DEFAULT_CACHE_PATH_PREFIX = "/var/cache/nginx"
CDN_CLIENT_IP_HEADER = "$http_cf_connecting_ip"
RATE_LIMIT_UNLIMITED_BURST = 10000
CONNECTION_LIMIT = 20
SNAKEOIL_VALIDITY_DAYS = 365
