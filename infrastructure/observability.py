"""
Logging and Sentry setup for the portal.
Everything is driven by environment variables so the same build runs
locally, in staging and at the barangay hall.
"""

import logging
import os
import re
from typing import Any, Dict

log = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

# Values that look like credentials, wherever they appear
SENSITIVE_PATTERNS = [
    re.compile(r"eyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+"),  # JWT access tokens
    re.compile(r"[a-zA-Z0-9_\-]{30,}"),  # session tokens, API keys, DSNs
]
# Keys whose values are always dropped, whatever they look like
SENSITIVE_KEYS = ("password", "token", "secret", "apikey", "api_key", "authorization", "cookie")


def _is_sensitive_key(key: Any) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def _scrub(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: REDACTED if _is_sensitive_key(k) else _scrub(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_scrub(i) for i in obj]
    if isinstance(obj, str):
        for pattern in SENSITIVE_PATTERNS:
            obj = pattern.sub(REDACTED, obj)
        return obj
    return obj


def _scrub_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Dict[str, Any]:
    """
    Sentry before_send hook. Passwords, session tokens and Supabase keys
    are removed from frame locals, extras and request data.
    """
    try:
        for exc in (event.get("exception") or {}).get("values", []):
            for frame in (exc.get("stacktrace") or {}).get("frames", []):
                if "vars" in frame:
                    frame["vars"] = _scrub(frame["vars"])
        for section in ("extra", "request"):
            if section in event:
                event[section] = _scrub(event[section])
    except (AttributeError, TypeError) as e:
        log.warning(f"Sentry scrubber skipped a malformed event: {e}")
    return event


def _configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for noisy in ("urllib3", "requests", "watchdog"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _init_sentry(dsn: str) -> None:
    try:
        import sentry_sdk
    except ImportError:
        log.warning("SENTRY_DSN provided but sentry-sdk is not installed. Skipping Sentry init.")
        return

    environment = os.getenv("SENTRY_ENV", "development")
    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.2")),
        send_default_pii=False,
        before_send=_scrub_sensitive_data,
    )
    log.info(f"Sentry SDK initialized (env: {environment})")


def setup_observability() -> None:
    """Call once, before anything else logs."""
    _configure_logging()

    sentry_dsn = os.getenv("SENTRY_DSN")
    if sentry_dsn:
        _init_sentry(sentry_dsn)
    else:
        log.info("SENTRY_DSN not provided. Running without Sentry.")
