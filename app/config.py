"""Core application configuration & tunable governance rules.

Rate-limit quotas, CSRF behaviour, session cookie parameters, lottery bounds
and email delivery are centralized here so they can be adjusted without diving
into service logic. Values are module constants with environment overrides;
dicts are intentionally mutable so tests can monkeypatch individual entries.
"""
from __future__ import annotations

import os

APP_URL: str = os.getenv("APP_URL", "http://localhost:3000")

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

# ------------------------------ Rate Limiting ----------------------------- #
# Named policies referenced by endpoints via ``governed("<name>", ...)``.
# ``key`` selects the key derivation: "ip" (default), "email" (JSON body field),
# "group" (JSON body groupId) or "participant" (signed-in session).
RATE_LIMIT_SETTINGS: dict[str, dict[str, int | str]] = {
	"verify_ip": {"limit": 10, "window_seconds": 15 * 60, "key": "ip"},
	"verify_email": {"limit": 5, "window_seconds": 15 * 60, "key": "email"},
	"resend_code_ip": {"limit": 5, "window_seconds": 15 * 60, "key": "ip"},
	"join_ip": {"limit": 10, "window_seconds": 15 * 60, "key": "ip"},
	"group_create_ip": {"limit": 5, "window_seconds": 60 * 60, "key": "ip"},
	"lottery_run_group": {"limit": 3, "window_seconds": 60, "key": "group"},
	"resend_assignment_participant": {"limit": 10, "window_seconds": 60 * 60, "key": "participant"},
	"send_invitation_participant": {"limit": 20, "window_seconds": 60 * 60, "key": "participant"},
}

RATE_LIMIT_SWEEP: dict[str, int] = {
	"interval_seconds": int(os.getenv("RATE_LIMIT_SWEEP_INTERVAL", "600")),  # 10 minutes
}

# ---------------------------------- CSRF ---------------------------------- #
CSRF_SETTINGS: dict[str, object] = {
	"header_name": "X-CSRF-Token",
	"token_bytes": 32,  # 256 bits, rendered as 64 hex chars
	# Webhooks authenticate with WEBHOOK_SECRET instead.
	"exempt_prefixes": ("/api/v1/webhooks/",),
	# "per_session": one token for the session lifetime.
	# "per_login": token dropped on login so a fresh one is issued afterwards.
	"rotation": os.getenv("CSRF_ROTATION", "per_session"),
}

# -------------------------------- Sessions -------------------------------- #
SESSION_SETTINGS: dict[str, object] = {
	"cookie_name": "secret-santa-session",
	"max_age_seconds": 60 * 60 * 24 * 7,  # 7 days
	"secure": ENVIRONMENT == "production",
	"same_site": "lax",
}

# --------------------------------- Lottery -------------------------------- #
LOTTERY_SETTINGS: dict[str, int] = {
	"min_participants": 3,
	"max_attempts": 100,
}

# ------------------------------ Verification ------------------------------ #
VERIFICATION_SETTINGS: dict[str, int] = {
	"code_length": 6,
	"code_ttl_minutes": 30,
	"resend_cooldown_seconds": 30,
}

# ---------------------------------- Email --------------------------------- #
EMAIL_SETTINGS: dict[str, str | float | None] = {
	# "log" keeps messages in an in-memory outbox and logs them; "resend" posts
	# to the Resend HTTP API.
	"provider": os.getenv("EMAIL_PROVIDER", "log"),
	"resend_api_key": os.getenv("RESEND_API_KEY") or None,
	"sender": os.getenv("RESEND_SENDER_EMAIL") or None,
	"resend_api_url": os.getenv("RESEND_API_URL", "https://api.resend.com/emails"),
	"timeout_seconds": float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10")),
}

# -------------------------------- Webhooks -------------------------------- #
# Shared secret expected as ``Authorization: Bearer <secret>`` on webhook calls.
WEBHOOK_SECRET: str | None = os.getenv("WEBHOOK_SECRET") or None

__all__ = [
	"APP_URL",
	"ENVIRONMENT",
	"RATE_LIMIT_SETTINGS",
	"RATE_LIMIT_SWEEP",
	"CSRF_SETTINGS",
	"SESSION_SETTINGS",
	"LOTTERY_SETTINGS",
	"VERIFICATION_SETTINGS",
	"EMAIL_SETTINGS",
	"WEBHOOK_SECRET",
]
