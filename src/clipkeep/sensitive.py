"""Heuristic detection of passwords, API keys and tokens in copied text.

Everything here is pure: no I/O and no module state beyond the constant
catalogs, so the checks can be exercised with literal strings.
"""

import math
import re
from collections import Counter

MIN_LENGTH = 8
MAX_LENGTH = 500
ENTROPY_MIN_LENGTH = 16
ENTROPY_THRESHOLD = 4.5  # bits per character; random base64 ~5.7, English ~4.0

# Checked with str.startswith, in order.
KNOWN_PREFIXES: tuple[str, ...] = (
    "sk-proj-", "sk-",  # OpenAI
    "sk-ant-",  # Anthropic
    "ghp_", "gho_", "ghu_", "ghs_", "ghr_",  # GitHub
    "glpat-",  # GitLab
    "sk_live_", "pk_live_", "sk_test_", "pk_test_", "rk_live_", "rk_test_",  # Stripe
    "AKIA", "ABIA", "ACCA", "AGPA", "AIDA", "AIPA", "ANPA", "ANVA", "APKA", "AROA", "ASCA", "ASIA",  # AWS
    "xoxb-", "xoxp-", "xoxa-", "xoxr-",  # Slack
    "SK",  # Twilio
    "SG.",  # SendGrid
    "-us",  # Mailchimp
    "Bot ", "Bearer ",  # Discord, HTTP auth headers
    "AIza",  # Google
    "HRKU-",  # Heroku
    "dop_v1_",  # DigitalOcean
    "npm_",
    "pypi-",
    "oy2",  # NuGet
    "shpat_", "shpca_", "shppa_",  # Shopify
    "lin_api_",  # Linear
    "vercel_",
    "sbp_",  # Supabase
    "pscale_",  # PlanetScale
    "railway_",
    "dp.st.",  # Doppler
    "PMAK-",  # Postman
    "figd_",  # Figma
)

# (name, pattern) pairs evaluated in order; all case-insensitive.
SENSITIVE_PATTERNS: tuple[tuple[str, re.Pattern], ...] = tuple(
    (name, re.compile(pattern, re.IGNORECASE))
    for name, pattern in (
        ("jwt", r"^eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
        ("aws_access_key_id", r"^AKIA[0-9A-Z]{16}$"),
        ("aws_secret_access_key", r"^[A-Za-z0-9/+=]{40}$"),
        ("generic_token", r"^[a-zA-Z0-9_-]{32,}$"),
        ("uuid", r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$"),
        ("hex", r"^[a-fA-F0-9]{32,}$"),
        ("base64", r"^[A-Za-z0-9+/]{20,}={0,2}$"),
        ("private_key", r"-----BEGIN.*PRIVATE KEY-----"),
        ("secret_block", r"-----BEGIN.*SECRET-----"),
        ("connection_string", r"^(mongodb|postgresql|mysql|redis|amqp|mssql)(\+srv)?://"),
        ("bearer", r"^Bearer\s+[A-Za-z0-9_-]+"),
    )
)

_SECRET_PUNCTUATION = frozenset("_-+=/.")


def shannon_entropy(text: str) -> float:
    """Bits per character of the character-frequency distribution."""
    if not text:
        return 0.0
    length = len(text)
    return -sum((count / length) * math.log2(count / length) for count in Counter(text).values())


def _looks_like_secret(text: str) -> bool:
    if not all(ch.isalnum() or ch in _SECRET_PUNCTUATION for ch in text):
        return False
    kinds = (
        any(ch.isupper() for ch in text),
        any(ch.islower() for ch in text),
        any(ch.isdigit() for ch in text),
    )
    return sum(kinds) >= 2


def detect_reason(text: str) -> str | None:
    """Return the name of the first rule that flags ``text``, or None.

    Rules short-circuit in this order: known prefix, pattern catalog,
    entropy. Text outside the length bounds, or containing a space without
    a ``"Bearer "`` prefix, is never flagged.
    """
    trimmed = text.strip()

    if not MIN_LENGTH <= len(trimmed) <= MAX_LENGTH:
        return None

    if " " in trimmed and not trimmed.startswith("Bearer "):
        return None

    for prefix in KNOWN_PREFIXES:
        if trimmed.startswith(prefix):
            return f"prefix:{prefix}"

    for name, pattern in SENSITIVE_PATTERNS:
        if pattern.search(trimmed):
            return name

    if (
        len(trimmed) >= ENTROPY_MIN_LENGTH
        and shannon_entropy(trimmed) > ENTROPY_THRESHOLD
        and _looks_like_secret(trimmed)
    ):
        return "entropy"

    return None


def is_sensitive(text: str) -> bool:
    """Check if text looks like a password, API key or token."""
    return detect_reason(text) is not None
