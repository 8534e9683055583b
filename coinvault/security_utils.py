# coinvault/security_utils.py
from __future__ import annotations

import html
import secrets


def generate_secure_token(length: int = 32) -> str:
    """Hex string of ``length`` random bytes."""
    return secrets.token_hex(length)


def sanitize_input(text: str) -> str:
    return html.escape(text, quote=True)
