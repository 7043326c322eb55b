from __future__ import annotations

import secrets

API_KEY_PREFIX = "bren_"


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_urlsafe(32)
