from __future__ import annotations

import hmac
import logging

logger = logging.getLogger(__name__)


def verify_client_token(header_value: str | None, expected_token: str | None, env: str) -> bool:
    """Check the `Client-Token` header Z-API sends with every callback."""
    if not expected_token:
        if env.lower() not in {"dev", "local", "test"}:
            logger.warning("ZAPI_CLIENT_TOKEN not configured; accepting unauthenticated callback")
        return True

    if not header_value:
        return False

    return hmac.compare_digest(header_value.encode("utf-8"), expected_token.encode("utf-8"))
