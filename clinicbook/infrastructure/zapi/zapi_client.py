from __future__ import annotations

import logging
import re

import httpx

from clinicbook.application.exceptions import ExternalServiceUnavailable

_NON_DIGITS = re.compile(r"\D")


def format_phone(phone: str, country_code: str = "55") -> str:
    """Digits only, with the country code prepended to short national numbers."""
    digits = _NON_DIGITS.sub("", phone)
    if not digits.startswith(country_code) and len(digits) <= 11:
        digits = country_code + digits
    return digits


class ZApiClient:
    def __init__(
        self,
        base_url: str,
        instance_id: str,
        token: str,
        client_token: str | None = None,
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._send_endpoint = f"{base_url.rstrip('/')}/instances/{instance_id}/token/{token}/send-text"
        self._headers = {"Client-Token": client_token or ""}
        self._client = http_client or httpx.Client(timeout=timeout)
        self._logger = logging.getLogger(__name__)

    def send_text(self, phone_number: str, text: str) -> None:
        payload = {"phone": format_phone(phone_number), "message": text}
        try:
            resp = self._client.post(self._send_endpoint, json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            self._logger.error("Z-API request failed", extra={"phone": phone_number, "error": str(e)})
            raise ExternalServiceUnavailable(f"Z-API request failed: {e}") from e

        if resp.status_code >= 400:
            try:
                error_json = resp.json()
                error_message = error_json.get("error") or error_json.get("message")
            except ValueError:
                error_message = resp.text[:200]

            self._logger.error(
                "Z-API send failed",
                extra={
                    "phone": phone_number,
                    "status": resp.status_code,
                    "error": error_message,
                    "text_length": len(text),
                },
            )
            raise ExternalServiceUnavailable(f"Z-API send failed with status {resp.status_code}")

    def close(self) -> None:
        self._client.close()
