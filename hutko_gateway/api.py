import hashlib
import hmac
import logging
from typing import Any, Mapping, Optional

import httpx

from hutko_gateway.errors import HutkoAPIError

logger = logging.getLogger(__name__)

UNSIGNED_FIELDS = ("signature", "response_signature_string")


def _signature_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_signature(params: Mapping[str, Any], secret_key: str) -> str:
    """SHA-1 over the secret and the non-empty values, ordered by key, joined by ``|``."""
    values = []
    for key in sorted(params):
        if key in UNSIGNED_FIELDS:
            continue
        value = _signature_value(params[key])
        if value != "":
            values.append(value)
    return hashlib.sha1("|".join([secret_key, *values]).encode("utf-8")).hexdigest()


class HutkoAPI:
    """Thin client for the hutko checkout API.

    Checkout sessions come in two shapes: a hosted payment page URL, or a token
    for the embedded widget. Both go through the same signed request envelope.
    """

    def __init__(
        self,
        merchant_id: str,
        secret_key: str,
        base_url: str = "https://pay.hutko.org/api",
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ):
        self.merchant_id = merchant_id
        self.secret_key = secret_key
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    def sign(self, params: Mapping[str, Any]) -> str:
        return build_signature(params, self.secret_key)

    def verify(self, payload: Mapping[str, Any]) -> bool:
        supplied = payload.get("signature")
        if not isinstance(supplied, str) or not supplied:
            return False
        return hmac.compare_digest(self.sign(payload), supplied)

    def create_checkout_url(self, params: Mapping[str, Any]) -> str:
        return self._request("/checkout/url/", params, "checkout_url")

    def create_checkout_token(self, params: Mapping[str, Any]) -> str:
        return self._request("/checkout/token/", params, "token")

    def close(self):
        self._client.close()

    def _request(self, endpoint: str, params: Mapping[str, Any], result_field: str) -> str:
        request = dict(params)
        request["merchant_id"] = self.merchant_id
        request["signature"] = self.sign(request)

        try:
            r = self._client.post(endpoint, json={"request": request})
            r.raise_for_status()
            body = r.json()
        except httpx.HTTPError as e:
            logger.error("hutko API call %s failed: %s", endpoint, e)
            raise HutkoAPIError(f"hutko API is unavailable: {e}") from e
        except ValueError as e:
            raise HutkoAPIError("hutko API returned a non-JSON response") from e

        response = body.get("response") if isinstance(body, dict) else None
        if not isinstance(response, dict):
            raise HutkoAPIError("hutko API returned an unexpected response")

        if response.get("response_status") != "success":
            message = response.get("error_message") or "Unknown hutko API error"
            code = response.get("error_code")
            logger.warning("hutko API refused %s: %s (code %s)", endpoint, message, code)
            raise HutkoAPIError(message, code)

        result = response.get(result_field)
        if not result:
            raise HutkoAPIError(f"hutko API response has no {result_field}")
        return result
