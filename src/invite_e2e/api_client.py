"""
Product API Client
Handles authentication and JSON requests against the construction admin API
"""
import logging
from typing import Any, Dict, Optional

import requests

from invite_e2e.errors import ProductApiError, TransportError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/authentication/v2/token"
TOKEN_SCOPE = "data:read data:write account:read account:write"


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Copy of ``headers`` safe for logging: the Authorization value is truncated."""
    masked = dict(headers)
    token = masked.get("Authorization")
    if token:
        masked["Authorization"] = str(token)[:20] + "..."
    return masked


class ProductApiClient:
    """Client for the product's REST API.

    ``User-Id`` and ``Region`` are sent with every request; the bearer token
    is added by :meth:`authenticate`.
    """

    def __init__(self, api_root: str, user_id: str, region: str,
                 session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.api_root = api_root.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self.set_headers({"User-Id": user_id, "Region": region})

    def set_headers(self, headers: Dict[str, str]) -> None:
        """Merge ``headers`` into the headers sent with every request"""
        self.session.headers.update(headers)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.api_root}{path}"
        logger.debug("HTTP %s %s headers=%s", method, url, mask_headers(dict(self.session.headers)))
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"Request failed: {e}")
            raise TransportError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            logger.error("HTTP %s %s -> %s: %s", method, path, response.status_code, body)
            raise ProductApiError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        return response

    def _json(self, response: requests.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ProductApiError(
                f"Invalid JSON from {response.url}", status_code=response.status_code, body=response.text
            ) from e

    def authenticate(self, client_id: str, client_secret: str) -> Dict[str, Any]:
        """Obtain a client-credentials token and attach it to the session"""
        form = {
            "grant_type": "client_credentials",
            "scope": TOKEN_SCOPE,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        response = self._request(
            "POST", TOKEN_PATH, data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        token_data = self._json(response)
        access_token = token_data.get("access_token")
        if not access_token:
            raise ProductApiError("Token response carries no access_token", body=token_data)
        self.set_headers({"Authorization": f"Bearer {access_token}"})
        logger.info("Authenticated against %s", self.api_root)
        return token_data

    def get(self, path: str, **kwargs: Any) -> Any:
        return self._json(self._request("GET", path, **kwargs))

    def post(self, path: str, payload: Any = None, **kwargs: Any) -> Any:
        return self._json(self._request("POST", path, json=payload, **kwargs))

    def put(self, path: str, payload: Any = None, **kwargs: Any) -> Any:
        return self._json(self._request("PUT", path, json=payload, **kwargs))

    def delete(self, path: str, **kwargs: Any) -> Any:
        return self._json(self._request("DELETE", path, **kwargs))

    def close(self) -> None:
        self.session.close()
