# darkpool/core/relayer_client.py

import json
import logging
from typing import Any, Dict, Optional

import requests

from darkpool.core.auth import RequestAuthenticator
from darkpool.core.errors import TransportError

logger = logging.getLogger(__name__)

SDK_VERSION = "0.1.0"
SDK_VERSION_HEADER = "x-renegade-sdk-version"


def _encode_body(body: Any) -> str:
    # Важно: без пробелов, подписываются ровно эти байты
    return json.dumps(body, separators=(",", ":"))


class RelayerHttpClient:
    def __init__(self, base_url: str, authenticator: RequestAuthenticator, timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.authenticator = authenticator
        self.timeout = timeout

    def _headers(self, method: str, path: str, body: str) -> Dict[str, str]:
        headers = {
            SDK_VERSION_HEADER: f"python-v{SDK_VERSION}",
            "Content-Type": "application/json",
        }
        headers.update(self.authenticator.sign(method, path, body).to_headers())
        return headers

    def _make_request(self, method: str, path: str, body: Optional[Any] = None) -> requests.Response:
        data = _encode_body(body) if body is not None else ""
        headers = self._headers(method, path, data)
        url = self.base_url + path

        logger.debug(f"[Relayer] {method} {path}")
        try:
            return requests.request(method, url, headers=headers, data=data or None, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request error: {e}") from e

    def get(self, path: str) -> requests.Response:
        return self._make_request("GET", path)

    def post(self, path: str, body: Any) -> requests.Response:
        return self._make_request("POST", path, body)

    @staticmethod
    def handle_optional_response(response: requests.Response) -> Optional[Any]:
        """
        204 -> None (у релейера нет котировки/бандла, это не ошибка),
        200 -> JSON, всё остальное -> TransportError.
        """
        if response.status_code == 204:
            return None
        if response.status_code != 200:
            raise TransportError(
                f"API request failed: {response.status_code} - {response.text}",
                status=response.status_code,
                body=response.text,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"Failed to decode JSON response: {response.text}",
                status=response.status_code,
                body=response.text,
            ) from e

    def get_json(self, path: str) -> Optional[Any]:
        return self.handle_optional_response(self.get(path))

    def post_json(self, path: str, body: Any) -> Optional[Any]:
        return self.handle_optional_response(self.post(path, body))
