# darkpool/core/auth.py

import base64
import binascii
import hashlib
import hmac
import time
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, SecretBytes

from darkpool.core.errors import AuthError

API_KEY_HEADER = "x-renegade-api-key"
SIGNATURE_HEADER = "x-renegade-auth"
TIMESTAMP_HEADER = "x-renegade-auth-timestamp"

# Окно действия подписи, проверяется на стороне релейера
REQUEST_SIGNATURE_DURATION_MS = 10_000


# --- Вспомогательные функции ---
def _now_ms() -> int:
    return int(time.time() * 1000)

def _to_bytes(value: Union[str, bytes, None]) -> bytes:
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")

def _sign(secret: bytes, message: bytes) -> str:
    # HMAC-SHA256 в base64
    digest = hmac.new(secret, message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def canonical_message(method: str, path: str, body: Union[str, bytes, None], timestamp: int) -> bytes:
    """
    Строка для подписи: METHOD\\npath\\nbody\\ntimestamp.
    path включает query string, body - ровно те байты, что уходят в запросе.
    """
    return b"\n".join([
        method.upper().encode("utf-8"),
        path.encode("utf-8"),
        _to_bytes(body),
        str(int(timestamp)).encode("ascii"),
    ])


class ApiCredential(BaseModel):
    """
    Пара API ключ / секрет. Секрет хранится как SecretBytes и не попадает в repr.
    """
    model_config = ConfigDict(frozen=True)

    key: str
    secret: SecretBytes

    @classmethod
    def from_base64(cls, key: str, secret: str) -> "ApiCredential":
        if not key or not key.isascii() or not key.isprintable():
            raise AuthError("the api key is invalid")
        try:
            decoded = base64.b64decode(secret, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise AuthError("the api secret is invalid") from e
        if not decoded:
            raise AuthError("the api secret is invalid")
        return cls(key=key, secret=decoded)


class SignatureHeaders(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_key: str
    signature: str
    timestamp: int

    def to_headers(self) -> Dict[str, str]:
        return {
            API_KEY_HEADER: self.api_key,
            SIGNATURE_HEADER: self.signature,
            TIMESTAMP_HEADER: str(self.timestamp),
        }


class RequestAuthenticator:
    """
    Подписывает запросы к релейеру HMAC секретом одного ключа.

    Кроме ключа состояния нет, один экземпляр можно использовать из разных потоков.
    """

    def __init__(self, credential: ApiCredential):
        self.credential = credential

    @classmethod
    def from_base64(cls, api_key: str, api_secret: str) -> "RequestAuthenticator":
        return cls(ApiCredential.from_base64(api_key, api_secret))

    def sign(self, method: str, path: str, body: Union[str, bytes, None] = b"", timestamp: Optional[int] = None) -> SignatureHeaders:
        if timestamp is None:
            timestamp = _now_ms()
        message = canonical_message(method, path, body, timestamp)
        signature = _sign(self.credential.secret.get_secret_value(), message)
        return SignatureHeaders(api_key=self.credential.key, signature=signature, timestamp=timestamp)
