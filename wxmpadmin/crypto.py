"""Message encryption, signatures and access-token retrieval for official accounts."""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
from dataclasses import dataclass

import requests
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.weixin.qq.com/cgi-bin"
_BLOCK_SIZE = 16
_VALID_KEY_SIZES = (16, 24, 32)


@dataclass
class MpOptions:
    """Credentials of one official account."""

    app_id: str
    app_secret: str = ""
    token: str = ""
    aes_key: str = ""


class WechatError(Exception):
    """An error reported by the platform through errcode/errmsg."""

    def __init__(self, errcode: int, errmsg: str) -> None:
        super().__init__(f"{errcode}-{errmsg}")
        self.errcode = errcode
        self.errmsg = errmsg


def _proxies() -> dict[str, str] | None:
    proxy = os.environ.get("WA_PROXY", "")
    if proxy:
        logger.info("WA_PROXY: %s", proxy)
        return {"http": proxy, "https": proxy}
    return None


def get_access_token(appid: str, appsecret: str) -> tuple[str, int]:
    """Fetch a fresh access token; return it with its lifetime in seconds."""
    response = requests.get(
        f"{API_BASE_URL}/token",
        params={"grant_type": "client_credential", "appid": appid, "secret": appsecret},
        proxies=_proxies(),
    )
    payload = response.json() if response.ok else {}
    errcode = int(payload.get("errcode", 0) or 0)
    if errcode != 0:
        raise WechatError(errcode, payload.get("errmsg", ""))
    return payload.get("access_token", ""), int(payload.get("expires_in", 0) or 0)


def _decode_key(aes_key: str) -> bytes:
    # The configured EncodingAESKey is 43 characters and lacks its padding.
    try:
        key = base64.b64decode(aes_key + "=", validate=True)
    except binascii.Error as exc:
        raise ValueError(f"error decoding base64 key: {exc}") from exc
    if len(key) not in _VALID_KEY_SIZES:
        raise ValueError(f"error creating AES cipher: invalid key size {len(key)}")
    return key


def _cipher(key: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), modes.CBC(key[:_BLOCK_SIZE]))


def _pkcs7_unpad(data: bytes) -> bytes:
    padding = data[-1]
    if padding > len(data):
        raise ValueError("invalid padding")
    return data[: len(data) - padding]


def _pkcs7_pad(data: bytes, block_size: int) -> bytes:
    padding = block_size - len(data) % block_size
    return data + bytes([padding]) * padding


def aes_decrypt_wechat(aes_key: str, encrypted_message: str) -> bytes:
    """Decrypt a pushed message and return the message body it carries.

    The plaintext is 16 random bytes, a 4-byte big-endian length, the
    message and the app id; only the message is returned.
    """
    key = _decode_key(aes_key)
    try:
        ciphertext = base64.b64decode(encrypted_message, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"error decoding base64 encrypted message: {exc}") from exc

    if len(ciphertext) < _BLOCK_SIZE or len(ciphertext) % _BLOCK_SIZE != 0:
        raise ValueError("ciphertext length is invalid")

    decryptor = _cipher(key).decryptor()
    decrypted = _pkcs7_unpad(decryptor.update(ciphertext) + decryptor.finalize())

    if len(decrypted) < 20:
        raise ValueError("decrypted message is too short")
    content_length = int.from_bytes(decrypted[16:20], "big")
    if 20 + content_length > len(decrypted):
        raise ValueError("decrypted message length is invalid")
    return decrypted[20 : 20 + content_length]


def aes_encrypt(plain_text: bytes | str, aes_key: str) -> str:
    """Encrypt with AES-CBC and PKCS#7 padding; return base64 text."""
    if isinstance(plain_text, str):
        plain_text = plain_text.encode("utf-8")
    key = _decode_key(aes_key)
    encryptor = _cipher(key).encryptor()
    padded = _pkcs7_pad(plain_text, _BLOCK_SIZE)
    cipher_text = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(cipher_text).decode("ascii")


def generate_signature(*params: str) -> str:
    """Sort the parameters, join them and return the SHA-1 hex digest."""
    joined = "".join(sorted(params))
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()