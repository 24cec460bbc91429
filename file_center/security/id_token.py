# file_center/security/id_token.py
from __future__ import annotations
import base64
import binascii
import hashlib
import re

from bson import ObjectId
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESSIV

from ..errors import InvalidToken

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_OID_LEN = 12
_TAG_LEN = 16
# base64url without padding of the 16-byte SIV tag + 12-byte ciphertext
TOKEN_LENGTH = 38
_AAD = [b"file-center-id"]


class IdTokenCodec:
    """
    Deterministic, authenticated transform between ObjectIds and opaque
    URL-safe tokens (AES-SIV). The same id always yields the same token;
    any string not produced by `encrypt` under the same key is rejected.
    """

    def __init__(self, key: str):
        if not key:
            # Fail fast instead of silently using a weak default
            raise ValueError("codec key is required (set env FILE_CENTER_CODEC_KEY)")
        # AES-SIV takes a double-length key; 64 bytes -> AES-256-SIV
        self._siv = AESSIV(hashlib.sha512(key.encode("utf-8")).digest())

    def encrypt(self, oid: ObjectId) -> str:
        sealed = self._siv.encrypt(oid.binary, _AAD)
        return base64.urlsafe_b64encode(sealed).rstrip(b"=").decode("ascii")

    def encrypt_to_buffer(self, oid: ObjectId, buffer: str) -> str:
        return buffer + self.encrypt(oid)

    def decrypt(self, token: str) -> ObjectId:
        if not isinstance(token, str) or len(token) != TOKEN_LENGTH or not _TOKEN_RE.match(token):
            raise InvalidToken("invalid id token")
        try:
            sealed = base64.urlsafe_b64decode(token + "==")
            # reject non-canonical spellings of the same bytes
            if base64.urlsafe_b64encode(sealed).rstrip(b"=").decode("ascii") != token:
                raise ValueError("non-canonical token")
            raw = self._siv.decrypt(sealed, _AAD)
        except (binascii.Error, ValueError, InvalidTag):
            raise InvalidToken("invalid id token") from None
        if len(raw) != _OID_LEN:
            raise InvalidToken("invalid id token")
        return ObjectId(raw)
