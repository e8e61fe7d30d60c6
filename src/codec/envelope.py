"""
Envelope encryption for config records.

An envelope record stores a sealed, serialized sub-tree: the protected record
is encoded with the text codec, encrypted under a scheme, and written as a
single Base64 value tagged with the scheme name. Opening an envelope decrypts
that text and parses it back into records.

Schemes
- DPAPI: user-bound. The key is derived from the current user name and
  machine id; no password is involved and any supplied one is ignored. Data
  sealed by one user/machine cannot be opened by another.
- AES256: password-bound. key = SHA-256(UTF-8 password), IV = key[8:24],
  AES-256-CBC with PKCS7 padding over the UTF-16-LE plaintext. The IV is
  derived from the key, so equal (password, plaintext) pairs always produce
  equal ciphertext, and there is no authentication tag. Existing files depend
  on this layout.
"""

from __future__ import annotations

import base64
import binascii
import getpass
import hashlib
import uuid
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from common.errors import DecryptionError, EncryptionError

from . import text
from .models import Record, Scheme, visible


_USER_BOUND_CONTEXT = b"cfgtext.user-bound.v1"
_MACHINE_ID_FILES = ("/etc/machine-id", "/var/lib/dbus/machine-id")
_PLAINTEXT_ENCODING = "utf-16-le"


def current_identity() -> bytes:
    """Identity bytes for the executing user on this machine."""
    machine = ""
    for candidate in _MACHINE_ID_FILES:
        try:
            machine = Path(candidate).read_text(encoding="ascii").strip()
        except OSError:
            continue
        if machine:
            break
    if not machine:
        machine = f"{uuid.getnode():012x}"
    return f"{getpass.getuser()}\0{machine}".encode("utf-8")


def _b64decode(data: str) -> bytes:
    try:
        return base64.b64decode(data.strip(), validate=True)
    except (binascii.Error, ValueError) as ex:
        raise DecryptionError("Envelope payload is not valid Base64") from ex


class UserBoundProtector:
    """
    Seals bytes with a key bound to the current user and machine.

    Notes
    - `identity` defaults to `current_identity()`; inject a fixed value to
      simulate another user.
    - Output is standard Base64 of the raw Fernet token bytes.
    """

    def __init__(self, identity: Optional[bytes] = None) -> None:
        ident = identity if identity is not None else current_identity()
        digest = hashlib.sha256(_USER_BOUND_CONTEXT + b"\0" + ident).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def protect(self, data: bytes) -> str:
        token = self._fernet.encrypt(data)
        return base64.b64encode(base64.urlsafe_b64decode(token)).decode("ascii")

    def unprotect(self, blob: str) -> bytes:
        raw = _b64decode(blob)
        try:
            return self._fernet.decrypt(base64.urlsafe_b64encode(raw))
        except InvalidToken as ex:
            raise DecryptionError("User-bound envelope cannot be opened by this user/machine") from ex


_protector: Optional[UserBoundProtector] = None


def user_protector() -> UserBoundProtector:
    """Process-wide protector for the current identity (built on first use)."""
    global _protector
    if _protector is None:
        _protector = UserBoundProtector()
    return _protector


def set_user_protector(protector: Optional[UserBoundProtector]) -> None:
    """Replace the process-wide protector; None resets to the current identity."""
    global _protector
    _protector = protector


# -------- Password scheme --------
def derive_key(password: str) -> bytes:
    return hashlib.sha256(password.encode("utf-8")).digest()


def _aes_cipher(password: str) -> Cipher:
    key = derive_key(password)
    return Cipher(algorithms.AES(key), modes.CBC(key[8:24]))


def aes_encrypt(plaintext: str, password: Optional[str]) -> str:
    if not password:
        raise EncryptionError("AES256 envelope requires a password")
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext.encode(_PLAINTEXT_ENCODING)) + padder.finalize()
    enc = _aes_cipher(password).encryptor()
    return base64.b64encode(enc.update(padded) + enc.finalize()).decode("ascii")


def aes_decrypt(blob: str, password: Optional[str]) -> str:
    if not password:
        raise DecryptionError("AES256 envelope requires a password")
    raw = _b64decode(blob)
    if not raw or len(raw) % 16:
        raise DecryptionError("AES256 payload length is not a multiple of the block size")
    dec = _aes_cipher(password).decryptor()
    padded = dec.update(raw) + dec.finalize()
    try:
        unpadder = padding.PKCS7(128).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode(_PLAINTEXT_ENCODING)
    except (ValueError, UnicodeDecodeError) as ex:
        raise DecryptionError("AES256 envelope cannot be opened (wrong password or corrupt data)") from ex


# -------- Records --------
def encrypt_text(plaintext: str, scheme: Scheme | str, password: Optional[str] = None) -> str:
    scheme = Scheme.parse(scheme)
    if scheme is Scheme.AES256:
        return aes_encrypt(plaintext, password)
    return user_protector().protect(plaintext.encode("utf-8"))


def decrypt_text(blob: str, scheme: Scheme | str, password: Optional[str] = None) -> str:
    scheme = Scheme.parse(scheme)
    if scheme is Scheme.AES256:
        return aes_decrypt(blob, password)
    data = user_protector().unprotect(blob)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as ex:
        raise DecryptionError("User-bound envelope holds undecodable text") from ex


def seal(record: Record, scheme: Scheme | str, password: Optional[str] = None) -> Record:
    """Wrap `record` (scalar or composite) in an envelope record of the same name."""
    try:
        scheme = Scheme.parse(scheme)
    except ValueError as ex:
        raise EncryptionError(str(ex)) from ex
    blob = encrypt_text(text.join([record]), scheme, password)
    return Record(name=record.name, data_type=scheme.value, value=blob)


def unseal(record: Record, password: Optional[str] = None) -> Record:
    """Open an envelope record and return the sub-tree it protects."""
    plaintext = decrypt_text(record.text, record.data_type, password)
    inner = next(visible(text.split(plaintext)), None)
    if inner is None:
        raise DecryptionError(f"Envelope '{record.name}' holds no record")
    return inner
