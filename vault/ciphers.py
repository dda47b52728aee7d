"""
Cipher methods used by the encrypted filesystem.

A cipher method transforms one file at a time, block by block. Every file
operation starts with reset(), which rebuilds the cipher contexts from the
key and an IV derived from the key, so identical plaintext always encrypts
to identical ciphertext and no chaining state survives from one file to the
next.
"""

import base64
import binascii
import logging
from abc import ABC, abstractmethod

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .exceptions import (
    CipherStateError,
    DecryptionError,
    InvalidConfiguration,
    InvalidKeyMaterial,
)

_LOG = logging.getLogger(__name__)

AES_BLOCK_SIZE = 16
DEFAULT_BLOCK_SIZE = 8192
KEY_PREFIX = "base64:"

# name -> key length in bytes
SUPPORTED_METHODS = {
    "aes-128-cbc": 16,
    "aes-192-cbc": 24,
    "aes-256-cbc": 32,
}

# The IV is derived from the key alone, so a counter mode would run every
# file under one key through the same keystream.
REFUSED_METHODS = ("aes-128-ctr", "aes-192-ctr", "aes-256-ctr", "chacha20")


def decode_key_material(key) -> bytes:
    """
    Turn a configured key into raw bytes.

    Keys prefixed with ``base64:`` are decoded, anything else is taken
    as-is (strings are UTF-8 encoded).
    """
    if isinstance(key, str):
        if key.startswith(KEY_PREFIX):
            try:
                key = base64.b64decode(key[len(KEY_PREFIX):], validate=True)
            except (binascii.Error, ValueError) as exc:
                raise InvalidKeyMaterial("The base64 encryption key could not be decoded.") from exc
        else:
            key = key.encode("utf-8")

    if not isinstance(key, (bytes, bytearray)) or not key:
        raise InvalidKeyMaterial("The encryption key is empty.")

    return bytes(key)


def _derive(material: bytes, length: int, info: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=None,
        info=info,
    ).derive(material)


class CipherMethod(ABC):
    """Stateful block transform shared by the encrypting and decrypting streams."""

    def __init__(self, name: str, key_material: bytes, block_size: int = DEFAULT_BLOCK_SIZE):
        if not isinstance(block_size, int) or block_size <= 0 or block_size % AES_BLOCK_SIZE:
            raise InvalidConfiguration("block-size")

        self.name = name
        self._key_material = key_material
        self._block_size = block_size
        self._generation = 0
        self._encryptor = None
        self._decryptor = None

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def generation(self) -> int:
        """Number of times reset() has been called on this instance."""
        return self._generation

    def reset(self) -> None:
        cipher = self._build_cipher()
        self._encryptor = cipher.encryptor()
        self._decryptor = cipher.decryptor()
        self._generation += 1

    def fork(self) -> "CipherMethod":
        """Return an independent, not yet reset, instance with the same key."""
        return type(self)(self.name, self._key_material, self._block_size)

    def encrypt_block(self, data: bytes, final: bool = False) -> bytes:
        if self._encryptor is None:
            raise CipherStateError(f"{self.name}: encrypt_block() called before reset().")
        out = self._encrypt(data, final)
        if final:
            self._encryptor = None
        return out

    def decrypt_block(self, data: bytes, final: bool = False) -> bytes:
        if self._decryptor is None:
            raise CipherStateError(f"{self.name}: decrypt_block() called before reset().")
        out = self._decrypt(data, final)
        if final:
            self._decryptor = None
        return out

    @abstractmethod
    def _build_cipher(self) -> Cipher:
        ...

    @abstractmethod
    def _encrypt(self, data: bytes, final: bool) -> bytes:
        ...

    @abstractmethod
    def _decrypt(self, data: bytes, final: bool) -> bytes:
        ...

    def __repr__(self):
        return f"<{type(self).__name__} {self.name} block_size={self._block_size}>"


class PaddedCipherMethod(CipherMethod):
    """
    AES-CBC. Every block but the last must be a multiple of the AES block
    size; the last one is PKCS7 padded on the way in and unpadded on the
    way out.
    """

    def _build_cipher(self) -> Cipher:
        key_length = SUPPORTED_METHODS[self.name]
        key = _derive(self._key_material, key_length, b"encrypted-filesystem key")
        iv = _derive(self._key_material, AES_BLOCK_SIZE, b"encrypted-filesystem iv")
        return Cipher(algorithms.AES(key), modes.CBC(iv))

    def _encrypt(self, data, final):
        if not final:
            return self._encryptor.update(data)
        padder = padding.PKCS7(AES_BLOCK_SIZE * 8).padder()
        padded = padder.update(data) + padder.finalize()
        return self._encryptor.update(padded) + self._encryptor.finalize()

    def _decrypt(self, data, final):
        try:
            out = self._decryptor.update(data)
            if not final:
                return out
            out += self._decryptor.finalize()
            unpadder = padding.PKCS7(AES_BLOCK_SIZE * 8).unpadder()
            return unpadder.update(out) + unpadder.finalize()
        except ValueError as exc:
            raise DecryptionError(f"{self.name}: ciphertext is truncated or was not produced with this key.") from exc


def make_cipher_method(name, key, block_size=None) -> CipherMethod:
    """Build the cipher method named by the ``cipher-method`` option."""
    if name in REFUSED_METHODS:
        raise InvalidKeyMaterial(
            f"Cipher method {name!r} would reuse one keystream for every file under this key, "
            f"use one of: {', '.join(SUPPORTED_METHODS)}."
        )
    if not name or name not in SUPPORTED_METHODS:
        raise InvalidKeyMaterial(f"Unsupported cipher method: {name!r}.")

    key_material = decode_key_material(key)
    method = PaddedCipherMethod(name, key_material, DEFAULT_BLOCK_SIZE if block_size is None else block_size)
    _LOG.debug("Cipher method %s ready (block size %s)", name, method.block_size)
    return method
