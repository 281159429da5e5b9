"""
Password-based encryption of bundles.

Encrypted bundles use the OpenSSL ``enc -aes-256-cbc -salt -pbkdf2`` file
format so they can also be opened with the openssl command line:

    b"Salted__" | 8-byte salt | AES-256-CBC ciphertext (PKCS#7 padded)

Key and IV are derived together from the password with PBKDF2-HMAC-SHA256
(10,000 iterations, OpenSSL's default for ``-pbkdf2``). The password stays
inside this process; it is never passed on a command line or logged.
"""

from __future__ import annotations

import logging
import os
import secrets
from pathlib import Path

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from claw_backup.backup.bundle import ENCRYPTED_SUFFIX, Bundle
from claw_backup.backup.errors import DecryptionError, EncryptionError
from claw_backup.prompts import Prompter

logger = logging.getLogger(__name__)

MAGIC = b"Salted__"
SALT_LENGTH = 8
KEY_LENGTH = 32
IV_LENGTH = 16
PBKDF2_ITERATIONS = 10_000
CHUNK_SIZE = 1024 * 1024
PARTIAL_SUFFIX = ".part"
GZIP_MAGIC = b"\x1f\x8b"


def _derive_key_iv(password: str, salt: bytes) -> tuple[bytes, bytes]:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH + IV_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    material = kdf.derive(password.encode("utf-8"))
    return material[:KEY_LENGTH], material[KEY_LENGTH:]


def encrypt_file(source: Path, dest: Path, password: str) -> None:
    """
    Encrypt ``source`` into ``dest``.

    The output is written to a temporary sibling and moved into place only
    when complete.

    Raises:
        EncryptionError: If the file cannot be read or written.
    """
    if not password:
        raise EncryptionError("A password is required for encryption")

    partial = dest.with_name(dest.name + PARTIAL_SUFFIX)
    salt = secrets.token_bytes(SALT_LENGTH)
    key, iv = _derive_key_iv(password, salt)
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    padder = padding.PKCS7(algorithms.AES.block_size).padder()

    try:
        with open(source, "rb") as src, open(partial, "wb") as out:
            out.write(MAGIC + salt)
            while chunk := src.read(CHUNK_SIZE):
                out.write(encryptor.update(padder.update(chunk)))
            out.write(encryptor.update(padder.finalize()) + encryptor.finalize())
        os.replace(partial, dest)
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise EncryptionError(f"Encryption failed: {e}") from e


def decrypt_file(source: Path, dest: Path, password: str, expected_prefix: bytes = b"") -> None:
    """
    Decrypt ``source`` into ``dest``.

    Nothing is left at ``dest`` when decryption fails.

    Args:
        source: Encrypted file.
        dest: Plaintext output path.
        password: Password used at encryption time.
        expected_prefix: Leading bytes the plaintext must start with.

    Raises:
        DecryptionError: On a wrong password, a damaged file or an I/O error.
    """
    partial = dest.with_name(dest.name + PARTIAL_SUFFIX)

    try:
        with open(source, "rb") as src:
            header = src.read(len(MAGIC) + SALT_LENGTH)
            if len(header) != len(MAGIC) + SALT_LENGTH or not header.startswith(MAGIC):
                raise DecryptionError(f"{source.name} is not an encrypted bundle")
            key, iv = _derive_key_iv(password, header[len(MAGIC):])
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()

            with open(partial, "wb") as out:
                while chunk := src.read(CHUNK_SIZE):
                    out.write(unpadder.update(decryptor.update(chunk)))
                out.write(unpadder.update(decryptor.finalize()) + unpadder.finalize())
        if expected_prefix:
            with open(partial, "rb") as check:
                if check.read(len(expected_prefix)) != expected_prefix:
                    raise DecryptionError("Decryption failed (wrong password?)")
        os.replace(partial, dest)
    except DecryptionError:
        partial.unlink(missing_ok=True)
        raise
    except ValueError as e:
        # Bad padding or truncated ciphertext: almost always the wrong password
        partial.unlink(missing_ok=True)
        raise DecryptionError("Decryption failed (wrong password?)") from e
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise DecryptionError(f"Decryption failed: {e}") from e


def encrypted_path(plain: Path) -> Path:
    return plain.with_name(plain.name + ENCRYPTED_SUFFIX)


def decrypted_path(encrypted: Path) -> Path:
    name = encrypted.name
    if name.endswith(ENCRYPTED_SUFFIX):
        name = name[: -len(ENCRYPTED_SUFFIX)]
    return encrypted.with_name(name)


class EncryptionGate:
    """Offers encryption of a finished bundle and decrypts bundles for restore."""

    def __init__(self, prompter: Prompter) -> None:
        self.prompter = prompter

    def maybe_encrypt(self, bundle: Bundle, interactive: bool) -> Bundle:
        """
        Ask whether to encrypt ``bundle`` and do so if accepted.

        Unattended runs never encrypt. On success the plaintext bundle is
        deleted; on failure it is preserved and EncryptionError is raised.
        """
        if not interactive:
            return bundle
        if not self.prompter.confirm("Encrypt backup with password?", default=False):
            return bundle

        password = self.prompter.secret("Enter Password:")
        return self.encrypt(bundle, password)

    def encrypt(self, bundle: Bundle, password: str) -> Bundle:
        target = encrypted_path(bundle.path)
        encrypt_file(bundle.path, target, password)
        bundle.path.unlink(missing_ok=True)
        logger.info("Encrypted bundle created: %s", target.name)
        return Bundle(path=target, created_at=bundle.created_at, encrypted=True)

    def decrypt(self, encrypted: Path, password: str, dest: Path | None = None) -> Path:
        """Decrypt to ``dest`` (default: the plaintext sibling) and return its path."""
        target = dest or decrypted_path(encrypted)
        decrypt_file(encrypted, target, password, expected_prefix=GZIP_MAGIC)
        return target
