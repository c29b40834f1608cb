# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
Writing issued certificates and keys to disk.

Certificates are world-readable (0644); private keys are owner-only
(0600). Modes are applied to the open file descriptor so neither the
process umask nor a pre-existing file can widen them.
"""

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cryptography.hazmat.primitives import serialization

from ..errors import PersistError
from .builder import IssuedCertificate

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

CERT_FILE_MODE = 0o644  # -rw-r--r--
KEY_FILE_MODE = 0o600   # -rw-------

STAGING_SUFFIX = ".partial"
BACKUP_SUFFIX = ".previous"


class KeyFormat(str, enum.Enum):
    """Container encoding for issued private keys."""

    PKCS1 = "pkcs1"  # "RSA PRIVATE KEY"
    PKCS8 = "pkcs8"  # "PRIVATE KEY"

    @property
    def private_format(self) -> serialization.PrivateFormat:
        if self is KeyFormat.PKCS8:
            return serialization.PrivateFormat.PKCS8
        return serialization.PrivateFormat.TraditionalOpenSSL


def encode_private_key(private_key, key_format: KeyFormat = KeyFormat.PKCS1) -> bytes:
    """Serialize an issued private key to unencrypted PEM."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=KeyFormat(key_format).private_format,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _write_file(path: Path, data: bytes, mode: int, what: str, log: logging.Logger) -> None:
    """Create-or-truncate write with an exact file mode."""
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    except OSError as e:
        raise PersistError(f"Failed to save {what} to {path}: {e.strerror or e}", stage="persist") from e

    try:
        handle = os.fdopen(fd, "wb")
    except OSError as e:
        os.close(fd)
        raise PersistError(f"Failed to open {what} file {path}: {e.strerror or e}", stage="persist") from e

    try:
        os.fchmod(fd, mode)
        handle.write(data)
        handle.flush()
    except OSError as e:
        raise PersistError(f"Failed to write {what} to {path}: {e.strerror or e}", stage="persist") from e
    finally:
        try:
            handle.close()
        except OSError as e:
            log.error(f"Error closing {what} file {path}: {e}")


def persist(
    issued: IssuedCertificate,
    cert_path: PathLike,
    key_path: PathLike,
    key_format: KeyFormat = KeyFormat.PKCS1,
    log: Optional[logging.Logger] = None,
) -> None:
    """
    Write the certificate and private key as PEM files.

    Files are created or truncated in place; a crash mid-write can leave a
    truncated file. Use stage() to publish only complete, verified files.

    Args:
        issued: Issued certificate and key
        cert_path: Destination of the CERTIFICATE PEM block (mode 0644)
        key_path: Destination of the private key PEM block (mode 0600)
        key_format: Issued key encoding (PKCS#1 by default)
        log: Logger (module logger by default)

    Raises:
        PersistError: If a file cannot be created or written
    """
    log = log or logger

    _write_file(Path(cert_path), issued.certificate_pem(), CERT_FILE_MODE, "certificate", log)
    _write_file(Path(key_path), encode_private_key(issued.private_key, key_format), KEY_FILE_MODE, "private key", log)

    log.debug(f"Saved certificate to {cert_path} and key to {key_path}")


@dataclass
class StagedArtifacts:
    """Certificate and key written under temporary names, not yet published."""

    cert_path: Path
    key_path: Path
    staged_cert_path: Path
    staged_key_path: Path
    log: logging.Logger

    def commit(self) -> None:
        """
        Move the staged files to their final paths.

        The key is published first. If the certificate cannot follow it,
        the previous key (or its absence) is restored, so a failed commit
        never leaves a new key next to an old or missing certificate.

        Raises:
            PersistError: If either file cannot be published
        """
        backup = None
        if self.key_path.is_file():
            backup = self.key_path.with_name(self.key_path.name + BACKUP_SUFFIX)

        try:
            if backup is not None:
                backup.unlink(missing_ok=True)
                os.link(self.key_path, backup)
            os.replace(self.staged_key_path, self.key_path)
        except OSError as e:
            self._unlink(backup)
            self.discard()
            raise PersistError(f"Failed to publish {self.key_path}: {e.strerror or e}", stage="persist") from e

        try:
            os.replace(self.staged_cert_path, self.cert_path)
        except OSError as e:
            self._restore_key(backup)
            self.discard()
            raise PersistError(f"Failed to publish {self.cert_path}: {e.strerror or e}", stage="persist") from e

        self._unlink(backup)

    def discard(self) -> None:
        """Remove whatever staged files exist."""
        self._unlink(self.staged_cert_path)
        self._unlink(self.staged_key_path)

    def _restore_key(self, backup: Optional[Path]) -> None:
        try:
            if backup is None:
                self.key_path.unlink(missing_ok=True)
            else:
                os.replace(backup, self.key_path)
        except OSError as e:
            self.log.error(f"Failed to roll back {self.key_path}: {e}")

    def _unlink(self, path: Optional[Path]) -> None:
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.log.error(f"Failed to remove {path}: {e}")


def stage(
    issued: IssuedCertificate,
    cert_path: PathLike,
    key_path: PathLike,
    key_format: KeyFormat = KeyFormat.PKCS1,
    log: Optional[logging.Logger] = None,
) -> StagedArtifacts:
    """
    Write the artifacts next to their destinations under temporary names.

    Nothing appears at cert_path / key_path until commit() is called on
    the returned StagedArtifacts.

    Raises:
        PersistError: If a file cannot be created or written
    """
    log = log or logger
    cert_path, key_path = Path(cert_path), Path(key_path)

    staged = StagedArtifacts(
        cert_path=cert_path,
        key_path=key_path,
        staged_cert_path=cert_path.with_name(cert_path.name + STAGING_SUFFIX),
        staged_key_path=key_path.with_name(key_path.name + STAGING_SUFFIX),
        log=log,
    )

    try:
        persist(issued, staged.staged_cert_path, staged.staged_key_path, key_format, log)
    except PersistError:
        staged.discard()
        raise

    return staged
