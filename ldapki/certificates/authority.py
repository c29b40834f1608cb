# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
Intermediate CA loading.

Reads the CA certificate and its PKCS#8 private key from PEM files and
decrypts the key with the configured passphrase. The loaded key lives only
in memory for the duration of the process.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from ..errors import (
    DecryptionError,
    FileAccessError,
    FormatError,
    UnsupportedFormatError,
)
from .keys import KeyFamily, key_family_for

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\r?\n"
    rb".*?"
    rb"-----END (?P=label)-----",
    re.DOTALL,
)

CERTIFICATE_LABEL = "CERTIFICATE"
ENCRYPTED_PKCS8_LABEL = "ENCRYPTED PRIVATE KEY"
PKCS8_LABEL = "PRIVATE KEY"

# Traditional OpenSSL encodings, rejected in favour of PKCS#8
LEGACY_KEY_LABELS = {"RSA PRIVATE KEY", "EC PRIVATE KEY", "DSA PRIVATE KEY"}


@dataclass(frozen=True)
class PEMBlock:
    """A single PEM block: its label and the full armoured text."""

    label: str
    data: bytes


@dataclass(frozen=True)
class CertificateAuthority:
    """Loaded signing authority: certificate plus decrypted private key."""

    certificate: x509.Certificate
    private_key: object
    key_family: KeyFamily

    @property
    def subject(self) -> x509.Name:
        return self.certificate.subject

    @property
    def dns_names(self) -> list[str]:
        """DNS names from the CA's subjectAltName extension, if any."""
        try:
            san = self.certificate.extensions.get_extension_for_class(
                x509.SubjectAlternativeName
            )
        except x509.ExtensionNotFound:
            return []
        return san.value.get_values_for_type(x509.DNSName)

    def __repr__(self) -> str:
        return (
            f"CertificateAuthority(subject={self.subject.rfc4514_string()!r}, "
            f"key_family={self.key_family.name!r})"
        )


def read_pem_blocks(data: bytes) -> list[PEMBlock]:
    """Split PEM text into its blocks."""
    return [
        PEMBlock(label=match.group("label").decode("ascii"), data=match.group(0))
        for match in PEM_BLOCK_RE.finditer(data)
    ]


def _public_key_der(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _read_file(path: PathLike, what: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise FileAccessError(
            f"Failed to read {what} file {path}: {e.strerror or e}",
            stage="load",
        ) from e


def load_ca_certificate(cert_path: PathLike) -> x509.Certificate:
    """
    Load the CA certificate from a PEM file.

    The file must hold exactly one CERTIFICATE block.

    Raises:
        FileAccessError: If the file cannot be read
        FormatError: If the file is not a single valid PEM certificate
    """
    blocks = read_pem_blocks(_read_file(cert_path, "CA certificate"))

    if len(blocks) != 1:
        raise FormatError(
            f"Expected exactly one PEM block in {cert_path}, found {len(blocks)}",
            stage="load",
        )

    block = blocks[0]
    if block.label != CERTIFICATE_LABEL:
        raise FormatError(
            f"Expected a {CERTIFICATE_LABEL} block in {cert_path}, found {block.label}",
            stage="load",
        )

    try:
        return x509.load_pem_x509_certificate(block.data)
    except ValueError as e:
        raise FormatError(f"Failed to parse CA certificate: {e}", stage="load") from e


def load_ca_private_key(key_path: PathLike, passphrase: Optional[str]):
    """
    Load and decrypt the CA private key.

    Accepts PKCS#8, either encrypted (ENCRYPTED PRIVATE KEY) or plain
    (PRIVATE KEY). Legacy PKCS#1 / SEC1 blocks are rejected before any
    decryption attempt.

    Args:
        key_path: Path to the PEM key file
        passphrase: Passphrase for an encrypted key

    Returns:
        The decrypted private key

    Raises:
        FileAccessError: If the file cannot be read
        FormatError: If there is no key block or its type is unknown
        UnsupportedFormatError: If the key uses a legacy encoding
        DecryptionError: If the key cannot be decrypted
    """
    blocks = read_pem_blocks(_read_file(key_path, "CA key"))
    if not blocks:
        raise FormatError(f"No PEM block found in {key_path}", stage="load")

    block = blocks[0]
    logger.debug(f"CA key block type: {block.label}")

    if block.label in LEGACY_KEY_LABELS:
        raise UnsupportedFormatError(
            f"{block.label} (legacy encoding) is not supported, convert the key to PKCS#8",
            stage="load",
        )

    if block.label == ENCRYPTED_PKCS8_LABEL:
        if not passphrase:
            raise DecryptionError("Failed to decrypt CA private key", stage="load")
        password = passphrase.encode("utf-8")
    elif block.label == PKCS8_LABEL:
        if passphrase:
            logger.warning("CA private key is not encrypted, ignoring the configured passphrase")
        password = None
    else:
        raise FormatError(f"Unsupported key block type: {block.label}", stage="load")

    try:
        return serialization.load_pem_private_key(block.data, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        # Wrong passphrase and corrupt ciphertext are reported identically
        if password is not None:
            raise DecryptionError("Failed to decrypt CA private key", stage="load") from None
        raise FormatError("Failed to parse CA private key", stage="load") from None


def load_ca(
    cert_path: PathLike,
    key_path: PathLike,
    key_passphrase: Optional[str],
    log: Optional[logging.Logger] = None,
) -> CertificateAuthority:
    """
    Load the intermediate CA used to sign user certificates.

    Args:
        cert_path: PEM file with the CA certificate
        key_path: PEM file with the CA private key (PKCS#8)
        key_passphrase: Passphrase for the CA key
        log: Logger to report progress on (module logger by default)

    Returns:
        CertificateAuthority with certificate, key and key family

    Raises:
        LoadError: Any of its subclasses, see load_ca_certificate and
            load_ca_private_key. KeyTypeError if the key is not RSA.
    """
    log = log or logger

    certificate = load_ca_certificate(cert_path)
    private_key = load_ca_private_key(key_path, key_passphrase)

    family = key_family_for(private_key, stage="load")
    if _public_key_der(private_key.public_key()) != _public_key_der(certificate.public_key()):
        raise FormatError(
            "CA private key does not match the CA certificate",
            stage="load",
        )

    ca = CertificateAuthority(
        certificate=certificate,
        private_key=private_key,
        key_family=family,
    )
    log.info(f"Loaded CA {certificate.subject.rfc4514_string()} ({family.name})")
    return ca
