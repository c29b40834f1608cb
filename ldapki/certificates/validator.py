# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
Verification of issued certificates against the issuing CA.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from cryptography import x509

from ..errors import FileAccessError, KeyTypeError, ParseError, SignatureVerificationError
from .keys import key_family_for

logger = logging.getLogger(__name__)


def verify(
    issued_der: bytes,
    ca_cert: x509.Certificate,
    log: Optional[logging.Logger] = None,
) -> x509.Certificate:
    """
    Check that a DER certificate was issued and signed by the CA.

    Args:
        issued_der: DER-encoded certificate
        ca_cert: Issuing CA certificate
        log: Logger (module logger by default)

    Returns:
        The parsed certificate

    Raises:
        ParseError: If the bytes are not a certificate
        SignatureVerificationError: If the issuer or signature does not match the CA
    """
    log = log or logger

    try:
        cert = x509.load_der_x509_certificate(issued_der)
    except ValueError as e:
        raise ParseError(f"Failed to parse certificate: {e}", stage="verify") from e

    return _check_issued_by(cert, ca_cert, log)


def verify_file(
    cert_path: Union[str, Path],
    ca_cert: x509.Certificate,
    log: Optional[logging.Logger] = None,
) -> x509.Certificate:
    """Verify a persisted PEM certificate against the CA."""
    log = log or logger

    try:
        with open(cert_path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise FileAccessError(f"Failed to read {cert_path}: {e.strerror or e}", stage="verify") from e

    try:
        cert = x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise ParseError(f"Failed to parse {cert_path}: {e}", stage="verify") from e

    return _check_issued_by(cert, ca_cert, log)


def _check_issued_by(
    cert: x509.Certificate,
    ca_cert: x509.Certificate,
    log: logging.Logger,
) -> x509.Certificate:
    common_name = _common_name(cert)

    if cert.issuer != ca_cert.subject:
        raise SignatureVerificationError(
            f"Issuer {cert.issuer.rfc4514_string()} does not match CA "
            f"{ca_cert.subject.rfc4514_string()}",
            stage="verify",
            subject=common_name,
        )

    ca_public_key = ca_cert.public_key()
    try:
        family = key_family_for(ca_public_key)
    except KeyTypeError as e:
        raise SignatureVerificationError(e.message, stage="verify", subject=common_name) from e

    if cert.signature_hash_algorithm is None or not family.verify(
        ca_public_key,
        cert.signature,
        cert.tbs_certificate_bytes,
        cert.signature_hash_algorithm,
    ):
        raise SignatureVerificationError(
            "Certificate signature verification failed (not signed by CA)",
            stage="verify",
            subject=common_name,
        )

    log.debug(f"Certificate for {common_name} verified against {ca_cert.subject.rfc4514_string()}")
    return cert


def _common_name(cert: x509.Certificate) -> Optional[str]:
    attributes = cert.subject.get_attributes_for_oid(x509.oid.NameOID.COMMON_NAME)
    return str(attributes[0].value) if attributes else None
