# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
User certificate generation.

Builds dual-purpose (client + server authentication) leaf certificates
whose subject inherits the organisational fields of the issuing CA. No
file I/O happens here; see storage.py for persistence.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ..errors import (
    InvalidSubjectError,
    InvalidValidityError,
    KeyGenError,
    KeyTypeError,
    SigningError,
)
from .authority import CertificateAuthority
from .keys import key_family_for

logger = logging.getLogger(__name__)

# Subject attributes copied verbatim from the CA certificate
INHERITED_NAME_OIDS = (
    NameOID.COUNTRY_NAME,
    NameOID.ORGANIZATIONAL_UNIT_NAME,
    NameOID.ORGANIZATION_NAME,
    NameOID.LOCALITY_NAME,
    NameOID.STATE_OR_PROVINCE_NAME,
    NameOID.STREET_ADDRESS,
    NameOID.POSTAL_CODE,
)

CERT_SUFFIX = ".crt"
KEY_SUFFIX = ".key"


@dataclass(frozen=True)
class SubjectDescriptor:
    """
    Identity to certify.

    output_path is the base path for the artifacts; the certificate and
    key are written next to each other with .crt and .key suffixes.
    """

    common_name: str
    emails: tuple[str, ...] = ()
    validity_days: int = 365
    key_size: int = 2048
    output_path: Path = Path("user_certificate")
    dns_names: tuple[str, ...] = ()

    @property
    def cert_path(self) -> Path:
        return self.output_path.with_name(self.output_path.name + CERT_SUFFIX)

    @property
    def key_path(self) -> Path:
        return self.output_path.with_name(self.output_path.name + KEY_SUFFIX)


@dataclass
class IssuedCertificate:
    """Signed leaf certificate (DER) and its freshly generated private key."""

    certificate_der: bytes
    private_key: object = field(repr=False)
    serial_number: int

    @property
    def certificate(self) -> x509.Certificate:
        return x509.load_der_x509_certificate(self.certificate_der)

    def certificate_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)


class UserCertificateBuilder:
    """Issue user certificates signed by a loaded intermediate CA."""

    def __init__(
        self,
        ca: CertificateAuthority,
        inherit_ca_dns_names: bool = False,
        log: Optional[logging.Logger] = None,
    ):
        """
        Args:
            ca: Loaded signing authority
            inherit_ca_dns_names: Copy the CA's DNS subjectAltNames into
                every issued certificate (off by default)
            log: Logger (module logger by default)
        """
        self.ca = ca
        self.inherit_ca_dns_names = inherit_ca_dns_names
        self.log = log or logger

    def issue(self, subject: SubjectDescriptor) -> IssuedCertificate:
        """
        Generate a key pair and a CA-signed certificate for a subject.

        Args:
            subject: Identity to certify

        Returns:
            IssuedCertificate with DER certificate and private key

        Raises:
            InvalidSubjectError: Empty common name or non-positive key size
            InvalidValidityError: validity_days <= 0
            KeyGenError: Key generation failed
            SigningError: The CA could not sign the certificate
        """
        self._validate(subject)

        family = self.ca.key_family
        try:
            private_key = family.generate(subject.key_size)
        except KeyGenError as e:
            e.stage, e.subject = "issue", subject.common_name
            raise

        builder = self._build_template(subject, private_key.public_key())

        try:
            certificate = builder.sign(self.ca.private_key, family.signature_hash())
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SigningError(
                f"Failed to sign certificate: {e}",
                stage="issue",
                subject=subject.common_name,
            ) from e

        self.log.debug(
            f"Issued certificate for {subject.common_name} "
            f"(serial {certificate.serial_number:x})"
        )

        return IssuedCertificate(
            certificate_der=certificate.public_bytes(serialization.Encoding.DER),
            private_key=private_key,
            serial_number=certificate.serial_number,
        )

    def _validate(self, subject: SubjectDescriptor) -> None:
        """Reject bad descriptors before any key material is generated."""
        if not subject.common_name or not subject.common_name.strip():
            raise InvalidSubjectError("Common name must not be empty", stage="issue")

        if subject.validity_days <= 0:
            raise InvalidValidityError(
                f"Invalid validity period: {subject.validity_days} days (must be > 0)",
                stage="issue",
                subject=subject.common_name,
            )

        # notAfter must still be a representable date (year <= 9999)
        try:
            datetime.now(timezone.utc) + timedelta(days=subject.validity_days)
        except OverflowError:
            raise InvalidValidityError(
                f"Invalid validity period: {subject.validity_days} days ends after year 9999",
                stage="issue",
                subject=subject.common_name,
            ) from None

        if subject.key_size <= 0:
            raise InvalidSubjectError(
                f"Invalid key size: {subject.key_size} (must be > 0)",
                stage="issue",
                subject=subject.common_name,
            )

    def build_subject_name(self, common_name: str) -> x509.Name:
        """CA organisational attributes, in CA order, followed by the common name."""
        attributes = [
            attribute
            for attribute in self.ca.subject
            if attribute.oid in INHERITED_NAME_OIDS
        ]
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
        return x509.Name(attributes)

    def _build_template(self, subject: SubjectDescriptor, public_key) -> x509.CertificateBuilder:
        # X.509 times have one second resolution
        now = datetime.now(timezone.utc).replace(microsecond=0)
        not_valid_after = now + timedelta(days=subject.validity_days)

        try:
            name = self.build_subject_name(subject.common_name)
        except ValueError as e:
            raise InvalidSubjectError(
                f"Invalid subject name: {e}",
                stage="issue",
                subject=subject.common_name,
            ) from e

        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(self.ca.subject)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(not_valid_after)
        )

        builder = builder.add_extension(
            x509.BasicConstraints(ca=False, path_length=None),
            critical=True,
        )

        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=True,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )

        builder = builder.add_extension(
            x509.ExtendedKeyUsage([
                ExtendedKeyUsageOID.CLIENT_AUTH,
                ExtendedKeyUsageOID.SERVER_AUTH,
            ]),
            critical=False,
        )

        builder = builder.add_extension(
            x509.SubjectKeyIdentifier.from_public_key(public_key),
            critical=False,
        )

        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(
                self.ca.certificate.public_key()
            ),
            critical=False,
        )

        alt_names = self._alt_names(subject)
        if alt_names:
            builder = builder.add_extension(
                x509.SubjectAlternativeName(alt_names),
                critical=False,
            )

        return builder

    def _alt_names(self, subject: SubjectDescriptor) -> list[x509.GeneralName]:
        dns_names = list(subject.dns_names)
        if self.inherit_ca_dns_names:
            dns_names.extend(n for n in self.ca.dns_names if n not in dns_names)

        try:
            names: list[x509.GeneralName] = [x509.DNSName(n) for n in dns_names]
            names.extend(x509.RFC822Name(email) for email in subject.emails)
        except ValueError as e:
            raise InvalidSubjectError(
                f"Invalid subjectAltName: {e}",
                stage="issue",
                subject=subject.common_name,
            ) from e
        return names


def issue(
    ca_cert: x509.Certificate,
    ca_key,
    subject: SubjectDescriptor,
    inherit_ca_dns_names: bool = False,
    log: Optional[logging.Logger] = None,
) -> IssuedCertificate:
    """
    Issue a certificate from a bare CA certificate and private key.

    Raises:
        IssueError: See UserCertificateBuilder.issue; SigningError if the
            CA key belongs to an unsupported algorithm family
    """
    try:
        family = key_family_for(ca_key)
    except KeyTypeError as e:
        raise SigningError(e.message, stage="issue", subject=subject.common_name) from e

    ca = CertificateAuthority(
        certificate=ca_cert,
        private_key=ca_key,
        key_family=family,
    )
    return UserCertificateBuilder(ca, inherit_ca_dns_names, log).issue(subject)
