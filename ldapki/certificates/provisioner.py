# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
User certificate provisioning.

Runs the per-subject pipeline:
1. Generate key pair and CA-signed certificate
2. Write certificate and key under temporary names
3. Verify the certificate against the CA
4. Move the files to their final paths

A failure at any step removes the temporary files, so an unverified
certificate never shows up at its published location.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..errors import PKIError, ProvisioningError
from .authority import CertificateAuthority
from .builder import SubjectDescriptor, UserCertificateBuilder
from .storage import KeyFormat, stage
from .validator import verify

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningResult:
    """Outcome of a successful provisioning run for one subject."""

    common_name: str
    serial_number: int
    cert_path: Path
    key_path: Path
    not_valid_after: datetime


class UserProvisioner:
    """
    Issue, store and verify user certificates.

    The CA is shared read-only between calls, so one provisioner can be
    used from several threads.
    """

    def __init__(
        self,
        ca: CertificateAuthority,
        key_format: KeyFormat = KeyFormat.PKCS1,
        inherit_ca_dns_names: bool = False,
        log: Optional[logging.Logger] = None,
    ):
        self.ca = ca
        self.key_format = KeyFormat(key_format)
        self.log = log or logger
        self.builder = UserCertificateBuilder(ca, inherit_ca_dns_names, self.log)

    def provision(self, subject: SubjectDescriptor) -> ProvisioningResult:
        """
        Provision a certificate for one subject.

        Args:
            subject: Identity to certify

        Returns:
            ProvisioningResult describing the published files

        Raises:
            ProvisioningError: Names the failed stage and subject; the
                underlying PKIError is chained as __cause__
        """
        name = subject.common_name

        try:
            issued = self.builder.issue(subject)
        except PKIError as e:
            raise self._failure("issue", name, e) from e

        try:
            staged = stage(issued, subject.cert_path, subject.key_path, self.key_format, self.log)
        except PKIError as e:
            raise self._failure("persist", name, e) from e

        self.log.debug(f"Certificate for {name} created, verifying...")

        try:
            cert = verify(issued.certificate_der, self.ca.certificate, self.log)
        except PKIError as e:
            staged.discard()
            raise self._failure("verify", name, e) from e

        try:
            staged.commit()
        except PKIError as e:
            raise self._failure("persist", name, e) from e

        self.log.info(f"Certificate for {name} issued and verified: {subject.cert_path}")

        return ProvisioningResult(
            common_name=name,
            serial_number=issued.serial_number,
            cert_path=subject.cert_path,
            key_path=subject.key_path,
            not_valid_after=cert.not_valid_after_utc,
        )

    @staticmethod
    def _failure(stage_name: str, subject: str, cause: PKIError) -> ProvisioningError:
        return ProvisioningError(cause.message, stage=stage_name, subject=subject)
