# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
ldapki application.

Loads the intermediate CA once, fetches users from the directory and
provisions a certificate for each of them. A CA loading failure ends the
run; a failure for one user is recorded and, unless fail_fast is set,
the remaining users are still processed.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from cryptography import x509

from .certificates import (
    CertificateAuthority,
    ProvisioningResult,
    SubjectDescriptor,
    UserProvisioner,
    load_ca,
    load_ca_certificate,
    verify_file,
)
from .config import Settings
from .directory import LDAPDirectory, output_name, subjects_from_users
from .errors import ConfigError, ProvisioningError

logger = logging.getLogger(__name__)


@dataclass
class SubjectFailure:
    """A subject whose certificate could not be provisioned."""

    common_name: str
    stage: Optional[str]
    error: str


@dataclass
class BatchReport:
    """Per-subject outcomes of a batch run."""

    succeeded: list[ProvisioningResult] = field(default_factory=list)
    failed: list[SubjectFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return f"{len(self.succeeded)} issued, {len(self.failed)} failed"


class Application:
    """Batch issuance of user certificates for directory users."""

    def __init__(
        self,
        settings: Settings,
        directory: Optional[LDAPDirectory] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.log = log or logger
        self._directory = directory
        self._ca: Optional[CertificateAuthority] = None

    @property
    def directory(self) -> LDAPDirectory:
        if self._directory is None:
            if not self.settings.directory_configured:
                raise ConfigError("Directory url and base_dn must be configured", stage="config")
            self._directory = LDAPDirectory(
                url=self.settings.url,
                bind_dn=self.settings.ldap_username,
                password=self.settings.ldap_password.get_secret_value(),
                base_dn=self.settings.base_dn,
                search_filter=self.settings.ldap_filter,
                log=self.log,
            )
        return self._directory

    def load_ca(self) -> CertificateAuthority:
        """Load the CA once per process. Raises LoadError on failure."""
        if self._ca is None:
            self._ca = load_ca(
                self.settings.ca_cert_path,
                self.settings.ca_key_path,
                self.settings.ca_password.get_secret_value(),
                log=self.log,
            )
        return self._ca

    def provisioner(self) -> UserProvisioner:
        return UserProvisioner(
            self.load_ca(),
            key_format=self.settings.issued_key_format,
            inherit_ca_dns_names=self.settings.inherit_ca_dns_names,
            log=self.log,
        )

    def run(self) -> BatchReport:
        """
        Issue certificates for every directory user.

        Raises:
            ConfigError: Output directory or directory settings invalid
            LoadError: The CA could not be loaded
            DirectoryError: Users could not be fetched
        """
        self.log.debug("Starting the application")
        output_dir = self.settings.ensure_output_dir()
        provisioner = self.provisioner()

        users = self.directory.fetch_users()
        subjects = subjects_from_users(
            users,
            validity_days=self.settings.cert_validity_days,
            key_size=self.settings.cert_key_size,
            output_dir=output_dir,
            log=self.log,
        )

        report = self.provision_all(provisioner, subjects)
        self.log.info(f"Batch finished: {report.summary()}")
        return report

    def provision_all(
        self,
        provisioner: UserProvisioner,
        subjects: Sequence[SubjectDescriptor],
    ) -> BatchReport:
        """Provision subjects sequentially, or on a thread pool if workers > 1."""
        if self.settings.workers > 1 and len(subjects) > 1:
            return self._provision_parallel(provisioner, subjects)

        report = BatchReport()
        for subject in subjects:
            try:
                report.succeeded.append(provisioner.provision(subject))
            except ProvisioningError as e:
                self._record_failure(report, subject, e)
                if self.settings.fail_fast:
                    self.log.error("Stopping batch after first failure (fail_fast)")
                    break
        return report

    def _provision_parallel(
        self,
        provisioner: UserProvisioner,
        subjects: Iterable[SubjectDescriptor],
    ) -> BatchReport:
        report = BatchReport()
        recorded: set[Future] = set()

        with ThreadPoolExecutor(max_workers=self.settings.workers) as executor:
            futures = {executor.submit(provisioner.provision, s): s for s in subjects}

            for future in as_completed(futures):
                recorded.add(future)
                if not self._collect(report, futures[future], future) and self.settings.fail_fast:
                    self.log.error("Stopping batch after first failure (fail_fast)")
                    executor.shutdown(wait=True, cancel_futures=True)
                    break

            # Subjects that finished while the pool was shutting down
            for future, subject in futures.items():
                if future not in recorded and future.done() and not future.cancelled():
                    self._collect(report, subject, future)

        return report

    def _collect(self, report: BatchReport, subject: SubjectDescriptor, future: Future) -> bool:
        try:
            report.succeeded.append(future.result())
            return True
        except ProvisioningError as e:
            self._record_failure(report, subject, e)
            return False

    def _record_failure(
        self,
        report: BatchReport,
        subject: SubjectDescriptor,
        error: ProvisioningError,
    ) -> None:
        cause = type(error.__cause__).__name__ if error.__cause__ else type(error).__name__
        self.log.error(f"Certificate for {subject.common_name} failed: {error} ({cause})")
        report.failed.append(
            SubjectFailure(common_name=subject.common_name, stage=error.stage, error=error.message)
        )

    def issue_one(
        self,
        common_name: str,
        emails: Sequence[str] = (),
        output_path: Optional[Union[str, Path]] = None,
        validity_days: Optional[int] = None,
        key_size: Optional[int] = None,
    ) -> ProvisioningResult:
        """
        Issue a single certificate without consulting the directory.

        Raises:
            LoadError: The CA could not be loaded
            ProvisioningError: Issuance, persistence or verification failed
        """
        if output_path is None:
            output_path = self.settings.ensure_output_dir() / output_name(common_name)

        if validity_days is None:
            validity_days = self.settings.cert_validity_days
        if key_size is None:
            key_size = self.settings.cert_key_size

        subject = SubjectDescriptor(
            common_name=common_name,
            emails=tuple(emails),
            validity_days=validity_days,
            key_size=key_size,
            output_path=Path(output_path),
        )
        return self.provisioner().provision(subject)

    def verify_certificate(self, cert_path: Union[str, Path]) -> x509.Certificate:
        """Check a persisted certificate against the CA certificate (the CA key is not needed)."""
        ca_cert = load_ca_certificate(self.settings.ca_cert_path)
        return verify_file(cert_path, ca_cert, self.log)
