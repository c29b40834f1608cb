# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
Exception hierarchy for ldapki.

Every error can carry the pipeline stage that failed and the subject
(common name) being processed. Messages never contain passphrases or
key material.
"""

from typing import Optional


class PKIError(Exception):
    """Base class for all ldapki errors."""

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        subject: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.subject = subject

    def __str__(self) -> str:
        prefix = ""
        if self.stage:
            prefix += f"[{self.stage}] "
        if self.subject:
            prefix += f"{self.subject}: "
        return f"{prefix}{self.message}"


class ConfigError(PKIError):
    """Configuration missing or invalid."""


# CA loading

class LoadError(PKIError):
    """CA certificate or key could not be loaded."""


class FileAccessError(LoadError):
    """File not found or unreadable."""


class FormatError(LoadError):
    """Malformed PEM, or PEM block of an unexpected type."""


class UnsupportedFormatError(LoadError):
    """Legacy (non PKCS#8) private key encoding."""


class DecryptionError(LoadError):
    """Private key could not be decrypted (wrong passphrase or corrupt data)."""


class KeyTypeError(LoadError):
    """Private key belongs to an unsupported algorithm family."""


# Issuance

class IssueError(PKIError):
    """Certificate could not be issued."""


class InvalidSubjectError(IssueError):
    """Subject descriptor is incomplete or has invalid values."""


class InvalidValidityError(IssueError):
    """Validity period is not a positive number of days."""


class KeyGenError(IssueError):
    """Key pair generation failed."""


class SigningError(IssueError):
    """Certificate signing failed."""


# Persistence

class PersistError(PKIError):
    """Issued certificate or key could not be written."""


# Verification

class VerifyError(PKIError):
    """Issued certificate failed verification."""


class ParseError(VerifyError):
    """Certificate bytes could not be parsed."""


class SignatureVerificationError(VerifyError):
    """Certificate signature does not validate against the CA."""


# Collaborators

class DirectoryError(PKIError):
    """Directory bind or search failed."""


class ProvisioningError(PKIError):
    """A per-subject pipeline run failed; the cause is chained."""
