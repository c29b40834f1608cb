# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
Key family capabilities.

The issuance pipeline only needs "a private key able to sign a certificate"
and "a public key able to check a signature". Each supported algorithm
family implements that capability once; the rest of the code never
branches on concrete key classes.
"""

from abc import ABC, abstractmethod
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..errors import KeyGenError, KeyTypeError


class KeyFamily(ABC):
    """Signing capability for one public key algorithm family."""

    name: str = ""

    @abstractmethod
    def matches(self, key) -> bool:
        """Return True if the private or public key belongs to this family."""

    @abstractmethod
    def generate(self, key_size: int):
        """Generate a fresh private key."""

    @abstractmethod
    def signature_hash(self) -> hashes.HashAlgorithm:
        """Hash algorithm used when this family signs certificates."""

    @abstractmethod
    def verify(
        self,
        public_key,
        signature: bytes,
        data: bytes,
        hash_algorithm: hashes.HashAlgorithm,
    ) -> bool:
        """Check a signature. Returns False if it does not validate."""


class RSAKeyFamily(KeyFamily):
    """RSA keys, SHA-256 with PKCS#1 v1.5 signatures."""

    name = "RSA"
    public_exponent = 65537

    def matches(self, key) -> bool:
        return isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey))

    def generate(self, key_size: int) -> rsa.RSAPrivateKey:
        try:
            return rsa.generate_private_key(
                public_exponent=self.public_exponent,
                key_size=key_size,
            )
        except (ValueError, TypeError) as e:
            raise KeyGenError(f"Failed to generate {key_size}-bit RSA key: {e}") from e

    def signature_hash(self) -> hashes.HashAlgorithm:
        return hashes.SHA256()

    def verify(self, public_key, signature, data, hash_algorithm) -> bool:
        try:
            public_key.verify(signature, data, padding.PKCS1v15(), hash_algorithm)
            return True
        except InvalidSignature:
            return False


# Registered families, checked in order
KEY_FAMILIES: list[KeyFamily] = [RSAKeyFamily()]


def key_family_for(key, stage: Optional[str] = None) -> KeyFamily:
    """
    Find the family a key belongs to.

    Raises:
        KeyTypeError: If no registered family supports the key
    """
    for family in KEY_FAMILIES:
        if family.matches(key):
            return family

    supported = ", ".join(family.name for family in KEY_FAMILIES)
    raise KeyTypeError(
        f"Unsupported key type {type(key).__name__} (supported: {supported})",
        stage=stage,
    )
