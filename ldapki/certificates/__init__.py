# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
ldapki certificate pipeline

CA loading, user certificate issuance, persistence and verification.
"""

from .keys import (
    KEY_FAMILIES,
    KeyFamily,
    RSAKeyFamily,
    key_family_for,
)

from .authority import (
    CertificateAuthority,
    load_ca,
    load_ca_certificate,
    load_ca_private_key,
)

from .builder import (
    IssuedCertificate,
    SubjectDescriptor,
    UserCertificateBuilder,
    issue,
)

from .storage import (
    CERT_FILE_MODE,
    KEY_FILE_MODE,
    KeyFormat,
    StagedArtifacts,
    encode_private_key,
    persist,
    stage,
)

from .validator import (
    verify,
    verify_file,
)

from .provisioner import (
    ProvisioningResult,
    UserProvisioner,
)

__all__ = [
    # Key families
    "KEY_FAMILIES",
    "KeyFamily",
    "RSAKeyFamily",
    "key_family_for",
    # CA loading
    "CertificateAuthority",
    "load_ca",
    "load_ca_certificate",
    "load_ca_private_key",
    # Issuance
    "IssuedCertificate",
    "SubjectDescriptor",
    "UserCertificateBuilder",
    "issue",
    # Persistence
    "CERT_FILE_MODE",
    "KEY_FILE_MODE",
    "KeyFormat",
    "StagedArtifacts",
    "encode_private_key",
    "persist",
    "stage",
    # Verification
    "verify",
    "verify_file",
    # Provisioning
    "ProvisioningResult",
    "UserProvisioner",
]
