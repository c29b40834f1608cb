# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
ldapki - user certificates for directory identities

Issues client/server authentication certificates, signed by an
intermediate CA, for users found in an LDAP directory.

Modules:
    certificates: CA loading, issuance, persistence, verification
    directory: LDAP user lookup
    config: Settings (YAML file + environment)
    app: Batch run over directory users
"""

__version__ = "0.1.0"
__author__ = "The Birthmark Standard Foundation"

from .errors import PKIError

__all__ = ["PKIError", "__version__"]
