# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
Directory lookup for ldapki.
"""

from .ldap import (
    LDAPDirectory,
    LDAPUser,
    output_name,
    subjects_from_users,
    user_from_entry,
)

__all__ = [
    "LDAPDirectory",
    "LDAPUser",
    "output_name",
    "subjects_from_users",
    "user_from_entry",
]
