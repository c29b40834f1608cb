# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""
LDAP user lookup.

Binds to the directory, searches the configured subtree and maps the
entries to LDAPUser records, then to SubjectDescriptors for issuance.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from ldap3 import SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException

from ..certificates.builder import SubjectDescriptor
from ..errors import DirectoryError

logger = logging.getLogger(__name__)

USER_ATTRIBUTES = [
    "cn",
    "uid",
    "mail",
    "givenName",
    "sn",
    "displayName",
    "sAMAccountName",
]

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._@-]+")


@dataclass
class LDAPUser:
    """User entry as stored in the directory."""

    dn: str
    cn: str = ""
    uid: str = ""
    mail: list[str] = field(default_factory=list)
    given_name: str = ""
    surname: str = ""
    display_name: str = ""
    sam_account_name: str = ""

    @property
    def common_name(self) -> str:
        """Name to certify: cn, else uid, else sAMAccountName."""
        return self.cn or self.uid or self.sam_account_name


def _values(attributes: dict, name: str) -> list[str]:
    value = attributes.get(name)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v not in (None, b"", "")]
    return [str(value)] if value != "" else []


def _first(attributes: dict, name: str) -> str:
    values = _values(attributes, name)
    return values[0] if values else ""


def user_from_entry(dn: str, attributes: dict) -> LDAPUser:
    """Map raw search result attributes to an LDAPUser."""
    return LDAPUser(
        dn=dn,
        cn=_first(attributes, "cn"),
        uid=_first(attributes, "uid"),
        mail=_values(attributes, "mail"),
        given_name=_first(attributes, "givenName"),
        surname=_first(attributes, "sn"),
        display_name=_first(attributes, "displayName"),
        sam_account_name=_first(attributes, "sAMAccountName"),
    )


class LDAPDirectory:
    """Read-only view of the users in an LDAP directory."""

    def __init__(
        self,
        url: str,
        bind_dn: str,
        password: str,
        base_dn: str,
        search_filter: str,
        log: Optional[logging.Logger] = None,
        connection_factory: Optional[Callable[[], Connection]] = None,
    ):
        """
        Args:
            url: Directory URL, e.g. ldap://ldap.example.org:389
            bind_dn: DN to bind as
            password: Bind password
            base_dn: Search base
            search_filter: LDAP filter selecting user entries
            log: Logger (module logger by default)
            connection_factory: Returns an unbound ldap3 Connection;
                defaults to a synchronous connection to url
        """
        self.url = url
        self.bind_dn = bind_dn
        self._password = password
        self.base_dn = base_dn
        self.search_filter = search_filter
        self.log = log or logger
        self._connection_factory = connection_factory or self._default_connection

    def _default_connection(self) -> Connection:
        return Connection(Server(self.url), user=self.bind_dn, password=self._password)

    def fetch_users(self) -> list[LDAPUser]:
        """
        Bind and return every user entry matching the filter.

        Raises:
            DirectoryError: If binding or searching fails
        """
        try:
            conn = self._connection_factory()
        except LDAPException as e:
            raise DirectoryError(f"Failed to connect to {self.url}: {e}", stage="directory") from e

        try:
            try:
                bound = conn.bind()
            except LDAPException as e:
                raise DirectoryError(f"Failed to connect to {self.url}: {e}", stage="directory") from e
            if not bound:
                raise DirectoryError(
                    f"LDAP bind as {self.bind_dn} failed: {conn.result.get('description', 'unknown error')}",
                    stage="directory",
                )

            try:
                conn.search(
                    search_base=self.base_dn,
                    search_filter=self.search_filter,
                    search_scope=SUBTREE,
                    attributes=USER_ATTRIBUTES,
                )
            except LDAPException as e:
                raise DirectoryError(f"LDAP search failed: {e}", stage="directory") from e

            users = []
            for entry in conn.response or []:
                if entry.get("type") != "searchResEntry":
                    continue
                user = user_from_entry(entry["dn"], entry.get("attributes", {}))
                self.log.debug(f"Found LDAP user: {user.dn}")
                users.append(user)
        finally:
            try:
                conn.unbind()
            except LDAPException as e:
                self.log.error(f"Error closing LDAP connection: {e}")

        self.log.info(f"Found {len(users)} users under {self.base_dn}")
        return users


def output_name(common_name: str) -> str:
    """Filesystem-safe base name derived from a common name."""
    name = UNSAFE_FILENAME_CHARS.sub("_", common_name.strip()).strip("._")
    return name or "user"


def subjects_from_users(
    users: Iterable[LDAPUser],
    validity_days: int,
    key_size: int,
    output_dir: Path,
    log: Optional[logging.Logger] = None,
) -> list[SubjectDescriptor]:
    """
    Build subject descriptors for directory users.

    Users without cn, uid or sAMAccountName are skipped with a warning, as
    are users whose output file name is already taken by an earlier entry.
    """
    log = log or logger
    output_dir = Path(output_dir)

    subjects = []
    taken: set[str] = set()
    for user in users:
        common_name = user.common_name.strip()
        if not common_name:
            log.warning(f"Skipping {user.dn}: no cn, uid or sAMAccountName")
            continue

        base_name = output_name(common_name)
        if base_name.lower() in taken:
            log.warning(f"Skipping {user.dn}: output name {base_name!r} already used")
            continue
        taken.add(base_name.lower())

        subjects.append(
            SubjectDescriptor(
                common_name=common_name,
                emails=tuple(user.mail),
                validity_days=validity_days,
                key_size=key_size,
                output_path=output_dir / base_name,
            )
        )
    return subjects
