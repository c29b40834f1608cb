# SPDX-License-Identifier: Apache-2.0
# Copyright (C) 2024-2026 The Birthmark Standard Foundation

"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from ldapki.certificates import load_ca
from ldapki.config import Settings


CA_PASSPHRASE = "correct horse battery staple"
CA_DNS_NAMES = ("ca.example.org", "pki.example.org")


def generate_ca(
    common_name: str = "Example Intermediate CA",
    key=None,
    dns_names=CA_DNS_NAMES,
):
    """Build a CA certificate with a fully populated subject."""
    if key is None:
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    subject = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "RU"),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, "Moscow"),
        x509.NameAttribute(NameOID.LOCALITY_NAME, "Moscow"),
        x509.NameAttribute(NameOID.STREET_ADDRESS, "1 Example Street"),
        x509.NameAttribute(NameOID.POSTAL_CODE, "101000"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Org"),
        x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "IT Department"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])

    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=1825))
        .add_extension(
            x509.BasicConstraints(ca=True, path_length=0),
            critical=True,
        )
    )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in dns_names]),
            critical=False,
        )

    return builder.sign(key, hashes.SHA256()), key


def write_ca_files(directory, cert, key, passphrase=CA_PASSPHRASE, key_format=None):
    """Write CA certificate and key PEM files, returning their paths."""
    cert_path = directory / "intermediate-ca.crt"
    key_path = directory / "intermediate-ca.key"

    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))

    encryption = (
        serialization.BestAvailableEncryption(passphrase.encode())
        if passphrase
        else serialization.NoEncryption()
    )
    key_path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=key_format or serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )
    )
    return cert_path, key_path


@pytest.fixture(scope="session")
def ca_material():
    """CA certificate and RSA key, generated once per test session."""
    return generate_ca()


@pytest.fixture
def ca_cert(ca_material):
    return ca_material[0]


@pytest.fixture
def ca_key(ca_material):
    return ca_material[1]


@pytest.fixture
def ca_files(tmp_path, ca_cert, ca_key):
    """CA certificate and encrypted PKCS#8 key on disk."""
    ca_dir = tmp_path / "ca"
    ca_dir.mkdir()
    return write_ca_files(ca_dir, ca_cert, ca_key)


@pytest.fixture
def ca(ca_files):
    """Loaded CertificateAuthority."""
    cert_path, key_path = ca_files
    return load_ca(cert_path, key_path, CA_PASSPHRASE)


@pytest.fixture
def out_dir(tmp_path):
    path = tmp_path / "certs"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path, ca_files, monkeypatch):
    """Settings pointing at the test CA; isolated from any .env in the cwd."""
    monkeypatch.chdir(tmp_path)
    cert_path, key_path = ca_files
    return Settings(
        ca_cert_path=cert_path,
        ca_key_path=key_path,
        ca_password=CA_PASSPHRASE,
        cert_validity_days=365,
        cert_key_size=2048,
        user_cert_save_to_path=tmp_path / "issued",
    )
