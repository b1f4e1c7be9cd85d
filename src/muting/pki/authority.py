"""
Self-issued certificate authority.

The root is regenerated on every start and never persisted. Its certificate
is the CA bundle handed to the API server, and its key signs the serving
identity.
"""

import logging
from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from muting.constants import (
    CERTIFICATE_SERIAL,
    CERTIFICATE_VALIDITY_DAYS,
    ORGANIZATION,
    ROOT_FILENAMES,
    ROOT_KEY_SIZE,
)
from muting.errors import CryptoFailure

from .keymaterial import KeyMaterial, build_key_material

logger = logging.getLogger(__name__)


def generate_key(key_size: int) -> rsa.RSAPrivateKey:
    """
    Generate an RSA private key.

    Args:
        key_size: Modulus width in bits

    Returns:
        New private key

    Raises:
        CryptoFailure: If key generation fails
    """
    try:
        return rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    except (ValueError, TypeError) as e:
        raise CryptoFailure(f"Unable to generate rsa key: {e}", cause=e) from e


def issue_root(
    key_size: int = ROOT_KEY_SIZE, now: datetime | None = None
) -> KeyMaterial:
    """
    Generate a self-signed root key and certificate.

    The certificate uses a fixed serial, is valid for one year from issuance,
    may sign certificates, and covers both client and server authentication.

    Args:
        key_size: RSA modulus width, at least 4096 bits
        now: Issuance time (defaults to the current time)

    Returns:
        Root KeyMaterial

    Raises:
        CryptoFailure: If the key size is too weak, or generation or
            encoding fails
    """
    if key_size < ROOT_KEY_SIZE:
        raise CryptoFailure(
            f"Root key size {key_size} is below the minimum of {ROOT_KEY_SIZE} bits"
        )

    key = generate_key(key_size)
    issued_at = now or datetime.now(UTC)
    name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION)])

    builder = (
        x509.CertificateBuilder()
        .serial_number(CERTIFICATE_SERIAL)
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .not_valid_before(issued_at)
        .not_valid_after(issued_at + timedelta(days=CERTIFICATE_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage(
                [ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]
            ),
            critical=False,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
            critical=False,
        )
    )

    try:
        certificate = builder.sign(private_key=key, algorithm=hashes.SHA256())
    except (ValueError, TypeError) as e:
        raise CryptoFailure(f"Unable to create certificate: {e}", cause=e) from e

    logger.debug(
        f"Issued root certificate valid until {certificate.not_valid_after_utc.isoformat()}"
    )
    return build_key_material(key, certificate, ROOT_FILENAMES)
