"""
Key material containers shared by the certificate authority and issuer.

Both the root and the leaf are exposed as raw PEM bytes retrievable by
role, which is the only contract the server and the registrar rely on.
"""

from dataclasses import dataclass, field

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from muting.constants import PEM_ROLE_CERTIFICATE, PEM_ROLE_KEY
from muting.errors import CryptoFailure


@dataclass(frozen=True)
class PEMStore:
    """A PEM-encoded blob and the filename it conventionally lives under."""

    filename: str
    data: bytes


@dataclass
class KeyMaterial:
    """An RSA private key with its X.509 certificate and their PEM forms."""

    key: rsa.RSAPrivateKey
    certificate: x509.Certificate
    pems: dict[str, PEMStore] = field(default_factory=dict)

    def get_pem(self, role: str) -> bytes:
        """
        Get PEM bytes for a role.

        Args:
            role: Either ``"key"`` or ``"certificate"``

        Returns:
            PEM-encoded bytes

        Raises:
            KeyError: If the role is unknown
        """
        if role not in (PEM_ROLE_KEY, PEM_ROLE_CERTIFICATE):
            raise KeyError(f"Unknown PEM role: {role}")
        return self.pems[role].data

    @property
    def key_pem(self) -> bytes:
        return self.get_pem(PEM_ROLE_KEY)

    @property
    def certificate_pem(self) -> bytes:
        return self.get_pem(PEM_ROLE_CERTIFICATE)


def encode_key(key: rsa.RSAPrivateKey) -> bytes:
    """Encode a private key as unencrypted PKCS#1 PEM."""
    try:
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    except (ValueError, TypeError) as e:
        raise CryptoFailure(f"Unable to PEM encode private key: {e}", cause=e) from e


def encode_certificate(certificate: x509.Certificate) -> bytes:
    """Encode a certificate as PEM."""
    try:
        return certificate.public_bytes(serialization.Encoding.PEM)
    except (ValueError, TypeError) as e:
        raise CryptoFailure(f"Unable to PEM encode certificate: {e}", cause=e) from e


def build_key_material(
    key: rsa.RSAPrivateKey,
    certificate: x509.Certificate,
    filenames: dict[str, str],
) -> KeyMaterial:
    """
    Bundle a key and certificate with their PEM encodings.

    Args:
        key: Private key
        certificate: Certificate for the key's public half
        filenames: Conventional filename per role

    Returns:
        KeyMaterial exposing both roles
    """
    return KeyMaterial(
        key=key,
        certificate=certificate,
        pems={
            PEM_ROLE_KEY: PEMStore(filenames[PEM_ROLE_KEY], encode_key(key)),
            PEM_ROLE_CERTIFICATE: PEMStore(
                filenames[PEM_ROLE_CERTIFICATE], encode_certificate(certificate)
            ),
        },
    )
