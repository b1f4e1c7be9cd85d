"""
Serving identity issued by the self-issued certificate authority.

The leaf certificate binds the names the API server uses to reach the
webhook, either the in-cluster Service names or an external host.
"""

import hashlib
import logging
from dataclasses import dataclass, field

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from muting.constants import (
    CERTIFICATE_SERIAL,
    ERROR_INVALID_DNS_NAME,
    LEAF_FILENAMES,
    LEAF_KEY_SIZE,
    ORGANIZATION,
)
from muting.errors import ConfigurationError, CryptoFailure

from .authority import generate_key, issue_root
from .keymaterial import KeyMaterial, build_key_material

logger = logging.getLogger(__name__)


def _is_dns_name(name: str) -> bool:
    if not name or name != name.strip():
        return False
    if any(ch.isspace() for ch in name):
        return False
    # No scheme, port or path
    return not any(ch in name for ch in ":/@")


@dataclass(frozen=True)
class IdentityProfile:
    """Subject common name and DNS alternate names for the leaf certificate."""

    common_name: str
    dns_names: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.common_name and not self.dns_names:
            raise ConfigurationError("Identity profile requires at least one name")
        names = [*self.dns_names]
        if self.common_name:
            names.append(self.common_name)
        for name in names:
            if not _is_dns_name(name):
                raise ConfigurationError(ERROR_INVALID_DNS_NAME.format(name))

    @classmethod
    def for_service(cls, service: str, namespace: str) -> "IdentityProfile":
        """Names under which the in-cluster Service is reachable."""
        return cls(
            common_name=f"{service}.{namespace}.svc",
            dns_names=(
                service,
                f"{service}.{namespace}",
                f"{service}.{namespace}.svc",
            ),
        )

    @classmethod
    def for_host(cls, host: str) -> "IdentityProfile":
        return cls(common_name=host, dns_names=(host,))

    @classmethod
    def derive(cls, service: str, namespace: str, host: str = "") -> "IdentityProfile":
        """
        Derive the profile from the deployment identifiers.

        Args:
            service: Service name
            namespace: Service namespace
            host: External host; when set it replaces the service names

        Returns:
            Identity profile
        """
        if host:
            return cls.for_host(host)
        return cls.for_service(service, namespace)

    def __str__(self) -> str:
        lines = [f"Common Name: {self.common_name or '-'}"]
        lines.extend(f"DNS Name: {name}" for name in self.dns_names)
        return "\n".join(lines)


def subject_key_id(key: rsa.RSAPrivateKey) -> bytes:
    """SHA-1 digest of the PKCS#1 DER encoding of the public key."""
    der = key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.PKCS1,
    )
    return hashlib.sha1(der).digest()


def issue_leaf(
    root: KeyMaterial,
    profile: IdentityProfile,
    key_size: int = LEAF_KEY_SIZE,
) -> KeyMaterial:
    """
    Issue a serving key and certificate signed by the root.

    The leaf may only sign (no certificate authority), and its validity
    window matches the root's so that it never outlives it.

    Args:
        root: Root key material from ``issue_root``
        profile: Names the certificate must assert
        key_size: RSA modulus width for the leaf key

    Returns:
        Leaf KeyMaterial

    Raises:
        CryptoFailure: If key generation, signing or encoding fails
    """
    key = generate_key(key_size)

    attributes = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION)]
    if profile.common_name:
        attributes.insert(0, x509.NameAttribute(NameOID.COMMON_NAME, profile.common_name))
    subject = x509.Name(attributes)
    dns_names = list(dict.fromkeys(profile.dns_names or (profile.common_name,)))

    builder = (
        x509.CertificateBuilder()
        .serial_number(CERTIFICATE_SERIAL)
        .subject_name(subject)
        .issuer_name(root.certificate.subject)
        .public_key(key.public_key())
        .not_valid_before(root.certificate.not_valid_before_utc)
        .not_valid_after(root.certificate.not_valid_after_utc)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
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
            x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]),
            critical=False,
        )
        .add_extension(x509.SubjectKeyIdentifier(subject_key_id(key)), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(root.key.public_key()),
            critical=False,
        )
    )

    try:
        certificate = builder.sign(private_key=root.key, algorithm=hashes.SHA256())
    except (ValueError, TypeError) as e:
        raise CryptoFailure(f"Unable to sign leaf certificate: {e}", cause=e) from e

    logger.debug(f"Issued leaf certificate for {profile.common_name}")
    return build_key_material(key, certificate, LEAF_FILENAMES)


@dataclass
class TLSBundle:
    """Root and leaf issued together for one process lifetime."""

    ca: KeyMaterial
    keypair: KeyMaterial
    profile: IdentityProfile


def issue_tls(profile: IdentityProfile) -> TLSBundle:
    """
    Issue a fresh root and a leaf bound to ``profile``.

    Raises:
        CryptoFailure: If either issuance fails
    """
    ca = issue_root()
    keypair = issue_leaf(ca, profile)
    return TLSBundle(ca=ca, keypair=keypair, profile=profile)
