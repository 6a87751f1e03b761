"""TLS material resolution: promote ACME certificates or synthesize snakeoil."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from siteforge_common import CertificateOutcome, ChallengeType
from siteforge_common.constants import SNAKEOIL_VALIDITY_DAYS

from siteforge.services.fsutil import atomic_write

log = logging.getLogger(__name__)

CERT_FILENAME = "fullchain.pem"
KEY_FILENAME = "key.pem"

_ACME_CERT_NAMES = ("fullchain.pem", "fullchain.cer")
_ACME_KEY_NAMES = ("key.pem", "privkey.pem", "{domain}.key")


def _load_cert(path: Path) -> x509.Certificate | None:
    try:
        return x509.load_pem_x509_certificate(path.read_bytes())
    except (OSError, ValueError) as exc:
        log.warning("Failed to read certificate %s: %s", path, exc)
        return None


def _key_matches(cert: x509.Certificate, key_path: Path) -> bool:
    try:
        key = serialization.load_pem_private_key(key_path.read_bytes(), password=None)
    except (OSError, ValueError, TypeError) as exc:
        log.warning("Failed to read key %s: %s", key_path, exc)
        return False
    spki = serialization.PublicFormat.SubjectPublicKeyInfo
    return key.public_key().public_bytes(serialization.Encoding.DER, spki) == cert.public_key().public_bytes(
        serialization.Encoding.DER, spki
    )


def _common_name(name: x509.Name) -> str | None:
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attrs[0].value) if attrs else None


def is_self_signed_for(cert: x509.Certificate, domain: str) -> bool:
    """A certificate whose issuer CN is the domain itself is a local snakeoil."""
    return _common_name(cert.issuer) == domain


class CertificateResolver:
    """Locate, promote or synthesize the certificate NGINX serves for a domain."""

    def __init__(self, cert_dir: Path, acme_dir: Path):
        self.cert_dir = cert_dir
        self.acme_dir = acme_dir

    def cert_path(self, domain: str) -> Path:
        return self.cert_dir / domain / CERT_FILENAME

    def key_path(self, domain: str) -> Path:
        return self.cert_dir / domain / KEY_FILENAME

    def _acme_material(self, domain: str) -> tuple[Path, Path] | None:
        for base in (self.acme_dir / domain, self.acme_dir / domain / f"{domain}_ecc"):
            cert = next((base / n for n in _ACME_CERT_NAMES if (base / n).is_file()), None)
            key = next(
                (base / n.format(domain=domain) for n in _ACME_KEY_NAMES
                 if (base / n.format(domain=domain)).is_file()),
                None,
            )
            if cert and key:
                return cert, key
        return None

    def _live_cert(self, domain: str) -> x509.Certificate | None:
        cert_path = self.cert_path(domain)
        key_path = self.key_path(domain)
        # A symlink left behind by an older layout is not trusted as live.
        if cert_path.is_symlink() or not cert_path.is_file() or not key_path.is_file():
            return None
        cert = _load_cert(cert_path)
        if cert is None or not _key_matches(cert, key_path):
            return None
        return cert

    def resolve(self, domain: str, challenge_type: ChallengeType | str = ChallengeType.HTTP_01) -> CertificateOutcome:
        challenge_type = ChallengeType(challenge_type)

        if challenge_type is not ChallengeType.SNAKEOIL:
            promoted = self._promote_acme(domain)
            if promoted is not None:
                return promoted

        live = self._live_cert(domain)
        if live is not None:
            return CertificateOutcome(
                ok=True,
                cert_path=self.cert_path(domain),
                key_path=self.key_path(domain),
                synthesized=is_self_signed_for(live, domain),
            )

        return self._synthesize(domain)

    def _install_pair(self, domain: str, cert_pem: bytes, key_pem: bytes) -> None:
        """Replace the live key and cert together.

        If the cert cannot be written the previous key is put back, so the
        live pair always matches. Raises the original ``OSError``.
        """
        key_path = self.key_path(domain)
        previous_key = key_path.read_bytes() if key_path.is_file() and not key_path.is_symlink() else None
        atomic_write(key_path, key_pem, mode=0o600)
        try:
            atomic_write(self.cert_path(domain), cert_pem, mode=0o644)
        except OSError:
            try:
                if previous_key is None:
                    key_path.unlink(missing_ok=True)
                else:
                    atomic_write(key_path, previous_key, mode=0o600)
            except OSError as exc:
                log.error("Failed to roll back key for %s: %s", domain, exc)
            raise

    def _promote_acme(self, domain: str) -> CertificateOutcome | None:
        material = self._acme_material(domain)
        if material is None:
            return None
        acme_cert, acme_key = material
        cert = _load_cert(acme_cert)
        if cert is None or is_self_signed_for(cert, domain):
            return None
        try:
            self._install_pair(domain, acme_cert.read_bytes(), acme_key.read_bytes())
        except OSError as exc:
            log.warning("Failed to promote ACME certificate for %s: %s", domain, exc)
            return None
        log.info("Promoted ACME certificate for %s (issuer %s)", domain, _common_name(cert.issuer))
        return CertificateOutcome(
            ok=True,
            cert_path=self.cert_path(domain),
            key_path=self.key_path(domain),
            promoted=True,
        )

    def _synthesize(self, domain: str) -> CertificateOutcome:
        log.info("Certificate missing for %s, generating snakeoil", domain)
        cert_pem, key_pem = generate_snakeoil(domain)
        try:
            self._install_pair(domain, cert_pem, key_pem)
        except OSError as exc:
            log.warning("Failed to generate snakeoil cert for %s: %s", domain, exc)
            return CertificateOutcome(ok=False, error=f"snakeoil synthesis failed: {exc}")
        return CertificateOutcome(
            ok=True,
            cert_path=self.cert_path(domain),
            key_path=self.key_path(domain),
            synthesized=True,
        )

    def describe(self, domain: str) -> dict[str, str | int | bool | None]:
        """Issuer/expiry summary of the live certificate for status output."""
        cert = self._live_cert(domain)
        if cert is None:
            return {"domain": domain, "issuer": None, "expiry": None, "days_remaining": None, "self_signed": None}
        expiry = cert.not_valid_after_utc
        return {
            "domain": domain,
            "issuer": _common_name(cert.issuer),
            "expiry": expiry.isoformat(),
            "days_remaining": (expiry - datetime.now(timezone.utc)).days,
            "self_signed": is_self_signed_for(cert, domain),
        }

    def list_domains(self) -> list[str]:
        if not self.cert_dir.is_dir():
            return []
        return sorted(p.name for p in self.cert_dir.iterdir() if p.is_dir())


def generate_snakeoil(domain: str, *, days: int = SNAKEOIL_VALIDITY_DAYS) -> tuple[bytes, bytes]:
    """Return (cert_pem, key_pem) for a self-signed RSA-2048 certificate."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(domain)]), critical=False)
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert.public_bytes(serialization.Encoding.PEM), key_pem
