"""APK signing task (JAR signature scheme).

Writes the three META-INF entries:

    MANIFEST.MF  SHA-256 digest of every entry
    CERT.SF      digest of the whole manifest, of its main attributes and
                 of every per-entry section
    CERT.RSA     PKCS#7 detached SignedData over CERT.SF

Every other entry is then copied through unchanged. The key pair and the
self-signed certificate are generated fresh for each build.
"""

import base64
import datetime
import hashlib
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding, pkcs7
from cryptography.x509.oid import NameOID

from pocketbuild import __version__
from pocketbuild.build.context import SIGNED_APK, UNSIGNED_APK, BuildSession
from pocketbuild.build.errors import BuildError, BuildPhase
from pocketbuild.build.tasks.base import Task

MANIFEST_NAME = "META-INF/MANIFEST.MF"
SIGNATURE_FILE_NAME = "META-INF/CERT.SF"
SIGNATURE_BLOCK_NAME = "META-INF/CERT.RSA"
CREATED_BY = f"PocketBuild {__version__}"
KEY_SIZE = 2048
CERT_VALIDITY_DAYS = 365 * 30

# JAR manifest lines are limited to 72 bytes, continued with a leading space
MAX_LINE_BYTES = 72


def b64_sha256(data: bytes) -> str:
    return base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")


def manifest_line(key: str, value: str) -> bytes:
    """Encode one ``key: value`` header, wrapping at 72 bytes."""
    raw = f"{key}: {value}".encode("utf-8")
    lines = [raw[:MAX_LINE_BYTES]]
    raw = raw[MAX_LINE_BYTES:]
    while raw:
        lines.append(b" " + raw[: MAX_LINE_BYTES - 1])
        raw = raw[MAX_LINE_BYTES - 1:]
    return b"".join(line + b"\r\n" for line in lines)


def is_signature_entry(name: str) -> bool:
    return name.upper().startswith("META-INF/")


@dataclass
class SigningIdentity:
    """Key pair and certificate used for one signature."""

    private_key: rsa.RSAPrivateKey
    certificate: x509.Certificate

    @classmethod
    def generate(cls, common_name: str = "Android Debug") -> "SigningIdentity":
        key = rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)
        subject = x509.Name(
            [
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Android"),
                x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
            ]
        )
        now = datetime.datetime.now(datetime.timezone.utc)
        certificate = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(days=1))
            .not_valid_after(now + datetime.timedelta(days=CERT_VALIDITY_DAYS))
            .sign(key, hashes.SHA256())
        )
        return cls(private_key=key, certificate=certificate)


def build_manifest(apk: zipfile.ZipFile) -> Tuple[bytes, bytes, List[Tuple[str, bytes]]]:
    """Build MANIFEST.MF for every non-metadata file entry.

    Returns:
        Tuple of (manifest bytes, main attributes section, [(name, section)])
    """
    main = manifest_line("Manifest-Version", "1.0") + manifest_line("Created-By", CREATED_BY)
    main += b"\r\n"

    sections = []
    for info in apk.infolist():
        if info.is_dir() or is_signature_entry(info.filename):
            continue
        section = manifest_line("Name", info.filename)
        section += manifest_line("SHA-256-Digest", b64_sha256(apk.read(info.filename)))
        section += b"\r\n"
        sections.append((info.filename, section))

    manifest = main + b"".join(section for _, section in sections)
    return manifest, main, sections


def build_signature_file(manifest: bytes, main: bytes, sections: List[Tuple[str, bytes]]) -> bytes:
    """Build CERT.SF from the manifest and its sections."""
    data = manifest_line("Signature-Version", "1.0")
    data += manifest_line("Created-By", CREATED_BY)
    data += manifest_line("SHA-256-Digest-Manifest", b64_sha256(manifest))
    data += manifest_line("SHA-256-Digest-Manifest-Main-Attributes", b64_sha256(main))
    data += b"\r\n"
    for name, section in sections:
        data += manifest_line("Name", name)
        data += manifest_line("SHA-256-Digest", b64_sha256(section))
        data += b"\r\n"
    return data


def build_signature_block(signature_file: bytes, identity: SigningIdentity) -> bytes:
    """Sign CERT.SF, returning a DER-encoded detached PKCS#7 SignedData."""
    return (
        pkcs7.PKCS7SignatureBuilder()
        .set_data(signature_file)
        .add_signer(identity.certificate, identity.private_key, hashes.SHA256())
        .sign(
            Encoding.DER,
            [
                pkcs7.PKCS7Options.DetachedSignature,
                pkcs7.PKCS7Options.Binary,
                pkcs7.PKCS7Options.NoCapabilities,
            ],
        )
    )


def sign_apk(unsigned: Path, output: Path, identity: SigningIdentity) -> int:
    """Write a signed copy of ``unsigned`` to ``output``.

    Returns:
        Number of entries covered by the signature
    """
    output.parent.mkdir(parents=True, exist_ok=True)
    tmp_output = output.with_name(output.name + ".tmp")

    with zipfile.ZipFile(unsigned) as source:
        manifest, main, sections = build_manifest(source)
        signature_file = build_signature_file(manifest, main, sections)
        signature_block = build_signature_block(signature_file, identity)

        with zipfile.ZipFile(tmp_output, "w", zipfile.ZIP_DEFLATED) as target:
            target.writestr(MANIFEST_NAME, manifest)
            target.writestr(SIGNATURE_FILE_NAME, signature_file)
            target.writestr(SIGNATURE_BLOCK_NAME, signature_block)
            for info in source.infolist():
                if is_signature_entry(info.filename):
                    continue
                target.writestr(info, source.read(info.filename), compress_type=info.compress_type)

    tmp_output.replace(output)
    return len(sections)


class SignTask(Task):
    """Sign the packaged APK and write it to the final output path."""

    name = "Sign APK"
    phase = BuildPhase.SIGNING

    def execute(self, session: BuildSession) -> bool:
        unsigned = Path(session.get(UNSIGNED_APK, default=session.unsigned_apk))
        if not unsigned.is_file():
            raise BuildError(self.phase, f"Unsigned APK not found: {unsigned}")

        output = session.config.output_apk
        self.report_progress(session, 10, "Generating signing key")
        identity = SigningIdentity.generate()
        session.check_cancelled(self.phase)

        self.report_progress(session, 40, "Signing")
        try:
            count = sign_apk(unsigned, output, identity)
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            tmp_output = output.with_name(output.name + ".tmp")
            if tmp_output.exists():
                tmp_output.unlink()
            raise BuildError(self.phase, f"Signing failed: {e}", cause=e)

        session.log(f"Signed {count} entries -> {output}")
        session.put(SIGNED_APK, output)
        self.report_progress(session, 100, "Signed")
        return True

