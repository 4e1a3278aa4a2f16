# vtl-backend/credentials/signing.py
"""
Ed25519 signing of canonical credential documents.

canonical_json: sorted keys, compact separators, UTF-8
payload_hash:   sha256(canonical_json).hexdigest()
signature:      Ed25519 over the 32 raw bytes of payload_hash
"""
from dataclasses import dataclass
from typing import Any
import hashlib
import json
import logging

from django.conf import settings
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from core.exceptions import IssuanceUnavailable

logger = logging.getLogger("vtl.credentials")


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def payload_hash(obj: Any) -> str:
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class IssuingKey:
    key_id: str
    signing_key: SigningKey

    @property
    def verify_key_hex(self) -> str:
        return bytes(self.signing_key.verify_key).hex()

    def sign_hash(self, digest_hex: str) -> str:
        return self.signing_key.sign(bytes.fromhex(digest_hex)).signature.hex()


def key_id_for(verify_key_bytes: bytes) -> str:
    """Short stable fingerprint of a public key."""
    return "ed25519:" + hashlib.sha256(verify_key_bytes).hexdigest()[:16]


def load_issuing_key(tenant_slug: str) -> IssuingKey:
    """
    Load the tenant's key from settings.VTL_ISSUING_KEYS (hex 32-byte seed).
    Missing or malformed keys are IssuanceUnavailable: the delivery is
    retried until an operator provisions the key.
    """
    seed_hex = settings.VTL_ISSUING_KEYS.get(tenant_slug)
    if not seed_hex:
        logger.error(f"No issuing key configured for tenant={tenant_slug}")
        raise IssuanceUnavailable("No issuing key is configured for this tenant.", tenant=tenant_slug)

    try:
        seed = bytes.fromhex(seed_hex)
        if len(seed) != 32:
            raise ValueError("ed25519 seed must be 32 bytes")
        signing_key = SigningKey(seed)
    except (TypeError, ValueError) as exc:
        logger.error(f"Unloadable issuing key for tenant={tenant_slug}: {exc}")
        raise IssuanceUnavailable("The issuing key for this tenant cannot be loaded.", tenant=tenant_slug)

    return IssuingKey(key_id=key_id_for(bytes(signing_key.verify_key)), signing_key=signing_key)


def verify_signature(verify_key_hex: str, digest_hex: str, signature_hex: str) -> bool:
    try:
        VerifyKey(bytes.fromhex(verify_key_hex)).verify(
            bytes.fromhex(digest_hex), bytes.fromhex(signature_hex)
        )
    except (BadSignatureError, ValueError, TypeError):
        return False
    return True
