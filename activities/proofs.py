# vtl-backend/activities/proofs.py
"""
Proof store and proof integrity checks.

The store is content-addressable: bytes are written once under their own
SHA-256 and never overwritten, so there are no write-write conflicts. The
verification engine never trusts a hash it did not compute itself from the
stored bytes.
"""
import hashlib
import logging

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.utils import timezone

from core.exceptions import ProofTampered

logger = logging.getLogger("vtl.activities")


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class ProofStore:
    """
    Content-addressable storage over a Django storage backend.

    put(bytes) -> content_hash
    get(content_hash) -> bytes
    """

    prefix = "proofs"

    def __init__(self, storage=None):
        self.storage = storage or default_storage

    def path_for(self, digest: str) -> str:
        return f"{self.prefix}/{digest[:2]}/{digest}"

    def put(self, data: bytes) -> str:
        digest = content_hash(data)
        path = self.path_for(digest)
        # Same bytes -> same path; an existing object is never rewritten
        if not self.exists(digest):
            saved = self.storage.save(path, ContentFile(data))
            if saved != path:
                # Storage renamed on a race with an identical write; keep one copy
                self.storage.delete(saved)
        return digest

    def get(self, digest: str) -> bytes:
        with self.storage.open(self.path_for(digest), "rb") as fh:
            return fh.read()

    def exists(self, digest: str) -> bool:
        return self.storage.exists(self.path_for(digest))


def get_proof_store() -> ProofStore:
    return ProofStore()


def verify_proof(proof, store: ProofStore = None) -> None:
    """
    Re-hash one proof's stored bytes. Raises ProofTampered on mismatch or when
    the bytes cannot be read back.
    """
    store = store or get_proof_store()
    try:
        data = store.get(proof.content_hash)
    except (FileNotFoundError, OSError):
        logger.warning(f"Proof bytes missing: proof={proof.pk}, hash={proof.content_hash}")
        raise ProofTampered(
            "Proof content is missing from the store.",
            proof_id=proof.pk,
            content_hash=proof.content_hash,
        )

    actual = content_hash(data)
    if actual != proof.content_hash:
        logger.warning(
            f"Proof hash mismatch: proof={proof.pk}, recorded={proof.content_hash}, actual={actual}"
        )
        raise ProofTampered(
            proof_id=proof.pk,
            content_hash=proof.content_hash,
        )


def verify_proofs(activity, store: ProofStore = None) -> int:
    """
    Re-validate every proof of an activity. Returns the number checked and
    stamps `verified_at` on each.
    """
    store = store or get_proof_store()
    proofs = list(activity.proof_refs.all())
    for proof in proofs:
        verify_proof(proof, store=store)

    if proofs:
        activity.proof_refs.filter(pk__in=[p.pk for p in proofs]).update(verified_at=timezone.now())
    return len(proofs)
