# integrity.py
# SHA-256 fingerprinting for plan integrity verification.
#
# Guarantees: a plan that was hashed (and optionally signed) when it was
# approved cannot be silently mutated before execution. Any change to a
# step's action, payload, order, or count changes the hash.
#
# The service never mutates a plan. Signing helpers return stamped copies.

import base64
import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, padding, rsa

from plan_guard.errors import IntegrityError
from plan_guard.models import ExecutionPlan, PlanHashMetadata, PlanStep, StepChange, TamperReport

HASH_VERSION = "1.0.0"

_STEP_FIELDS = {"step_number", "action", "payload", "description", "dependencies"}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _sha256(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _serialize(value: Any) -> str:
    """Canonical JSON: sorted keys, no insignificant whitespace, UTF-8."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _canonical_step(step: PlanStep) -> dict[str, Any]:
    return step.model_dump(mode="json", include=_STEP_FIELDS)


# ---------------------------------------------------------------------------
# PlanIntegrityService
# ---------------------------------------------------------------------------


class PlanIntegrityService:
    """
    Computes and verifies plan fingerprints.

    Hash input is the canonical JSON of:

        {version, plan_id, steps: [{step_number, action, payload,
         description, dependencies}], total_steps, risk_level, summary}

    plan_hash and the signature fields are never part of the input, so
    re-hashing an unmodified plan always reproduces the stored value.
    """

    version = HASH_VERSION

    def canonicalize(self, plan: ExecutionPlan) -> str:
        canonical = {
            "version": self.version,
            "plan_id": plan.plan_id,
            "steps": [_canonical_step(step) for step in plan.steps],
            "total_steps": plan.total_steps,
            "risk_level": plan.risk_level,
            "summary": plan.summary,
        }
        return _serialize(canonical)

    def generate_plan_hash(self, plan: ExecutionPlan) -> str:
        return _sha256(self.canonicalize(plan))

    def verify_plan_hash(self, plan: ExecutionPlan) -> bool:
        if not plan.plan_hash:
            return False
        computed = self.generate_plan_hash(plan)
        return hmac.compare_digest(computed.encode("utf-8"), plan.plan_hash.encode("utf-8"))

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def verify_signature(self, plan_hash: str, signature: str, public_key: str) -> bool:
        """
        Check a base64 signature over `plan_hash` with a PEM public key.

        RSA keys use PKCS#1 v1.5 with SHA-256; Ed25519 keys sign the hash
        string directly. Returns False for any malformed input.
        """
        try:
            key = serialization.load_pem_public_key(public_key.encode("utf-8"))
            raw = base64.b64decode(signature, validate=True)
            data = plan_hash.encode("utf-8")
            if isinstance(key, rsa.RSAPublicKey):
                key.verify(raw, data, padding.PKCS1v15(), hashes.SHA256())
            elif isinstance(key, ed25519.Ed25519PublicKey):
                key.verify(raw, data)
            else:
                return False
        except (InvalidSignature, UnsupportedAlgorithm, ValueError, TypeError, AttributeError):
            return False
        return True

    def sign_plan_hash(self, plan_hash: str, private_key: str, password: bytes | None = None) -> str:
        key = serialization.load_pem_private_key(private_key.encode("utf-8"), password=password)
        data = plan_hash.encode("utf-8")
        if isinstance(key, rsa.RSAPrivateKey):
            raw = key.sign(data, padding.PKCS1v15(), hashes.SHA256())
        elif isinstance(key, ed25519.Ed25519PrivateKey):
            raw = key.sign(data)
        else:
            raise IntegrityError(f"Unsupported signing key type: {type(key).__name__}")
        return base64.b64encode(raw).decode("ascii")

    def create_hashed_plan(
        self,
        plan: ExecutionPlan,
        private_key: str | None = None,
        signed_by: str | None = None,
    ) -> ExecutionPlan:
        """Return a copy of `plan` stamped with its hash, and a signature when a key and signer are given."""
        plan_hash = self.generate_plan_hash(plan)
        update: dict[str, Any] = {"plan_hash": plan_hash}
        if private_key and signed_by:
            update["signature"] = self.sign_plan_hash(plan_hash, private_key)
            update["signed_by"] = signed_by
            update["signed_at"] = datetime.now(timezone.utc).isoformat()
        return plan.model_copy(deep=True, update=update)

    # ------------------------------------------------------------------
    # Tamper reporting
    # ------------------------------------------------------------------

    def detect_tampering(self, original_hash: str, current_plan: ExecutionPlan) -> TamperReport:
        current_hash = self.generate_plan_hash(current_plan)
        tampered = not hmac.compare_digest(original_hash.encode("utf-8"), current_hash.encode("utf-8"))
        return TamperReport(
            tampered=tampered,
            current_hash=current_hash,
            message=(
                "Plan has been modified! Hash mismatch detected."
                if tampered
                else "Plan integrity verified."
            ),
        )

    def step_digests(self, plan: ExecutionPlan) -> list[str]:
        """Per-step SHA-256 leaves in step order."""
        return [_sha256(_serialize(_canonical_step(step))) for step in plan.steps]

    def compare_plans(self, reference: ExecutionPlan, current: ExecutionPlan) -> list[StepChange]:
        """
        Positional step diff between an approved plan and the one in hand.

        A step inserted mid-plan shows up as the following positions being
        modified plus one addition at the end.
        """
        ref = self.step_digests(reference)
        cur = self.step_digests(current)
        changes: list[StepChange] = []

        for index in range(max(len(ref), len(cur))):
            if index >= len(cur):
                changes.append(
                    StepChange(index=index, step_number=reference.steps[index].step_number, change="removed")
                )
            elif index >= len(ref):
                changes.append(
                    StepChange(index=index, step_number=current.steps[index].step_number, change="added")
                )
            elif ref[index] != cur[index]:
                changes.append(
                    StepChange(index=index, step_number=current.steps[index].step_number, change="modified")
                )

        return changes

    def hash_metadata(self, plan: ExecutionPlan) -> PlanHashMetadata:
        return PlanHashMetadata(
            plan_id=plan.plan_id,
            plan_hash=plan.plan_hash or self.generate_plan_hash(plan),
            timestamp=datetime.now(timezone.utc).isoformat(),
            version=self.version,
        )
