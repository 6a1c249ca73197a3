import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from plan_guard.errors import IntegrityError
from plan_guard.integrity import PlanIntegrityService
from plan_guard.models import ExecutionPlan, PlanStep


def _plan(**overrides):
    fields = dict(
        plan_id="plan-1",
        summary="search and save",
        steps=[
            PlanStep(step_number=1, action="echo", payload={"message": "hi", "level": 1}, description="say hi"),
            PlanStep(step_number=2, action="file_write", payload={"path": "a.txt", "content": "x"}, dependencies=[1]),
        ],
    )
    fields.update(overrides)
    return ExecutionPlan(**fields)


def _pem_pair(private_key):
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture(scope="module")
def rsa_keys():
    return _pem_pair(rsa.generate_private_key(public_exponent=65537, key_size=2048))


@pytest.fixture(scope="module")
def ed25519_keys():
    return _pem_pair(ed25519.Ed25519PrivateKey.generate())

# ---------------------------------------------------------------------------
# Plan hashing
# ---------------------------------------------------------------------------

def test_hash_is_deterministic_sha256_hex():
    service = PlanIntegrityService()
    first = service.generate_plan_hash(_plan())
    assert first == service.generate_plan_hash(_plan())
    assert len(first) == 64
    int(first, 16)

def test_hash_ignores_payload_key_order():
    service = PlanIntegrityService()
    reordered = _plan(steps=[
        PlanStep(step_number=1, action="echo", payload={"level": 1, "message": "hi"}, description="say hi"),
        PlanStep(step_number=2, action="file_write", payload={"content": "x", "path": "a.txt"}, dependencies=[1]),
    ])
    assert service.generate_plan_hash(_plan()) == service.generate_plan_hash(reordered)

def test_hash_sensitive_to_action_payload_order_and_count():
    service = PlanIntegrityService()
    base = _plan()
    reference = service.generate_plan_hash(base)

    changed_action = base.model_copy(deep=True)
    changed_action.steps[0].action = "http_post"

    changed_payload = base.model_copy(deep=True)
    changed_payload.steps[1].payload["path"] = "../../etc/passwd"

    reordered = base.model_copy(deep=True)
    reordered.steps.reverse()

    extra = _plan(steps=base.steps + [PlanStep(step_number=3, action="http_post")])

    for variant in (changed_action, changed_payload, reordered, extra):
        assert service.generate_plan_hash(variant) != reference

def test_hash_excludes_signature_fields():
    service = PlanIntegrityService()
    plain = _plan()
    stamped = _plan(plan_hash="abc", signature="sig", signed_by="ops", signed_at="now")
    assert service.generate_plan_hash(plain) == service.generate_plan_hash(stamped)

def test_verify_plan_hash_after_hashing_and_after_mutation():
    service = PlanIntegrityService()
    hashed = service.create_hashed_plan(_plan())
    assert service.verify_plan_hash(hashed) is True

    hashed.steps[0].payload["message"] = "bye"
    assert service.verify_plan_hash(hashed) is False

def test_verify_plan_hash_missing_hash():
    assert PlanIntegrityService().verify_plan_hash(_plan()) is False

def test_create_hashed_plan_does_not_mutate_input():
    service = PlanIntegrityService()
    plan = _plan()
    hashed = service.create_hashed_plan(plan)
    assert plan.plan_hash is None
    assert hashed.plan_hash == service.generate_plan_hash(plan)
    assert hashed.signature is None

def test_total_steps_mismatch_rejected():
    with pytest.raises(ValueError, match="does not match"):
        _plan(total_steps=5)

# ---------------------------------------------------------------------------
# Tamper reporting
# ---------------------------------------------------------------------------

def test_detect_tampering():
    service = PlanIntegrityService()
    plan = _plan()
    original = service.generate_plan_hash(plan)

    report = service.detect_tampering(original, plan)
    assert report.tampered is False
    assert report.message == "Plan integrity verified."

    plan.steps[1].action = "http_post"
    report = service.detect_tampering(original, plan)
    assert report.tampered is True
    assert report.message == "Plan has been modified! Hash mismatch detected."
    assert report.current_hash != original

def test_compare_plans_positional_diff():
    service = PlanIntegrityService()
    reference = _plan()
    current = reference.model_copy(deep=True)
    current.steps[1].payload["path"] = "b.txt"
    current.steps.append(PlanStep(step_number=3, action="http_post"))
    current.total_steps = 3

    changes = service.compare_plans(reference, current)
    assert [(c.index, c.step_number, c.change) for c in changes] == [(1, 2, "modified"), (2, 3, "added")]

    removed = service.compare_plans(current, reference)
    assert [(c.index, c.change) for c in removed] == [(1, "modified"), (2, "removed")]

def test_step_digests_and_metadata():
    service = PlanIntegrityService()
    plan = _plan()
    digests = service.step_digests(plan)
    assert len(digests) == 2
    assert digests[0] != digests[1]

    meta = service.hash_metadata(plan)
    assert meta.plan_id == "plan-1"
    assert meta.version == "1.0.0"
    assert meta.plan_hash == service.generate_plan_hash(plan)

# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("keys", ["rsa_keys", "ed25519_keys"])
def test_sign_and_verify(keys, request):
    private_pem, public_pem = request.getfixturevalue(keys)
    service = PlanIntegrityService()
    signed = service.create_hashed_plan(_plan(), private_key=private_pem, signed_by="ops")

    assert signed.signed_by == "ops"
    assert signed.signed_at is not None
    assert service.verify_signature(signed.plan_hash, signed.signature, public_pem) is True
    assert service.verify_signature("0" * 64, signed.signature, public_pem) is False

def test_verify_signature_wrong_key(rsa_keys, ed25519_keys):
    service = PlanIntegrityService()
    plan_hash = service.generate_plan_hash(_plan())
    signature = service.sign_plan_hash(plan_hash, rsa_keys[0])
    assert service.verify_signature(plan_hash, signature, ed25519_keys[1]) is False

def test_verify_signature_malformed_inputs_return_false(rsa_keys):
    service = PlanIntegrityService()
    plan_hash = service.generate_plan_hash(_plan())
    assert service.verify_signature(plan_hash, "not base64!!", rsa_keys[1]) is False
    assert service.verify_signature(plan_hash, "c2ln", "not a pem key") is False

def test_sign_with_unsupported_key_type():
    private_pem, _ = _pem_pair(ec.generate_private_key(ec.SECP256R1()))
    with pytest.raises(IntegrityError, match="Unsupported signing key type"):
        PlanIntegrityService().sign_plan_hash("abc", private_pem)
