from genbatch.fingerprint import canonical_payload, compute_fingerprint
from genbatch.models import JobInput


def test_fingerprint_is_sha256_hex():
    fingerprint = compute_fingerprint(JobInput(prompt="a red fox running in snow"))
    assert len(fingerprint) == 64
    assert int(fingerprint, 16) >= 0


def test_fingerprint_treats_absent_and_empty_fields_alike():
    bare = JobInput(prompt="sunset over the sea")
    blank = JobInput(prompt="sunset over the sea", ratio="", image_url="  ", extra={})
    assert canonical_payload(bare) == canonical_payload(blank)
    assert compute_fingerprint(bare) == compute_fingerprint(blank)


def test_fingerprint_ignores_extra_key_order():
    first = JobInput(prompt="city at night", extra={"model": "v2", "duration": 5})
    second = JobInput(prompt="city at night", extra={"duration": 5, "model": "v2"})
    assert compute_fingerprint(first) == compute_fingerprint(second)


def test_fingerprint_changes_with_content():
    base = JobInput(prompt="city at night", seed=1)
    assert compute_fingerprint(base) != compute_fingerprint(JobInput(prompt="city at night", seed=2))
    assert compute_fingerprint(base) != compute_fingerprint(
        JobInput(prompt="city at night", seed=1, ratio="9:16")
    )
