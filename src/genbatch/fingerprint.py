"""
Deterministic content hash of a job input, used for idempotent imports.
"""

import hashlib
import json
import typing as t

from genbatch.models import JobInput


def canonical_payload(job_input: JobInput) -> dict[str, t.Any]:
    """
    Build the normalized payload hashed by :func:`compute_fingerprint`.

    Parameters
    ----------
    job_input : JobInput
        Input to normalize.

    Returns
    -------
    dict[str, typing.Any]
        Payload where every absent field is replaced by an empty value, so that
        omitted and empty fields hash identically.
    """
    return {
        "prompt": job_input.prompt,
        "image_url": job_input.image_url or "",
        "ratio": job_input.ratio or "",
        "seed": "" if job_input.seed is None else job_input.seed,
        "watermark": job_input.watermark or "",
        "callback_url": job_input.callback_url or "",
        "translate": job_input.translate or "",
        "extra": job_input.extra or {},
    }


def compute_fingerprint(job_input: JobInput) -> str:
    """
    Compute the SHA-256 fingerprint of a job input.

    Parameters
    ----------
    job_input : JobInput
        Input to fingerprint.

    Returns
    -------
    str
        Hex digest, stable across processes and key orderings.
    """
    serialized = json.dumps(
        canonical_payload(job_input),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
