"""Hashing canônico da definição do pipeline.

O hash da definição serve para:
- rastreabilidade no Manifest/EventLog
- detecção de divergência entre execuções

Decisão: o hash é calculado sobre o JSON canônico de `Job.to_dict()` na
ordem de declaração.
"""

from __future__ import annotations

import hashlib
from typing import Iterable

from atlas_deployflow.core.config.hashing import canonical_json
from atlas_deployflow.core.pipeline.job import Job


def compute_pipeline_hash(jobs: Iterable[Job]) -> str:
    """Computa SHA-256 da definição em formato canônico."""
    canonical = canonical_json({"jobs": [job.to_dict() for job in jobs]})
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
