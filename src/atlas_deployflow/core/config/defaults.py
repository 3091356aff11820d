# src/atlas_deployflow/core/config/defaults.py
"""
Defaults embutidos da configuração do Atlas DeployFlow.

Os valores numéricos aqui definidos são pontos de partida ilustrativos,
não recomendações operacionais: todo valor pode ser sobrescrito por um
arquivo de defaults do projeto e/ou por overrides locais.
"""

from __future__ import annotations

from typing import Any, Dict


DEFAULT_CONFIG: Dict[str, Any] = {
    "engine": {
        "concurrency": 4,
        "grace_period_s": 5.0,
    },
    "retry": {
        "max_attempts": 1,
        "base_delay_s": 1.0,
        "max_delay_s": 30.0,
        "multiplier": 2.0,
    },
    "canary": {
        "step_percent": 20,
        "interval_s": 30.0,
        "window_s": 60.0,
        "min_samples": 1,
    },
    "jobs": {},
}
