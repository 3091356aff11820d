# src/atlas_deployflow/core/config/hashing.py
"""
Hashing canônico de configuração do Atlas DeployFlow.

O hash identifica a configuração efetiva de uma execução e é gravado no
Manifest (`inputs.config_hash`), permitindo comparar execuções que
deveriam ter sido regidas pelas mesmas políticas (concorrência, retry,
parâmetros de canary).

Política de hashing (v1):
    - JSON canônico (chaves ordenadas, separadores compactos, UTF-8)
    - SHA-256 em hexadecimal (64 caracteres)
    - Valores não serializáveis são convertidos via `str`
"""

import hashlib
import json
from typing import Any, Dict


def canonical_json(data: Any) -> str:
    """Serializa `data` em JSON canônico e estável."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera um hash determinístico da configuração efetiva.

    Configurações estruturalmente equivalentes (independente da ordem das
    chaves) produzem o mesmo hash.

    Args:
        config (Dict[str, Any]): Configuração efetiva resolvida.

    Returns:
        str: Hash SHA-256 hexadecimal da configuração.

    Raises:
        TypeError: Se o objeto fornecido não for um dicionário.
    """

    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )

    return hashlib.sha256(canonical_json(config).encode("utf-8")).hexdigest()
