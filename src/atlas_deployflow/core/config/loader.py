# src/atlas_deployflow/core/config/loader.py
"""
Loader canônico de configuração do Atlas DeployFlow.

A configuração efetiva é resolvida em três camadas, da menor para a
maior precedência:
    1. defaults embutidos (`DEFAULT_CONFIG`)
    2. arquivo de defaults do projeto (opcional; obrigatório se informado)
    3. arquivo local de overrides (opcional; ignorado se ausente)

Responsabilidades do módulo:
    - Carregar arquivos de configuração em YAML ou JSON
    - Validar o tipo raiz e o domínio dos valores usados pelo engine
    - Resolver a configuração final via deep-merge determinístico

Invariantes:
    - O resultado é sempre um dicionário puro (`dict`) completo
    - Overrides nunca mutam os defaults
    - A mesma entrada sempre produz a mesma configuração final

Limites explícitos:
    - Não persiste configuração ou hash
    - Não interage com Scheduler ou Jobs
"""

from pathlib import Path
from typing import Any, Dict, Optional
import json

import yaml  # PyYAML

from .defaults import DEFAULT_CONFIG
from .merge import deep_merge
from .errors import (
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    InvalidConfigValueError,
    UnsupportedConfigFormatError,
)


def _load_file(path: Path) -> Dict[str, Any]:
    """
    Carrega um arquivo de configuração e valida sua estrutura básica.

    Arquivos vazios são interpretados como dicionários vazios.

    Raises:
        DefaultsNotFoundError: Se o arquivo não existir.
        UnsupportedConfigFormatError: Se o formato do arquivo não for suportado.
        InvalidConfigRootTypeError: Se o conteúdo raiz não for um dicionário.
    """
    if not path.exists():
        raise DefaultsNotFoundError(f"Arquivo de configuração não encontrado: {path}")

    suffix = path.suffix.lower()

    if suffix in {".yaml", ".yml"}:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

    elif suffix == ".json":
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)

    else:
        raise UnsupportedConfigFormatError(f"Formato não suportado: {path.suffix}")

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Config root deve ser dict, recebido: {type(data).__name__}"
        )

    return data


def _expect_number(config: Dict[str, Any], section: str, key: str, *, minimum: float) -> None:
    value = (config.get(section) or {}).get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigValueError(f"{section}.{key} must be a number, got {value!r}")
    if value < minimum:
        raise InvalidConfigValueError(f"{section}.{key} must be >= {minimum}, got {value!r}")


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Valida o domínio dos valores da configuração efetiva.

    Apenas as chaves consumidas pelo engine são verificadas; chaves
    adicionais são preservadas sem validação.

    Raises:
        InvalidConfigValueError: Se algum valor estiver fora do domínio.
    """
    _expect_number(config, "engine", "concurrency", minimum=1)
    if not isinstance(config["engine"]["concurrency"], int):
        raise InvalidConfigValueError("engine.concurrency must be an integer")
    _expect_number(config, "engine", "grace_period_s", minimum=0)

    _expect_number(config, "retry", "max_attempts", minimum=1)
    _expect_number(config, "retry", "base_delay_s", minimum=0)
    _expect_number(config, "retry", "max_delay_s", minimum=0)
    _expect_number(config, "retry", "multiplier", minimum=1)

    _expect_number(config, "canary", "step_percent", minimum=1)
    if config["canary"]["step_percent"] > 100:
        raise InvalidConfigValueError("canary.step_percent must be <= 100")
    _expect_number(config, "canary", "interval_s", minimum=0)
    _expect_number(config, "canary", "window_s", minimum=0)
    _expect_number(config, "canary", "min_samples", minimum=1)

    jobs = config.get("jobs")
    if jobs is not None and not isinstance(jobs, dict):
        raise InvalidConfigValueError("jobs must be a mapping of job id to settings")

    return config


def resolve_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Resolve a configuração efetiva a partir dos defaults embutidos e de
    overrides em memória (útil para testes e uso programático).
    """
    effective = deep_merge(DEFAULT_CONFIG, dict(overrides or {}))
    return validate_config(effective)


def load_config(
    *,
    defaults_path: Optional[str] = None,
    local_path: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Carrega e resolve a configuração efetiva do pipeline.

    Política de resolução:
        - Os defaults embutidos são sempre a base
        - `defaults_path`, quando informado, deve existir
        - `local_path` é opcional e ignorado se o arquivo não existir
        - Cada camada é aplicada via `deep_merge`

    Args:
        defaults_path (Optional[str]): Arquivo de defaults do projeto.
        local_path (Optional[str]): Arquivo opcional de overrides locais.

    Returns:
        Dict[str, Any]: Configuração final resolvida e validada.

    Raises:
        DefaultsNotFoundError: Se `defaults_path` for informado e não existir.
        UnsupportedConfigFormatError: Se o formato do arquivo não for suportado.
        InvalidConfigRootTypeError: Se o conteúdo não for um dicionário.
        ConfigTypeConflictError: Se ocorrer conflito estrutural durante o merge.
        InvalidConfigValueError: Se algum valor estiver fora do domínio.
    """

    effective = deep_merge(DEFAULT_CONFIG, {})

    if defaults_path is not None:
        effective = deep_merge(effective, _load_file(Path(defaults_path)))

    if local_path is not None:
        local_file = Path(local_path)
        if local_file.exists():
            effective = deep_merge(effective, _load_file(local_file))

    return validate_config(effective)
