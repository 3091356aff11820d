"""Loader canônico de definição de pipeline (YAML/JSON).

Notas:
- YAML é preferencial, JSON é alternativo.
- O formato é inferido pela extensão do arquivo.
- A validação e a materialização dos Jobs ficam em `schema`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from atlas_deployflow.core.pipeline.job import Job

from .errors import PipelineFileNotFoundError, PipelineParseError, UnsupportedPipelineFormatError
from .schema import parse_pipeline


def read_pipeline_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Lê o arquivo de definição e retorna o mapeamento bruto.

    Raises:
        PipelineFileNotFoundError: se arquivo não existir.
        UnsupportedPipelineFormatError: se extensão não suportada.
        PipelineParseError: se parsing falhar ou a raiz não for mapping.
    """
    p = Path(path)
    if not p.exists():
        raise PipelineFileNotFoundError(f"pipeline file not found: {p}")

    suffix = p.suffix.lower()
    raw = p.read_text(encoding="utf-8")

    try:
        if suffix in {".yml", ".yaml"}:
            data = yaml.safe_load(raw)
        elif suffix == ".json":
            data = json.loads(raw)
        else:
            raise UnsupportedPipelineFormatError(f"unsupported pipeline format: {suffix}")
    except UnsupportedPipelineFormatError:
        raise
    except Exception as e:
        raise PipelineParseError(str(e) or "failed to parse pipeline definition") from e

    if data is None:
        raise PipelineParseError("pipeline file is empty")
    if not isinstance(data, dict):
        raise PipelineParseError("pipeline root must be a mapping/dict")
    return data


def load_pipeline(path: Union[str, Path], config: Optional[Dict[str, Any]] = None) -> List[Job]:
    """Carrega e valida a definição, retornando os Jobs em ordem de declaração."""
    return parse_pipeline(read_pipeline_file(path), config)
