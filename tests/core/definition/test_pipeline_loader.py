# tests/core/definition/test_pipeline_loader.py
"""
Testes do loader de definição de pipeline (YAML/JSON).

Os testes asseguram que:
- YAML e JSON produzem os mesmos Jobs
- arquivos ausentes, vazios, malformados ou com raiz inválida falham
  com erros explícitos do domínio de definição
- extensões não suportadas são rejeitadas

Limites explícitos:
    - Regras de schema são cobertas em `test_pipeline_schema.py`
"""
import json
from pathlib import Path

import pytest

try:
    from atlas_deployflow.core.definition.errors import (
        PipelineDefinitionError,
        PipelineFileNotFoundError,
        PipelineParseError,
        UnsupportedPipelineFormatError,
    )
    from atlas_deployflow.core.definition.loader import load_pipeline, read_pipeline_file
except Exception as e:  # noqa: BLE001
    load_pipeline = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


PIPELINE_YAML = """\
pipeline_version: "1.0"
jobs:
  - id: build
    kind: build
    command: "make build"
    timeout: 600
  - id: scan
    kind: scan
    classification: advisory
    depends_on: [build]
    command: ["trivy", "image", "app:latest"]
  - id: canary
    kind: canary
    depends_on: [build, scan]
    command:
      invocation: "deployctl canary"
      timeout: 900
      env: {REGION: eu-west-1}
    retry: {max_attempts: 2}
    canary:
      step_percent: 25
      thresholds:
        - {metric: error_rate, bound: 0.01, aggregation: p95}
"""


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing pipeline loader. Implement:"
            "- src/atlas_deployflow/core/definition/loader.py (load_pipeline)"
            f"Import error: {_IMPORT_ERR}"
        )


def test_load_yaml_pipeline(tmp_path: Path):
    _require_imports()
    path = tmp_path / "pipeline.yaml"
    path.write_text(PIPELINE_YAML, encoding="utf-8")

    jobs = load_pipeline(path)

    assert [j.id for j in jobs] == ["build", "scan", "canary"]
    assert jobs[0].command.invocation == "make build"
    assert jobs[0].command.timeout == 600.0
    assert jobs[1].command.invocation == ("trivy", "image", "app:latest")
    assert jobs[1].is_advisory
    assert jobs[2].depends_on == ("build", "scan")
    assert jobs[2].command.env == {"REGION": "eu-west-1"}
    assert jobs[2].retry.max_attempts == 2
    assert jobs[2].canary.step_percent == 25
    assert jobs[2].canary.thresholds[0].aggregation.value == "p95"


def test_yaml_and_json_are_equivalent(tmp_path: Path):
    _require_imports()
    import yaml

    data = yaml.safe_load(PIPELINE_YAML)
    yaml_path = tmp_path / "pipeline.yml"
    json_path = tmp_path / "pipeline.json"
    yaml_path.write_text(PIPELINE_YAML, encoding="utf-8")
    json_path.write_text(json.dumps(data), encoding="utf-8")

    assert load_pipeline(yaml_path) == load_pipeline(json_path)


def test_missing_file(tmp_path: Path):
    _require_imports()
    with pytest.raises(PipelineFileNotFoundError):
        load_pipeline(tmp_path / "nope.yaml")


def test_unsupported_format(tmp_path: Path):
    _require_imports()
    path = tmp_path / "pipeline.toml"
    path.write_text("[jobs]", encoding="utf-8")
    with pytest.raises(UnsupportedPipelineFormatError):
        read_pipeline_file(path)


@pytest.mark.parametrize(
    "content",
    [
        "",
        "- just\n- a list\n",
        "jobs: [unclosed\n",
    ],
)
def test_parse_errors(tmp_path: Path, content):
    _require_imports()
    path = tmp_path / "pipeline.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(PipelineParseError):
        read_pipeline_file(path)


def test_errors_share_base_class(tmp_path: Path):
    _require_imports()
    with pytest.raises(PipelineDefinitionError):
        load_pipeline(tmp_path / "nope.json")
