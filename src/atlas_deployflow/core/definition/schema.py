"""
Schema canônico — Pipeline Definition v1.

Materializa a definição declarativa do pipeline em `Job`s imutáveis,
aplicando os defaults da configuração efetiva (`retry`, `canary`).

Formato (YAML ou JSON):

    pipeline_version: "1.0"        # opcional
    jobs:
      - id: build
        kind: build
        command: "make build"      # string, lista ou {invocation, timeout, env}
        timeout: 600
      - id: canary
        kind: canary
        depends_on: [build]
        command: ["deployctl", "canary"]
        retry: {max_attempts: 2}
        canary:
          step_percent: 25
          thresholds:
            - {metric: error_rate, bound: 0.01, direction: max, aggregation: p95}

`jobs` também pode ser um mapping `{id: {...}}`; nesse caso o id vem da
chave e a ordem de declaração é a ordem do mapping.

Esta implementação valida com `_expect` em vez de dependências externas
de schema, mantendo o core leve.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from atlas_deployflow.core.canary.health import Aggregation, MetricThreshold, ThresholdDirection
from atlas_deployflow.core.canary.rollout import CanaryConfig
from atlas_deployflow.core.config.defaults import DEFAULT_CONFIG
from atlas_deployflow.core.pipeline.job import CommandContract, Job, RetryPolicy
from atlas_deployflow.core.pipeline.types import JobClassification, JobKind

from .errors import PipelineValidationError


_ALLOWED_KINDS = {k.value for k in JobKind}
_ALLOWED_CLASSIFICATIONS = {c.value for c in JobClassification}
_ALLOWED_DIRECTIONS = {d.value for d in ThresholdDirection}
_ALLOWED_AGGREGATIONS = {a.value for a in Aggregation}
_RETRY_KEYS = ("max_attempts", "base_delay_s", "max_delay_s", "multiplier")
_CANARY_KEYS = ("step_percent", "interval_s", "window_s")


def _is_non_empty_str(x: Any) -> bool:
    return isinstance(x, str) and bool(x.strip())


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def _expect(cond: bool, msg: str) -> None:
    if not cond:
        raise PipelineValidationError(msg)


def _section(config: Optional[Dict[str, Any]], name: str) -> Dict[str, Any]:
    merged = dict(DEFAULT_CONFIG.get(name, {}))
    merged.update(((config or {}).get(name, {}) or {}))
    return merged


def _parse_command(raw: Dict[str, Any], where: str) -> CommandContract:
    command = raw.get("command")
    timeout = raw.get("timeout")
    env: Dict[str, str] = {}

    if isinstance(command, dict):
        invocation = command.get("invocation")
        timeout = command.get("timeout", timeout)
        env = command.get("env", {}) or {}
        _expect(isinstance(env, dict), f"{where}.command.env must be a mapping")
    else:
        invocation = command

    _expect(
        _is_non_empty_str(invocation) or (isinstance(invocation, list) and bool(invocation)),
        f"{where}.command is required (string, list or mapping with invocation)",
    )
    if isinstance(invocation, list):
        _expect(all(_is_non_empty_str(a) for a in invocation), f"{where}.command items must be strings")
        invocation = tuple(invocation)

    if timeout is None:
        return CommandContract(invocation=invocation, env={str(k): str(v) for k, v in env.items()})
    _expect(_is_number(timeout) and timeout > 0, f"{where}.timeout must be a positive number")
    return CommandContract(
        invocation=invocation,
        timeout=float(timeout),
        env={str(k): str(v) for k, v in env.items()},
    )


def _parse_retry(raw: Any, defaults: Dict[str, Any], where: str) -> RetryPolicy:
    raw = raw or {}
    _expect(isinstance(raw, dict), f"{where}.retry must be a mapping")
    unknown = set(raw) - set(_RETRY_KEYS)
    _expect(not unknown, f"{where}.retry has unknown keys: {sorted(unknown)}")

    values = {k: raw.get(k, defaults.get(k)) for k in _RETRY_KEYS}
    _expect(
        isinstance(values["max_attempts"], int) and not isinstance(values["max_attempts"], bool),
        f"{where}.retry.max_attempts must be an integer",
    )
    for key in ("base_delay_s", "max_delay_s", "multiplier"):
        _expect(_is_number(values[key]), f"{where}.retry.{key} must be a number")
    try:
        return RetryPolicy(
            max_attempts=values["max_attempts"],
            base_delay_s=float(values["base_delay_s"]),
            max_delay_s=float(values["max_delay_s"]),
            multiplier=float(values["multiplier"]),
        )
    except ValueError as e:
        raise PipelineValidationError(f"{where}: {e}") from e


def _parse_threshold(raw: Any, min_samples: int, where: str) -> MetricThreshold:
    _expect(isinstance(raw, dict), f"{where} must be a mapping")
    _expect(_is_non_empty_str(raw.get("metric")), f"{where}.metric is required")
    _expect(_is_number(raw.get("bound")), f"{where}.bound must be a number")

    direction = raw.get("direction", ThresholdDirection.MAX.value)
    _expect(direction in _ALLOWED_DIRECTIONS, f"{where}.direction must be one of {sorted(_ALLOWED_DIRECTIONS)}")
    aggregation = raw.get("aggregation", Aggregation.MEAN.value)
    _expect(
        aggregation in _ALLOWED_AGGREGATIONS,
        f"{where}.aggregation must be one of {sorted(_ALLOWED_AGGREGATIONS)}",
    )
    samples = raw.get("min_samples", min_samples)
    _expect(isinstance(samples, int) and not isinstance(samples, bool) and samples >= 1, f"{where}.min_samples must be an integer >= 1")

    return MetricThreshold(
        metric=raw["metric"],
        bound=float(raw["bound"]),
        direction=direction,
        aggregation=aggregation,
        min_samples=samples,
    )


def _parse_canary(raw: Any, defaults: Dict[str, Any], where: str) -> CanaryConfig:
    raw = {} if raw is True else raw
    _expect(isinstance(raw, dict), f"{where}.canary must be a mapping")

    thresholds_raw = raw.get("thresholds", []) or []
    _expect(isinstance(thresholds_raw, list), f"{where}.canary.thresholds must be a list")
    min_samples = int(defaults.get("min_samples", 1))
    thresholds: Tuple[MetricThreshold, ...] = tuple(
        _parse_threshold(t, min_samples, f"{where}.canary.thresholds[{i}]") for i, t in enumerate(thresholds_raw)
    )

    values = {k: raw.get(k, defaults.get(k)) for k in _CANARY_KEYS}
    for key in _CANARY_KEYS:
        _expect(_is_number(values[key]), f"{where}.canary.{key} must be a number")
    max_holds = raw.get("max_holds")
    _expect(
        max_holds is None or (isinstance(max_holds, int) and not isinstance(max_holds, bool)),
        f"{where}.canary.max_holds must be an integer",
    )
    try:
        return CanaryConfig(
            step_percent=values["step_percent"],
            interval_s=float(values["interval_s"]),
            window_s=float(values["window_s"]),
            thresholds=thresholds,
            max_holds=max_holds,
        )
    except ValueError as e:
        raise PipelineValidationError(f"{where}: {e}") from e


def _parse_job(raw: Any, where: str, config: Optional[Dict[str, Any]]) -> Job:
    _expect(isinstance(raw, dict), f"{where} must be a mapping")
    job_id = raw.get("id")
    _expect(_is_non_empty_str(job_id), f"{where}.id is required")
    where = f"jobs.{job_id}"

    depends_on = raw.get("depends_on", []) or []
    if isinstance(depends_on, str):
        depends_on = [depends_on]
    _expect(isinstance(depends_on, list), f"{where}.depends_on must be a list")
    _expect(all(_is_non_empty_str(d) for d in depends_on), f"{where}.depends_on items must be job ids")

    kind = raw.get("kind", JobKind.GENERIC.value)
    _expect(kind in _ALLOWED_KINDS, f"{where}.kind must be one of {sorted(_ALLOWED_KINDS)}")
    classification = raw.get("classification", JobClassification.BLOCKING.value)
    _expect(
        classification in _ALLOWED_CLASSIFICATIONS,
        f"{where}.classification must be one of {sorted(_ALLOWED_CLASSIFICATIONS)}",
    )

    canary_raw = raw.get("canary")
    canary = None
    if canary_raw is not None and canary_raw is not False:
        canary = _parse_canary(canary_raw, _section(config, "canary"), where)

    return Job(
        id=job_id,
        command=_parse_command(raw, where),
        depends_on=tuple(depends_on),
        retry=_parse_retry(raw.get("retry"), _section(config, "retry"), where),
        classification=classification,
        kind=kind,
        canary=canary,
    )


def parse_pipeline(data: Any, config: Optional[Dict[str, Any]] = None) -> List[Job]:
    """Valida a definição e materializa os Jobs em ordem de declaração.

    `config` é a configuração efetiva; suas seções `retry` e `canary`
    fornecem os valores ausentes na definição.
    """
    _expect(isinstance(data, dict), "pipeline definition must be a mapping/dict")

    version = data.get("pipeline_version", "1.0")
    _expect(str(version) == "1.0", "pipeline_version must be '1.0' in v1")

    jobs = data.get("jobs")
    if isinstance(jobs, dict):
        items = []
        for job_id, body in jobs.items():
            _expect(isinstance(body, dict), f"jobs.{job_id} must be a mapping")
            _expect("id" not in body or body["id"] == job_id, f"jobs.{job_id}.id must match its key")
            items.append({**body, "id": job_id})
        jobs = items
    _expect(isinstance(jobs, list) and bool(jobs), "jobs must be a non-empty list or mapping")

    return [_parse_job(raw, f"jobs[{i}]", config) for i, raw in enumerate(jobs)]
