"""
src/atlas_deployflow/report/report_md.py

Gerador canônico de `report.md` (v1) — Atlas DeployFlow

Regras:
- O report.md é derivado EXCLUSIVAMENTE do Manifest final.
- Não infere, não recalcula, não acessa filesystem.
- Mesmo Manifest => mesmo report.md (determinismo por ordenação estável).

Estrutura mínima obrigatória:
# Deployment Report

## Executive Summary
## Pipeline Overview
## Failures
## Canary Rollouts
## Traceability
## Execution Metadata
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple, Union

from atlas_deployflow.core.traceability.manifest import DeployManifest


REQUIRED_SECTIONS: List[str] = [
    "# Deployment Report",
    "## Executive Summary",
    "## Pipeline Overview",
    "## Failures",
    "## Canary Rollouts",
    "## Traceability",
    "## Execution Metadata",
]


def _sorted_items(d: Any) -> List[Tuple[str, Any]]:
    if not isinstance(d, dict):
        return []
    return sorted(d.items(), key=lambda kv: kv[0])


def _as_pretty_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, indent=2)


def _require_manifest(manifest: Union[DeployManifest, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(manifest, DeployManifest):
        return manifest.to_dict()
    if not isinstance(manifest, dict) or not manifest:
        raise ValueError("Manifest is required to generate report.md")
    return manifest


def _rollouts_from_events(events: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    out: Dict[str, List[Dict[str, Any]]] = {}
    for ev in events:
        if not isinstance(ev, dict) or ev.get("event_type") != "rollout_weights_changed":
            continue
        out.setdefault(str(ev.get("job_id")), []).append(ev.get("payload") or {})
    return out


def generate_report_md(manifest: Union[DeployManifest, Dict[str, Any]]) -> str:
    """Gera o conteúdo completo do report.md a partir do Manifest final."""
    manifest = _require_manifest(manifest)

    run = manifest.get("run") if isinstance(manifest.get("run"), dict) else {}
    inputs = manifest.get("inputs") if isinstance(manifest.get("inputs"), dict) else {}
    jobs = manifest.get("jobs") if isinstance(manifest.get("jobs"), dict) else {}
    events = manifest.get("events") if isinstance(manifest.get("events"), list) else []

    lines: List[str] = []

    lines.append("# Deployment Report\n")

    lines.append("## Executive Summary")
    lines.append(f"- **Run ID**: `{run.get('run_id', '<unknown>')}`")
    lines.append(f"- **Started At (UTC)**: `{run.get('started_at', '<unknown>')}`")
    lines.append(f"- **Finished At (UTC)**: `{run.get('finished_at', '<unknown>')}`")
    lines.append(f"- **Pipeline State**: `{run.get('state', '<unknown>')}`")
    lines.append(f"- **DeployFlow Version**: `{run.get('deployflow_version', '<unknown>')}`")
    lines.append("\nThis report consolidates the pipeline execution strictly from the Manifest.")
    lines.append("If something is absent here, it was absent from the Manifest.\n")

    lines.append("## Pipeline Overview")
    if jobs:
        for job_id, job in _sorted_items(jobs):
            if not isinstance(job, dict):
                continue
            status = job.get("status", "unknown")
            kind = job.get("kind", "unknown")
            attempts = job.get("attempts", 0)
            summary = job.get("summary") or ""
            line = f"- **{job_id}** (`{kind}`) status: `{status}`, attempts: `{attempts}`"
            lines.append(f"{line} ({summary})" if summary else line)
    else:
        lines.append("No jobs recorded in the Manifest.")
    lines.append("")

    lines.append("## Failures")
    failed = [(jid, j) for jid, j in _sorted_items(jobs) if isinstance(j, dict) and j.get("status") == "failed"]
    if failed:
        for job_id, job in failed:
            lines.append(f"### {job_id}")
            lines.append("```json")
            lines.append(_as_pretty_json(job.get("error") or {}))
            lines.append("```")
    else:
        lines.append("No failed jobs recorded in the Manifest.")
    lines.append("")

    lines.append("## Canary Rollouts")
    rollouts = _rollouts_from_events(events)
    if rollouts:
        for job_id, changes in _sorted_items(rollouts):
            weights = " → ".join(f"{c.get('canary_weight')}%" for c in changes)
            final = changes[-1].get("state", "unknown") if changes else "unknown"
            lines.append(f"- **{job_id}** canary weights: {weights} (final state: `{final}`)")
    else:
        lines.append("No canary rollouts recorded in the Manifest.")
    lines.append("")

    lines.append("## Traceability")
    lines.append("- Source of truth: `Manifest` (final) only.")
    lines.append(f"- Config hash: `{inputs.get('config_hash', '<unknown>')}`")
    lines.append(f"- Pipeline hash: `{inputs.get('pipeline_hash', '<unknown>')}`")
    lines.append(f"- Events recorded: `{len(events)}`\n")

    lines.append("## Execution Metadata")
    lines.append("### run")
    lines.append("```json")
    lines.append(_as_pretty_json(run))
    lines.append("```")
    lines.append("### inputs")
    lines.append("```json")
    lines.append(_as_pretty_json(inputs))
    lines.append("```")

    content = "\n".join(lines)

    for sec in REQUIRED_SECTIONS:
        if sec not in content:
            raise RuntimeError(f"Report generation failed: missing required section: {sec}")

    return content
