# src/atlas_deployflow/core/canary/health.py
"""
Health Gate — decisão de promoção de canary baseada em métricas.

Este módulo implementa a função de decisão que, dada uma janela de
amostras (`HealthSample`) e um conjunto de limiares por métrica
(`MetricThreshold`), decide se um canary deve avançar, aguardar ou ser
revertido.

Regra de decisão (v1):
    1. Amostras fora da janela (`timestamp < now - window_s`) são ignoradas
    2. Cada métrica é agregada conforme declarado no seu limiar
       (mean, max, min, sum, last, p50, p90, p95, p99, rate)
    3. Qualquer métrica com amostras suficientes violando seu limiar → ROLLBACK
    4. Qualquer métrica com amostras insuficientes (ou agregado NaN) → HOLD
    5. Caso contrário → PROMOTE

Limiares são unilaterais e carregam direção explícita:
    - direction=max → o agregado deve permanecer <= bound (ex.: error_rate, latência)
    - direction=min → o agregado deve permanecer >= bound (ex.: success_rate)

A agregação é feita com pandas sobre um DataFrame efêmero; amostras
nunca são persistidas além de uma avaliação.

Limites explícitos:
    - Não altera pesos de tráfego (responsabilidade do Rollout Controller)
    - Não consulta backends por conta própria (ver `collect_samples`)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from atlas_deployflow.core.ports import MetricsSource, resolve


class Decision(str, Enum):
    """Desfechos possíveis de uma avaliação do Health Gate."""
    PROMOTE = "promote"
    HOLD = "hold"
    ROLLBACK = "rollback"


class ThresholdDirection(str, Enum):
    MAX = "max"
    MIN = "min"


class Aggregation(str, Enum):
    MEAN = "mean"
    MAX = "max"
    MIN = "min"
    SUM = "sum"
    LAST = "last"
    P50 = "p50"
    P90 = "p90"
    P95 = "p95"
    P99 = "p99"
    RATE = "rate"


_QUANTILES = {
    Aggregation.P50: 0.50,
    Aggregation.P90: 0.90,
    Aggregation.P95: 0.95,
    Aggregation.P99: 0.99,
}


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class HealthSample:
    """Amostra pontual de uma métrica."""
    metric: str
    value: float
    timestamp: datetime


@dataclass(frozen=True)
class MetricThreshold:
    """
    Limiar unilateral de uma métrica.

    Campos:
        - metric: nome da métrica consultada no MetricsSource
        - bound: valor limite
        - direction: `max` (deve ficar abaixo) ou `min` (deve ficar acima)
        - aggregation: como a janela é reduzida a um único valor
        - min_samples: quantidade mínima de amostras para decidir

    Igualdade ao limite não é violação.
    """
    metric: str
    bound: float
    direction: ThresholdDirection = ThresholdDirection.MAX
    aggregation: Aggregation = Aggregation.MEAN
    min_samples: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.metric, str) or not self.metric.strip():
            raise ValueError("threshold.metric must be a non-empty string")
        object.__setattr__(self, "direction", ThresholdDirection(self.direction))
        object.__setattr__(self, "aggregation", Aggregation(self.aggregation))
        object.__setattr__(self, "bound", float(self.bound))
        if int(self.min_samples) < 1:
            raise ValueError("threshold.min_samples must be >= 1")
        object.__setattr__(self, "min_samples", int(self.min_samples))

    def breached_by(self, value: float) -> bool:
        if self.direction is ThresholdDirection.MAX:
            return value > self.bound
        return value < self.bound

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "bound": self.bound,
            "direction": self.direction.value,
            "aggregation": self.aggregation.value,
            "min_samples": self.min_samples,
        }


@dataclass(frozen=True)
class MetricAssessment:
    """Resultado da avaliação de um único limiar."""
    threshold: MetricThreshold
    samples: int
    value: Optional[float]
    sufficient: bool
    breached: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.threshold.to_dict(),
            "samples": self.samples,
            "value": self.value,
            "sufficient": self.sufficient,
            "breached": self.breached,
        }


@dataclass(frozen=True)
class GateReport:
    """Decisão do Health Gate acompanhada da avaliação por métrica."""
    decision: Decision
    evaluated_at: datetime
    metrics: Tuple[MetricAssessment, ...] = field(default_factory=tuple)

    @property
    def breaches(self) -> List[str]:
        return [m.threshold.metric for m in self.metrics if m.breached]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value,
            "evaluated_at": self.evaluated_at.isoformat(),
            "metrics": [m.to_dict() for m in self.metrics],
        }


def _frame(samples: Iterable[HealthSample]) -> pd.DataFrame:
    rows = [
        {"metric": s.metric, "value": float(s.value), "timestamp": _utc(s.timestamp)}
        for s in samples
    ]
    frame = pd.DataFrame(rows, columns=["metric", "value", "timestamp"])
    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True)
    return frame


def _aggregate(values: pd.Series, aggregation: Aggregation, window_s: float) -> float:
    if aggregation is Aggregation.MEAN:
        return float(values.mean())
    if aggregation is Aggregation.MAX:
        return float(values.max())
    if aggregation is Aggregation.MIN:
        return float(values.min())
    if aggregation is Aggregation.SUM:
        return float(values.sum())
    if aggregation is Aggregation.LAST:
        return float(values.iloc[-1])
    if aggregation is Aggregation.RATE:
        total = float(values.sum())
        return total / window_s if window_s > 0 else total
    return float(values.quantile(_QUANTILES[aggregation]))


class HealthGate:
    """
    Função de decisão do canary sobre uma janela deslizante de amostras.

    A janela é fixa por instância (`window_s`). O instante de referência
    (`now`) pode ser injetado para avaliações determinísticas.
    """

    def __init__(self, window_s: float = 60.0) -> None:
        if window_s < 0:
            raise ValueError("window_s must be >= 0")
        self.window_s = float(window_s)

    def assess(
        self,
        samples: Iterable[HealthSample],
        thresholds: Sequence[MetricThreshold],
        now: Optional[datetime] = None,
    ) -> GateReport:
        now = _utc(now or datetime.now(timezone.utc))
        cutoff = pd.Timestamp(now - timedelta(seconds=self.window_s))

        frame = _frame(samples)
        frame = frame[frame["timestamp"] >= cutoff].dropna(subset=["value"])
        frame = frame.sort_values("timestamp", kind="mergesort")
        by_metric: Dict[str, pd.Series] = {
            str(name): group for name, group in frame.groupby("metric", sort=True)["value"]
        }

        assessments: List[MetricAssessment] = []
        for threshold in thresholds:
            values = by_metric.get(threshold.metric)
            count = 0 if values is None else int(values.size)
            value: Optional[float] = None
            sufficient = False
            breached = False
            if count >= threshold.min_samples:
                aggregated = _aggregate(values, threshold.aggregation, self.window_s)
                # ±inf é um valor comparável; apenas NaN conta como dado ausente
                if not np.isnan(aggregated):
                    value = aggregated
                    sufficient = True
                    breached = threshold.breached_by(aggregated)
            assessments.append(
                MetricAssessment(
                    threshold=threshold,
                    samples=count,
                    value=value,
                    sufficient=sufficient,
                    breached=breached,
                )
            )

        if any(a.breached for a in assessments):
            decision = Decision.ROLLBACK
        elif not all(a.sufficient for a in assessments):
            decision = Decision.HOLD
        else:
            decision = Decision.PROMOTE

        return GateReport(decision=decision, evaluated_at=now, metrics=tuple(assessments))

    def evaluate(
        self,
        samples: Iterable[HealthSample],
        thresholds: Sequence[MetricThreshold],
        now: Optional[datetime] = None,
    ) -> Decision:
        """Retorna apenas a decisão (PROMOTE, HOLD ou ROLLBACK)."""
        return self.assess(samples, thresholds, now=now).decision


async def collect_samples(
    source: MetricsSource,
    thresholds: Sequence[MetricThreshold],
    window_s: float,
) -> List[HealthSample]:
    """Consulta o MetricsSource uma vez por métrica distinta dos limiares."""
    samples: List[HealthSample] = []
    seen: set[str] = set()
    for threshold in thresholds:
        if threshold.metric in seen:
            continue
        seen.add(threshold.metric)
        samples.extend(await resolve(source.query(threshold.metric, window_s)))
    return samples
