# src/atlas_deployflow/core/canary/rollout.py
"""
Rollout Controller — deslocamento progressivo de tráfego para um canary.

Este módulo implementa a máquina de estados de um `CanaryRollout` e o
controlador que a conduz, consultando o Health Gate a cada intervalo.

Máquina de estados:

    INITIALIZING (canary 0 / stable 100)
        → STEPPING    (avalia o Health Gate a cada `interval_s`)
            → PROMOTED    (canary 100 / stable 0)   terminal
            → ROLLED_BACK (canary 0 / stable 100)   terminal

Transições em STEPPING:
    - PROMOTE  → canary += step_percent (limitado a 100); 100 → PROMOTED
    - HOLD     → pesos inalterados; reavalia no próximo intervalo
    - ROLLBACK → canary = 0 imediatamente; ROLLED_BACK

Toda mutação de peso é enviada ao `TrafficRouter` e emitida como
`WeightChange` para os listeners registrados e para o log do RunContext.

O controlador roda como tarefa autônoma (asyncio) por rollout ativo e
nunca bloqueia o loop de despacho do Scheduler. Cancelamento (sinal
cooperativo ou cancelamento da tarefa, ex.: timeout do Job) durante
STEPPING resulta em rollback implícito.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)

from atlas_deployflow.core.exceptions import IllegalTransitionError, InvariantViolationError
from atlas_deployflow.core.ports import MetricsSource, TrafficRouter, resolve

from .health import Decision, HealthGate, HealthSample, MetricThreshold, collect_samples

if TYPE_CHECKING:
    from atlas_deployflow.core.pipeline.context import RunContext


class RolloutState(str, Enum):
    INITIALIZING = "initializing"
    STEPPING = "stepping"
    PROMOTED = "promoted"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in (RolloutState.PROMOTED, RolloutState.ROLLED_BACK)


ROLLOUT_TRANSITIONS: Dict[RolloutState, FrozenSet[RolloutState]] = {
    RolloutState.INITIALIZING: frozenset({RolloutState.STEPPING, RolloutState.ROLLED_BACK}),
    RolloutState.STEPPING: frozenset({RolloutState.PROMOTED, RolloutState.ROLLED_BACK}),
    RolloutState.PROMOTED: frozenset(),
    RolloutState.ROLLED_BACK: frozenset(),
}


@dataclass(frozen=True)
class CanaryConfig:
    """
    Parâmetros de rollout de um Job canary.

    A presença de um `CanaryConfig` no Job é o que o torna um Job canary:
    após o comando do Job concluir com sucesso, o Scheduler conduz o
    rollout até um estado terminal.

    Campos:
        - step_percent: incremento de peso do canary por decisão PROMOTE (1..100)
        - interval_s: intervalo entre avaliações do Health Gate
        - window_s: janela de amostragem das métricas
        - thresholds: limiares por métrica
        - max_holds: máximo de HOLD consecutivos antes de rollback (None = sem limite)
    """
    step_percent: int = 20
    interval_s: float = 30.0
    window_s: float = 60.0
    thresholds: Tuple[MetricThreshold, ...] = ()
    max_holds: Optional[int] = None

    def __post_init__(self) -> None:
        if isinstance(self.step_percent, bool) or not isinstance(self.step_percent, int):
            raise ValueError("canary.step_percent must be an integer")
        if not 1 <= self.step_percent <= 100:
            raise ValueError("canary.step_percent must be between 1 and 100")
        if self.interval_s < 0:
            raise ValueError("canary.interval_s must be >= 0")
        if self.window_s < 0:
            raise ValueError("canary.window_s must be >= 0")
        if self.max_holds is not None and self.max_holds < 0:
            raise ValueError("canary.max_holds must be >= 0")
        object.__setattr__(self, "thresholds", tuple(self.thresholds))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_percent": self.step_percent,
            "interval_s": self.interval_s,
            "window_s": self.window_s,
            "thresholds": [t.to_dict() for t in self.thresholds],
            "max_holds": self.max_holds,
        }


@dataclass
class CanaryRollout:
    """
    Estado mutável de um rollout canary.

    Invariantes:
        - `stable_weight` e `canary_weight` são inteiros não negativos
        - `stable_weight + canary_weight == 100` após toda mutação
        - o estado só avança conforme `ROLLOUT_TRANSITIONS`
    """
    job_id: str
    step_percent: int
    stable_weight: int = 100
    canary_weight: int = 0
    state: RolloutState = RolloutState.INITIALIZING
    steps: int = 0
    history: List[Tuple[int, int]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not 1 <= self.step_percent <= 100:
            raise ValueError("step_percent must be between 1 and 100")
        self._check_weights()

    def _check_weights(self) -> None:
        for w in (self.stable_weight, self.canary_weight):
            if not isinstance(w, int) or w < 0:
                raise InvariantViolationError(f"Rollout weights must be non-negative integers: {w!r}")
        if self.stable_weight + self.canary_weight != 100:
            raise InvariantViolationError(
                f"Rollout weights must sum to 100: {self.stable_weight}+{self.canary_weight}"
            )

    def _set(self, canary: int) -> Tuple[int, int]:
        self.canary_weight = canary
        self.stable_weight = 100 - canary
        self._check_weights()
        self.history.append((self.stable_weight, self.canary_weight))
        return self.stable_weight, self.canary_weight

    def transition(self, target: RolloutState) -> None:
        if target not in ROLLOUT_TRANSITIONS[self.state]:
            raise IllegalTransitionError(
                f"Illegal rollout transition: {self.state.value} -> {target.value}"
            )
        self.state = target

    def advance(self) -> Tuple[int, int]:
        """Aplica um passo de promoção e retorna (stable, canary)."""
        if self.state is not RolloutState.STEPPING:
            raise IllegalTransitionError(f"Cannot advance rollout in state {self.state.value}")
        self.steps += 1
        weights = self._set(min(100, self.canary_weight + self.step_percent))
        if self.canary_weight == 100:
            self.transition(RolloutState.PROMOTED)
        return weights

    def roll_back(self) -> Tuple[int, int]:
        """Colapsa todo o tráfego para stable e encerra em ROLLED_BACK."""
        weights = self._set(0)
        self.transition(RolloutState.ROLLED_BACK)
        return weights

    def reset(self) -> Tuple[int, int]:
        """Estabelece a divisão inicial (canary 0 / stable 100)."""
        return self._set(0)


@dataclass(frozen=True)
class WeightChange:
    """Evento emitido a cada mutação de peso de tráfego."""
    job_id: str
    stable_weight: int
    canary_weight: int
    state: RolloutState
    reason: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "stable_weight": self.stable_weight,
            "canary_weight": self.canary_weight,
            "state": self.state.value,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


class Gate(Protocol):
    def evaluate(self, samples: Sequence[HealthSample], thresholds: Sequence[MetricThreshold]) -> Decision:
        ...


WeightListener = Callable[[WeightChange], Any]


class RolloutController:
    """Conduz um `CanaryRollout` até PROMOTED ou ROLLED_BACK."""

    def __init__(
        self,
        rollout: CanaryRollout,
        *,
        gate: Gate,
        metrics: MetricsSource,
        router: TrafficRouter,
        thresholds: Sequence[MetricThreshold] = (),
        interval_s: float = 30.0,
        window_s: float = 60.0,
        max_holds: Optional[int] = None,
        ctx: Optional["RunContext"] = None,
        listeners: Iterable[WeightListener] = (),
    ) -> None:
        self.rollout = rollout
        self.gate = gate
        self.metrics = metrics
        self.router = router
        self.thresholds = tuple(thresholds)
        self.interval_s = float(interval_s)
        self.window_s = float(window_s)
        self.max_holds = max_holds
        self.ctx = ctx
        self.listeners: List[WeightListener] = list(listeners)
        self.decisions: List[Decision] = []
        self.rollback_reason: Optional[str] = None
        self.rollback_weight: Optional[int] = None
        self._consecutive_holds = 0

    @classmethod
    def for_job(
        cls,
        job_id: str,
        config: CanaryConfig,
        *,
        metrics: MetricsSource,
        router: TrafficRouter,
        gate: Optional[Gate] = None,
        ctx: Optional["RunContext"] = None,
        listeners: Iterable[WeightListener] = (),
    ) -> "RolloutController":
        return cls(
            CanaryRollout(job_id=job_id, step_percent=config.step_percent),
            gate=gate or HealthGate(window_s=config.window_s),
            metrics=metrics,
            router=router,
            thresholds=config.thresholds,
            interval_s=config.interval_s,
            window_s=config.window_s,
            max_holds=config.max_holds,
            ctx=ctx,
            listeners=listeners,
        )

    # ------------------------------------------------------------------
    # Emissão de pesos
    # ------------------------------------------------------------------
    async def _emit(self, weights: Tuple[int, int], reason: str) -> None:
        stable, canary = weights
        await resolve(self.router.set_weights(stable, canary))
        change = WeightChange(
            job_id=self.rollout.job_id,
            stable_weight=stable,
            canary_weight=canary,
            state=self.rollout.state,
            reason=reason,
            timestamp=datetime.now(timezone.utc),
        )
        if self.ctx is not None:
            self.ctx.log(
                job_id=self.rollout.job_id,
                level="INFO",
                message="traffic weights changed",
                event="rollout_weights_changed",
                stable_weight=stable,
                canary_weight=canary,
                state=change.state.value,
                reason=reason,
            )
        for listener in self.listeners:
            await resolve(listener(change))

    async def _roll_back(self, reason: str) -> None:
        self.rollback_reason = reason
        self.rollback_weight = self.rollout.canary_weight
        weights = self.rollout.roll_back()
        await self._emit(weights, reason)

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------
    async def step(self) -> Decision:
        """Executa uma avaliação do Health Gate e aplica a transição."""
        samples = await collect_samples(self.metrics, self.thresholds, self.window_s)
        decision = Decision(self.gate.evaluate(samples, self.thresholds))
        self.decisions.append(decision)

        if decision is Decision.PROMOTE:
            self._consecutive_holds = 0
            weights = self.rollout.advance()
            await self._emit(weights, "promote")
        elif decision is Decision.HOLD:
            self._consecutive_holds += 1
            if self.max_holds is not None and self._consecutive_holds > self.max_holds:
                await self._roll_back("max_holds_exceeded")
        else:
            await self._roll_back("health_gate")
        return decision

    async def _interval_elapsed(self, cancel_event: Optional[asyncio.Event]) -> bool:
        """Aguarda o intervalo; retorna False se o cancelamento chegar antes."""
        if cancel_event is None:
            await asyncio.sleep(self.interval_s)
            return True
        if cancel_event.is_set():
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.interval_s)
        except asyncio.TimeoutError:
            return True
        return False

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> RolloutState:
        """Conduz o rollout até um estado terminal e retorna esse estado."""
        await self._emit(self.rollout.reset(), "initialize")
        if cancel_event is not None and cancel_event.is_set():
            await self._roll_back("cancelled")
            return self.rollout.state

        self.rollout.transition(RolloutState.STEPPING)
        try:
            while self.rollout.state is RolloutState.STEPPING:
                if not await self._interval_elapsed(cancel_event):
                    await self._roll_back("cancelled")
                    break
                await self.step()
        except asyncio.CancelledError:
            if not self.rollout.state.is_terminal:
                await asyncio.shield(self._roll_back("aborted"))
            raise
        except Exception:
            if not self.rollout.state.is_terminal:
                await self._roll_back("error")
            raise
        return self.rollout.state
