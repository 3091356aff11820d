"""
Limitador de concorrência do Scheduler.

Recurso de contagem explícito, de propriedade do Scheduler: um slot é
adquirido antes da transição Ready → Running e liberado quando a tentativa
termina.

Invariantes:
    - No máximo `limit` detentores simultâneos
    - Um JobRun não pode ser admitido duas vezes (dupla admissão é fatal)
    - Um slot não pode ser liberado por quem não o detém

As operações são síncronas: o Scheduler as chama dentro de sua seção
crítica de transição de estado.
"""

from __future__ import annotations

from typing import Set

from atlas_deployflow.core.exceptions import InvariantViolationError


class ConcurrencyLimiter:
    def __init__(self, limit: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError("concurrency limit must be an integer >= 1")
        self.limit = limit
        self.peak = 0
        self._holders: Set[str] = set()

    @property
    def running(self) -> int:
        return len(self._holders)

    @property
    def available(self) -> int:
        return self.limit - len(self._holders)

    def holds(self, holder: str) -> bool:
        return holder in self._holders

    def try_acquire(self, holder: str) -> bool:
        """Admite `holder` se houver slot livre; retorna False caso contrário."""
        if holder in self._holders:
            raise InvariantViolationError(f"Double admission of job '{holder}'")
        if len(self._holders) >= self.limit:
            return False
        self._holders.add(holder)
        self.peak = max(self.peak, len(self._holders))
        return True

    def release(self, holder: str) -> None:
        if holder not in self._holders:
            raise InvariantViolationError(f"Release of a slot not held by job '{holder}'")
        self._holders.remove(holder)
