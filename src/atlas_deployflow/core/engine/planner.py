# src/atlas_deployflow/core/engine/planner.py
"""
Resolvedor de dependências do pipeline (DAG).

Este módulo valida a estrutura do pipeline e constrói o `DependencyGraph`,
a representação somente-leitura consumida pelo Scheduler.

O resolvedor opera exclusivamente em nível estrutural, analisando:
    - identificadores de Jobs
    - dependências declaradas
    - formação de ciclos

Decisões arquiteturais:
    - O grafo é uma arena: Jobs vivem numa tupla e as arestas são índices
      (`dependencies[i]`, `dependents[i]`), sem referências cruzadas entre Jobs
    - Dependências desconhecidas são verificadas antes de ciclos
    - Ordenação por busca em profundidade iterativa com marcação em três
      cores (branco/cinza/preto); uma aresta de retorno para um nó cinza
      caracteriza ciclo
    - A busca percorre as arestas de dependentes, semeada em ordem reversa
      de registro; a pós-ordem invertida é a ordem topológica. Empates são
      resolvidos pela ordem de registro

Invariantes:
    - Nenhum Job aparece antes de suas dependências
    - Todos os Jobs aparecem exatamente uma vez na ordem
    - A mesma definição de pipeline produz sempre a mesma ordem

Limites explícitos:
    - Não executa Jobs
    - Não interage com RunContext
    - Não registra eventos de rastreabilidade
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple, Union

from atlas_deployflow.core.pipeline.job import Job
from atlas_deployflow.core.pipeline.registry import JobRegistry, UnknownJobError


class UnknownDependencyError(ValueError):
    """
    Exceção levantada quando um Job referencia uma dependência inexistente.

    Atributos:
        - referrer: id do Job que declarou a dependência
        - missing: id referenciado que não existe no registry
    """

    def __init__(self, *, referrer: str, missing: str) -> None:
        super().__init__(f"Job '{referrer}' depends on unknown job '{missing}'")
        self.referrer = referrer
        self.missing = missing


class CyclicDependencyError(ValueError):
    """
    Exceção levantada quando o grafo de dependências contém um ciclo.

    `cycle` lista os ids no sentido de `depends_on`, repetindo o primeiro
    id ao final (ex.: ``["a", "b", "a"]`` significa que `a` depende de `b`
    e `b` depende de `a`).
    """

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle: List[str] = list(cycle)
        super().__init__("Cycle detected in job dependency graph: " + " -> ".join(self.cycle))


_WHITE, _GREY, _BLACK = 0, 1, 2


@dataclass(frozen=True)
class DependencyGraph:
    """Arena somente-leitura de Jobs com adjacência por índice."""

    jobs: Tuple[Job, ...]
    index: Dict[str, int]
    dependencies: Tuple[Tuple[int, ...], ...]
    dependents: Tuple[Tuple[int, ...], ...]
    order: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.jobs)

    @property
    def ids(self) -> Tuple[str, ...]:
        return tuple(job.id for job in self.jobs)

    def _idx(self, job_id: str) -> int:
        try:
            return self.index[job_id]
        except KeyError:
            raise UnknownJobError(job_id) from None

    def job(self, job_id: str) -> Job:
        return self.jobs[self._idx(job_id)]

    def dependencies_of(self, job_id: str) -> Tuple[str, ...]:
        return tuple(self.jobs[i].id for i in self.dependencies[self._idx(job_id)])

    def dependents_of(self, job_id: str) -> Tuple[str, ...]:
        return tuple(self.jobs[i].id for i in self.dependents[self._idx(job_id)])

    def transitive_dependents(self, job_id: str) -> Tuple[str, ...]:
        """Todos os Jobs alcançáveis por arestas de dependentes, em ordem topológica."""
        seen = set()
        queue = deque(self.dependents[self._idx(job_id)])
        while queue:
            i = queue.popleft()
            if i in seen:
                continue
            seen.add(i)
            queue.extend(self.dependents[i])
        return tuple(self.jobs[i].id for i in self.order if i in seen)

    def topological_order(self) -> Tuple[Job, ...]:
        return tuple(self.jobs[i] for i in self.order)


def _cycle_from_path(path: Sequence[int], back_to: int, jobs: Sequence[Job]) -> List[str]:
    # path segue arestas de dependentes; o ciclo é reportado no sentido depends_on
    start = list(path).index(back_to)
    loop = list(path[start:])
    ids = [jobs[loop[0]].id] + [jobs[i].id for i in reversed(loop[1:])]
    return ids + [ids[0]]


def _topological_order(
    jobs: Sequence[Job],
    dependents: Sequence[Sequence[int]],
) -> Tuple[int, ...]:
    color = [_WHITE] * len(jobs)
    post: List[int] = []

    for seed in reversed(range(len(jobs))):
        if color[seed] != _WHITE:
            continue
        color[seed] = _GREY
        stack = [(seed, iter(reversed(dependents[seed])))]
        while stack:
            node, children = stack[-1]
            for child in children:
                if color[child] == _GREY:
                    path = [n for n, _ in stack]
                    raise CyclicDependencyError(_cycle_from_path(path, child, jobs))
                if color[child] == _WHITE:
                    color[child] = _GREY
                    stack.append((child, iter(reversed(dependents[child]))))
                    break
            else:
                color[node] = _BLACK
                post.append(node)
                stack.pop()

    post.reverse()
    return tuple(post)


def build_graph(jobs: Union[JobRegistry, Iterable[Job]]) -> DependencyGraph:
    """
    Valida os Jobs e constrói o `DependencyGraph`.

    Raises:
        DuplicateJobError: se dois Jobs compartilharem o mesmo id
        UnknownDependencyError: se um Job depender de id inexistente
        CyclicDependencyError: se as dependências formarem ciclo
    """
    registry = jobs if isinstance(jobs, JobRegistry) else JobRegistry.from_jobs(jobs)
    job_list = registry.all()
    index = {job.id: i for i, job in enumerate(job_list)}

    dependencies: List[Tuple[int, ...]] = []
    dependents: List[List[int]] = [[] for _ in job_list]
    for i, job in enumerate(job_list):
        deps = []
        for dep in job.depends_on:
            if dep not in index:
                raise UnknownDependencyError(referrer=job.id, missing=dep)
            deps.append(index[dep])
            dependents[index[dep]].append(i)
        dependencies.append(tuple(deps))

    order = _topological_order(job_list, dependents)

    return DependencyGraph(
        jobs=job_list,
        index=index,
        dependencies=tuple(dependencies),
        dependents=tuple(tuple(d) for d in dependents),
        order=order,
    )


def plan_execution(jobs: Union[JobRegistry, Iterable[Job]]) -> List[Job]:
    """Valida os Jobs e retorna-os em ordem topológica determinística."""
    return list(build_graph(jobs).topological_order())
