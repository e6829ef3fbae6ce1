# dag.py
from __future__ import annotations

from collections import deque
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Set, Tuple

from .errors import CycleError, DuplicateIdError, GraphFrozenError, UnknownDependencyError
from .model import JobTemplate


class JobGraph:
    """
    Mutable builder for the template-level job graph.

    Edges are implicit in each template's `needs`; they are validated by
    finalize(), which returns an immutable FrozenJobGraph. The builder itself
    rejects every mutation after that.
    """

    def __init__(self, jobs: Iterable[JobTemplate] = ()):
        self._templates: Dict[str, JobTemplate] = {}
        self._frozen: FrozenJobGraph | None = None
        for job in jobs:
            self.add_job(job)

    def add_job(self, template: JobTemplate) -> None:
        if self._frozen is not None:
            raise GraphFrozenError(f"Cannot add job '{template.id}': graph already finalized")
        if template.id in self._templates:
            raise DuplicateIdError(template.id)
        self._templates[template.id] = template

    def finalize(self) -> FrozenJobGraph:
        if self._frozen is not None:
            return self._frozen

        known = list(self._templates)
        for template in self._templates.values():
            for dep in template.needs:
                if dep not in self._templates:
                    raise UnknownDependencyError(template.id, dep, known)

        detect_cycles({t.id: list(t.needs) for t in self._templates.values()})
        self._frozen = FrozenJobGraph(self._templates)
        return self._frozen


class FrozenJobGraph:
    """Read-only, validated template graph."""

    def __init__(self, templates: Mapping[str, JobTemplate]):
        self._templates = MappingProxyType(dict(templates))
        self._adj, self._indeg = build_dag(self._templates.values())

    @property
    def templates(self) -> Mapping[str, JobTemplate]:
        return self._templates

    def get(self, job_id: str) -> JobTemplate:
        return self._templates[job_id]

    def dependents(self, job_id: str) -> List[str]:
        return sorted(self._adj[job_id])

    def levels(self) -> List[List[str]]:
        return topo_levels(self._adj, self._indeg)

    def __iter__(self):
        return iter(self._templates.values())

    def __len__(self) -> int:
        return len(self._templates)


def detect_cycles(needs: Mapping[str, List[str]]) -> None:
    """
    Three-colour DFS over `needs` edges. Raises CycleError with the cycle
    path. Unknown targets are ignored here (validated separately).
    """
    WHITE, GRAY, BLACK = 0, 1, 2
    color: Dict[str, int] = {n: WHITE for n in needs}
    path: List[str] = []

    def visit(node: str) -> None:
        color[node] = GRAY
        path.append(node)
        for dep in needs.get(node, []):
            if dep not in color:
                continue
            if color[dep] == GRAY:
                start = path.index(dep)
                raise CycleError(path[start:] + [dep])
            if color[dep] == WHITE:
                visit(dep)
        path.pop()
        color[node] = BLACK

    for node in needs:
        if color[node] == WHITE:
            visit(node)


def build_dag(jobs: Iterable[JobTemplate]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Adjacency (dep -> dependents) and in-degree per job id.
    Assumes ids are unique and needs resolve.
    """
    jobs = list(jobs)
    adj: Dict[str, Set[str]] = {j.id: set() for j in jobs}
    indeg: Dict[str, int] = {j.id: 0 for j in jobs}

    for job in jobs:
        for dep in job.needs:
            # Edge dep -> job.id (dep must run before job)
            if job.id not in adj[dep]:
                adj[dep].add(job.id)
                indeg[job.id] += 1

    return adj, indeg


def topo_levels(adj: Mapping[str, Set[str]], indeg: Mapping[str, int]) -> List[List[str]]:
    """
    Convert a DAG into topological "levels" (stages).
    Each stage could run in parallel.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted(n for n, d in indeg.items() if d == 0))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level: List[str] = []
        for _ in range(len(q)):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted(n for n, d in indeg.items() if d > 0)
        raise CycleError(remaining)

    return levels
