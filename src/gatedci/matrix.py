# matrix.py
from __future__ import annotations

from itertools import product
from typing import Dict, List, Tuple

from .dag import FrozenJobGraph, detect_cycles
from .errors import DefinitionError
from .model import JobInstance, JobTemplate


class InstanceGraph:
    """
    Instance-level DAG produced by matrix expansion.

    An instance needs every instance of each template its own template
    needs (fan-out then fan-in). Instances of one template share no edges.
    """

    def __init__(self, graph: FrozenJobGraph, by_template: Dict[str, List[JobInstance]]):
        self._graph = graph
        self._by_template = by_template
        self.instances: List[JobInstance] = [
            inst for t in graph for inst in by_template[t.id]
        ]
        self._needs: Dict[JobInstance, List[JobInstance]] = {}
        self._dependents: Dict[JobInstance, List[JobInstance]] = {i: [] for i in self.instances}

        for inst in self.instances:
            needed = [
                dep
                for dep_id in dict.fromkeys(graph.get(inst.template_id).needs)
                for dep in by_template[dep_id]
            ]
            self._needs[inst] = needed
            for dep in needed:
                self._dependents[dep].append(inst)

        detect_cycles({i.key: [d.key for d in self._needs[i]] for i in self.instances})

    def template(self, instance: JobInstance) -> JobTemplate:
        return self._graph.get(instance.template_id)

    def needs(self, instance: JobInstance) -> List[JobInstance]:
        return list(self._needs[instance])

    def dependents(self, instance: JobInstance) -> List[JobInstance]:
        return list(self._dependents[instance])

    def siblings(self, instance: JobInstance) -> List[JobInstance]:
        return [i for i in self._by_template[instance.template_id] if i != instance]

    def of_template(self, template_id: str) -> List[JobInstance]:
        return list(self._by_template[template_id])

    def levels(self) -> List[List[JobInstance]]:
        return [
            [i for t in level for i in self._by_template[t]]
            for level in self._graph.levels()
        ]

    def __iter__(self):
        return iter(self.instances)

    def __len__(self) -> int:
        return len(self.instances)


def expand_template(template: JobTemplate) -> List[JobInstance]:
    """Cartesian product of the template's axes, in declaration order."""
    if not template.matrix:
        return [JobInstance(template.id, (), template.display_name({}))]

    axes = list(template.matrix)
    for axis in axes:
        if not list(template.matrix[axis]):
            raise DefinitionError(f"Job '{template.id}' matrix axis '{axis}' has no values")

    instances: List[JobInstance] = []
    seen = set()
    keys: Dict[str, Tuple] = {}
    for combo in product(*(template.matrix[a] for a in axes)):
        assignment = tuple(zip(axes, combo))
        if assignment in seen:
            continue
        seen.add(assignment)
        inst_key = JobInstance(template.id, assignment).key
        if inst_key in keys:
            # e.g. 1 and "1" on one axis
            raise DefinitionError(
                f"Job '{template.id}' matrix values {keys[inst_key]!r} and {assignment!r} "
                f"both produce instance key '{inst_key}'"
            )
        keys[inst_key] = assignment
        instances.append(
            JobInstance(template.id, assignment, template.display_name(dict(assignment)))
        )
    return instances


def expand_matrix(graph: FrozenJobGraph) -> InstanceGraph:
    return InstanceGraph(graph, {t.id: expand_template(t) for t in graph})
