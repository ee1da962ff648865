"""Load system descriptions from YAML or TOML files.

A description lists the value universe of a system:

    name: oscillator
    independent_variable: t
    parameters:
      - {name: k}
      - {name: c, type: int}
      - {name: p, shape: [3]}
      - {name: label, type: str}
    unknowns: [x]
    discrete:
      - clock: {kind: periodic, dt: 0.5}
        inputs: [z]
    events: [e]
    dependencies:
      - {lhs: d, rhs: {op: mul, args: [k, 2]}}
    observed:
      - {lhs: y, rhs: x}
    defaults:
      k: 2.0

Expressions are numbers, names of declared values (including "p[1]"
element references), lists, or `{op: <name>, args: [...]}` nodes. Strings
that do not name a declared value are literals.
"""

import logging
import operator
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

import numpy as np
import yaml

from .errors import SystemDescriptionError
from .symbolic.clocks import EventClock, PeriodicClock, SolverStepClock
from .symbolic.expressions import Operation
from .symbolic.system import DiscretePartition, Equation, SystemSpec
from .symbolic.variables import Real, Variable, parse_reference

logger = logging.getLogger(__name__)

TYPE_NAMES: Dict[str, Any] = {
    "real": Real,
    "float": float,
    "float64": float,
    "float32": np.float32,
    "int": int,
    "int64": int,
    "bool": bool,
    "complex": complex,
    "str": str,
    "object": object,
}

OPERATIONS: Dict[str, Any] = {
    "add": operator.add,
    "sub": operator.sub,
    "mul": operator.mul,
    "truediv": operator.truediv,
    "pow": operator.pow,
    "neg": operator.neg,
}


def _read(path: Path) -> Dict[str, Any]:
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    elif suffix == ".toml":
        with open(path, "rb") as f:
            data = tomllib.load(f)
    else:
        raise SystemDescriptionError(f"Unsupported system description format: {path.suffix}")
    if not isinstance(data, dict):
        raise SystemDescriptionError(f"System description {path} must be a mapping")
    return data


def parse_variable(entry: Union[str, Mapping[str, Any]], tunable_default: bool = True) -> Variable:
    """Variable from a description entry (a name, or a mapping)."""
    if isinstance(entry, str):
        return Variable(entry, tunable=tunable_default)
    if not isinstance(entry, Mapping) or "name" not in entry:
        raise SystemDescriptionError(f"Variable entry must be a name or have a 'name' field, got {entry!r}")

    type_key = str(entry.get("type", "real")).lower()
    if type_key not in TYPE_NAMES:
        raise SystemDescriptionError(
            f"Unknown type {type_key!r} for {entry['name']}. Available: {sorted(TYPE_NAMES)}"
        )

    shape = entry.get("shape", ())
    if shape == "unknown":
        shape = None
    elif isinstance(shape, int):
        shape = (shape,)
    elif isinstance(shape, list):
        shape = tuple(shape)

    return Variable(
        name=str(entry["name"]),
        dtype=TYPE_NAMES[type_key],
        shape=shape,
        tunable=bool(entry.get("tunable", tunable_default)),
        term=entry.get("term"),
        doc=entry.get("doc", ""),
    )


def _parse_clock(entry: Any):
    if not isinstance(entry, Mapping):
        raise SystemDescriptionError(f"Clock must be a mapping, got {entry!r}")
    kind = entry.get("kind", "periodic")
    if kind == "periodic":
        if "dt" not in entry:
            raise SystemDescriptionError("Periodic clock requires 'dt'")
        return PeriodicClock(float(entry["dt"]), float(entry.get("phase", 0.0)))
    if kind == "solver_step":
        return SolverStepClock()
    if kind == "event":
        return EventClock()
    raise SystemDescriptionError(
        f"Unknown clock kind {kind!r}. Available: ['event', 'periodic', 'solver_step']"
    )


class _Scope:
    """Name resolution for references inside a description."""

    def __init__(self, variables: List[Variable]):
        self.variables = {v.name: v for v in variables}

    def reference(self, name: str, where: str):
        if name in self.variables:
            return self.variables[name]
        parsed = parse_reference(name)
        if parsed is not None and parsed[0] in self.variables:
            return self.variables[parsed[0]][parsed[1]]
        raise SystemDescriptionError(f"Unknown value {name!r} in {where}. Available: {sorted(self.variables)}")

    def expression(self, node: Any, where: str) -> Any:
        if isinstance(node, str):
            try:
                return self.reference(node, where)
            except SystemDescriptionError:
                return node
        if isinstance(node, list):
            return [self.expression(item, where) for item in node]
        if isinstance(node, Mapping):
            if "op" not in node:
                raise SystemDescriptionError(f"Expression in {where} must have an 'op' field: {node!r}")
            op = OPERATIONS.get(node["op"])
            if op is None:
                raise SystemDescriptionError(
                    f"Unknown operation {node['op']!r} in {where}. Available: {sorted(OPERATIONS)}"
                )
            return Operation(op, tuple(self.expression(a, where) for a in node.get("args", [])))
        return node


def build_system(data: Mapping[str, Any]) -> SystemSpec:
    """SystemSpec from a parsed description mapping."""
    if "name" not in data:
        raise SystemDescriptionError("System description requires a 'name'")

    parameters = [parse_variable(e) for e in data.get("parameters", [])]
    unknowns = [parse_variable(e, tunable_default=False) for e in data.get("unknowns", [])]
    iv_name = data.get("independent_variable")
    iv = Variable(iv_name, tunable=False) if iv_name else None

    observed_lhs = []
    for eq in data.get("observed", []):
        if "lhs" not in eq:
            raise SystemDescriptionError(f"Observed equation requires 'lhs': {eq!r}")
        observed_lhs.append(Variable(str(eq["lhs"]), tunable=False))

    scope = _Scope(parameters + unknowns + observed_lhs + ([iv] if iv is not None else []))

    partitions = []
    for i, entry in enumerate(data.get("discrete", [])):
        where = f"discrete[{i}]"
        partitions.append(DiscretePartition(
            clock=_parse_clock(entry.get("clock", {})),
            inputs=[scope.reference(n, where) for n in entry.get("inputs", [])],
            unknowns=[scope.reference(n, where) for n in entry.get("unknowns", [])],
        ))

    events = [scope.reference(n, "events") for n in data.get("events", [])]

    dependencies = []
    for eq in data.get("dependencies", []):
        if "lhs" not in eq or "rhs" not in eq:
            raise SystemDescriptionError(f"Dependency requires 'lhs' and 'rhs': {eq!r}")
        dependencies.append(Equation(scope.reference(eq["lhs"], "dependencies"),
                                     scope.expression(eq["rhs"], f"dependency {eq['lhs']}")))

    observed = []
    for lhs, eq in zip(observed_lhs, data.get("observed", [])):
        observed.append(Equation(lhs, scope.expression(eq.get("rhs"), f"observed {lhs}")))

    defaults = {}
    for name, value in (data.get("defaults") or {}).items():
        defaults[scope.reference(name, "defaults")] = scope.expression(value, f"default {name}")

    system = SystemSpec(
        name=str(data["name"]),
        parameters=parameters,
        unknowns=unknowns,
        discrete_partitions=partitions,
        event_affected=events,
        parameter_dependencies=dependencies,
        observed=observed,
        defaults=defaults,
        independent_variable=iv,
    )
    logger.info(f"Loaded system {system.name} with {len(parameters)} parameters")
    return system


def load_system(path: Union[str, Path]) -> SystemSpec:
    """Load a SystemSpec from a YAML (.yaml/.yml) or TOML (.toml) file.

    Raises:
        FileNotFoundError: If the file does not exist
        SystemDescriptionError: If the description is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"System description not found: {path}")
    return build_system(_read(path))
