"""Shared systems for parameter buffer tests."""

import pytest

from modelops_parambuf import (
    DiscretePartition,
    Equation,
    EventClock,
    PeriodicClock,
    SolverStepClock,
    SystemSpec,
    Variable,
)


# ============================================================================
# Small systems
# ============================================================================


@pytest.fixture
def scenario_vars():
    """Tunable k, integer constant c, discrete x."""
    return {
        "k": Variable("k"),
        "c": Variable("c", dtype=int),
        "x": Variable("x"),
    }


@pytest.fixture
def scenario_system(scenario_vars):
    k, c, x = scenario_vars["k"], scenario_vars["c"], scenario_vars["x"]
    return SystemSpec(
        name="scenario",
        parameters=[k, c, x],
        discrete_partitions=[DiscretePartition(PeriodicClock(1.0), inputs=[x])],
    )


@pytest.fixture
def scenario_store(scenario_system, scenario_vars):
    from modelops_parambuf import ParameterStore
    v = scenario_vars
    return ParameterStore.from_system(scenario_system, {v["k"]: 2.0, v["c"]: 5, v["x"]: 0.0})


@pytest.fixture
def array_var():
    return Variable("p", shape=(3,))


@pytest.fixture
def array_system(array_var):
    return SystemSpec(name="arrays", parameters=[array_var])


@pytest.fixture
def slotted_vars():
    """Array-valued constant and discrete parameters next to scalar ones."""
    return {
        "a": Variable("a", shape=(2,), tunable=False),
        "c": Variable("c", dtype=int),
        "m": Variable("m", shape=(2, 2), dtype=int),
        "x": Variable("x", shape=(2,)),
        "z": Variable("z", dtype=int),
    }


@pytest.fixture
def slotted_system(slotted_vars):
    v = slotted_vars
    return SystemSpec(
        name="slotted",
        parameters=[v["a"], v["c"], v["m"], v["x"], v["z"]],
        discrete_partitions=[
            DiscretePartition(PeriodicClock(1.0), inputs=[v["x"]]),
            DiscretePartition(SolverStepClock(), inputs=[v["z"]]),
        ],
    )


@pytest.fixture
def slotted_store(slotted_system, slotted_vars):
    from modelops_parambuf import ParameterStore
    v = slotted_vars
    return ParameterStore.from_system(slotted_system, {
        v["a"]: [2.0, 3.0],
        v["c"]: 1,
        v["m"]: [[1, 2], [3, 4]],
        v["x"]: [0.5, 1.5],
        v["z"]: 7,
    })


# ============================================================================
# Mixed system covering every portion
# ============================================================================


@pytest.fixture
def mixed_vars():
    """Variables of the mixed system.

    Layout:
        tunable    k -> 0, p -> [1, 4)
        discrete   x -> clock 0, z -> clock 1 (int), e -> event clock 2
        constants  c (int), n (Real), flag (bool)
        nonnumeric label (str)
        dependent  d = 2 * k
    """
    return {
        "t": Variable("t", tunable=False),
        "k": Variable("k", term="k(t)"),
        "p": Variable("p", shape=(3,)),
        "c": Variable("c", dtype=int),
        "n": Variable("n", tunable=False),
        "flag": Variable("flag", dtype=bool),
        "label": Variable("label", dtype=str),
        "x": Variable("x"),
        "z": Variable("z", dtype=int),
        "e": Variable("e"),
        "d": Variable("d"),
        "u": Variable("u", tunable=False),
        "w": Variable("w", shape=(2,), tunable=False),
        "y": Variable("y", tunable=False),
    }


@pytest.fixture
def mixed_system(mixed_vars):
    v = mixed_vars
    return SystemSpec(
        name="mixed",
        parameters=[v["k"], v["p"], v["c"], v["n"], v["flag"], v["label"],
                    v["x"], v["z"], v["e"], v["d"]],
        unknowns=[v["u"], v["w"]],
        discrete_partitions=[
            DiscretePartition(PeriodicClock(0.5), inputs=[v["x"]]),
            DiscretePartition(SolverStepClock(), unknowns=[v["z"]]),
        ],
        event_affected=[v["e"]],
        parameter_dependencies=[Equation(v["d"], 2 * v["k"])],
        observed=[Equation(v["y"], v["u"])],
        independent_variable=v["t"],
    )


@pytest.fixture
def mixed_values(mixed_vars):
    v = mixed_vars
    return {
        v["k"]: 2.0,
        v["p"]: [1.0, 2.0, 3.0],
        v["c"]: 5,
        v["n"]: 1.0,
        v["flag"]: True,
        v["label"]: "hi",
        v["x"]: 0.0,
        v["z"]: 3,
        v["e"]: 1.5,
    }


@pytest.fixture
def mixed_store(mixed_system, mixed_values):
    from modelops_parambuf import ParameterStore
    return ParameterStore.from_system(mixed_system, mixed_values)


@pytest.fixture
def mixed_ic(mixed_system):
    return mixed_system.index_cache


@pytest.fixture
def event_clock():
    return EventClock()
