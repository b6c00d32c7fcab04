"""Shared toy survey: three waves, two 1968 families, one split-off.

Persons (interview_1968, person_1968):
    (1, 1) reference person throughout
    (1, 2) partner throughout
    (1, 3) child in 1968-1969, own family (reference person) in 1983
    (2, 1) single reference person, out of the study by 1983
    (-, 5) null 1968 interview number, only present in 1969
"""

import copy

import numpy as np
import pandas as pd
import pytest

from wavepanel.core.waves import WaveSequence
from wavepanel.core.variable_map import VariableMap
from wavepanel.data_sources.loaders import InMemoryWaveLoader
from wavepanel.pipeline import PanelConfig
from wavepanel.reshape import RoleGate

WAVES = [1968, 1969, 1983]

CONCEPTS = {
    "interview_1968": {"all_waves": "ER30001"},
    "person_1968": {"all_waves": "ER30002"},
    "inum": {"waves": {1968: "I68INUM", 1969: "I69INUM", 1983: "I83INUM"}},
    "seqnum": {"waves": {1969: "I69SEQ", 1983: "I83SEQ"}},
    "relhead": {"dtype": "code", "waves": {1968: "I68REL", 1969: "I69REL", 1983: "I83REL"}},
    "age": {"missing_codes": [999], "waves": {1968: "I68AGE", 1969: "I69AGE", 1983: "I83AGE"}},
    "family_inum": {"level": "family", "waves": {1968: "F68INUM", 1969: "F69INUM", 1983: "F83INUM"}},
    "family_age": {
        "level": "family",
        "role_qualified": True,
        "missing_codes": [0],
        "waves": {
            1968: {"reference": "F68AGEH", "partner": "F68AGEW"},
            1969: {"reference": "F69AGEH", "partner": "F69AGEW"},
            1983: {"reference": "F83AGEH", "partner": "F83AGEW"},
        },
    },
    "family_income": {
        "level": "family",
        "dtype": "float",
        "waves": {1968: "F68INC", 1969: "F69INC", 1983: "F83INC"},
    },
}


def make_individual_table() -> pd.DataFrame:
    return pd.DataFrame({
        "ER30001": [1, 1, 1, 2, np.nan],
        "ER30002": [1, 2, 3, 1, 5],
        "I68INUM": [1, 1, 1, 2, 0],
        "I68REL": [1, 2, 3, 1, 0],
        "I68AGE": [40, 38, 10, 50, 0],
        "I69INUM": [101, 101, 101, 102, 102],
        "I69SEQ": [1, 2, 3, 1, 2],
        "I69REL": [1, 2, 3, 1, 3],
        "I69AGE": [41, 39, 11, 51, 999],
        "I83INUM": [302, 302, 301, 0, 0],
        "I83SEQ": [1, 2, 1, 0, 0],
        "I83REL": [10, 20, 10, 0, 0],
        "I83AGE": [55, 53, 25, 0, 0],
    })


def make_family_tables() -> dict:
    return {
        1968: pd.DataFrame({
            "F68INUM": [1, 2],
            "F68AGEH": [40, 50],
            "F68AGEW": [38, 0],
            "F68INC": [1000.0, 2000.0],
        }),
        1969: pd.DataFrame({
            "F69INUM": [101, 102],
            "F69AGEH": [41, 51],
            "F69AGEW": [39, 0],
            "F69INC": [1100.0, 2100.0],
        }),
        1983: pd.DataFrame({
            "F83INUM": [301, 302, 303],
            "F83AGEH": [25, 55, 60],
            "F83AGEW": [0, 53, 0],
            "F83INC": [500.0, 3000.0, 4000.0],
        }),
    }


@pytest.fixture
def waves():
    return WaveSequence(years=WAVES)


@pytest.fixture
def variable_map(waves):
    return VariableMap.from_dict(CONCEPTS, waves)


@pytest.fixture
def individual_table():
    return make_individual_table()


@pytest.fixture
def family_tables():
    return make_family_tables()


@pytest.fixture
def loader(individual_table, family_tables):
    return InMemoryWaveLoader(individual=individual_table, family=family_tables)


@pytest.fixture
def config():
    return PanelConfig(role_gate=RoleGate(presence_concept="family_age"))


@pytest.fixture
def concept_spec():
    return copy.deepcopy(CONCEPTS)
