import os
import secrets
import sys

import pytest


# Ensure repository src directory is on sys.path for tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC = os.path.join(ROOT, "src")
for path in (SRC, ROOT):
    if path not in sys.path:
        sys.path.insert(0, path)

from selene.dsa import DSAAlgorithmHelper  # noqa: E402
from selene.mixnet import MixnetHelper  # noqa: E402
from selene.steps import SeleneSteps  # noqa: E402

# smallest FIPS lengths keep parameter generation and proofs quick
TEST_LENGTH_L = 1024
TEST_LENGTH_N = 160
TEST_CERTAINTY = 40
TEST_SHUFFLE_ROUNDS = 6


@pytest.fixture(scope="session")
def random():
    return secrets.SystemRandom()


@pytest.fixture(scope="session")
def parameters(random):
    return DSAAlgorithmHelper().create_parameters(random, TEST_LENGTH_L, TEST_LENGTH_N, TEST_CERTAINTY)


@pytest.fixture(scope="session")
def key_pair(random, parameters):
    return DSAAlgorithmHelper().create_keys(random, parameters)


@pytest.fixture
def mixnet(tmp_path):
    return MixnetHelper(tmp_path / "mixnet", shuffle_rounds=TEST_SHUFFLE_ROUNDS, poll_interval=0.01, timeout=300)


@pytest.fixture
def steps(random, mixnet, tmp_path):
    return SeleneSteps(random=random, mixnet=mixnet, proof_directory=tmp_path / "proofs")
