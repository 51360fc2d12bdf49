"""Default settings for the Selene helpers.

Values here are used whenever a caller omits an argument. The ones that a
deployment would reasonably change can be overridden through environment
variables.
"""

import os

## --- group parameters -----------------------------------------------------

DEFAULT_LENGTH_L = 3072
DEFAULT_LENGTH_N = 256
DEFAULT_PRIME_CERTAINTY = 128

# (L, N) pairs accepted by FIPS 186-4
DSA_LENGTHS = ((1024, 160), (2048, 224), (2048, 256), (3072, 256))

## --- tellers --------------------------------------------------------------

# used by the demo runner when --tellers is given without a count
DEFAULT_NUMBER_OF_TELLERS = 4
DEFAULT_THRESHOLD_TELLERS = 3
DEFAULT_TELLER_HOST = "127.0.0.1"
DEFAULT_TELLER_PORT = 8080
DEFAULT_HINT_PORT = 8081

MIXNET_DIRECTORY = os.environ.get("SELENE_MIXNET_DIRECTORY", "mixnet")
# a cheating mixer passes with probability 2^-rounds
SHUFFLE_PROOF_ROUNDS = int(os.environ.get("SELENE_SHUFFLE_ROUNDS", "80"))
BARRIER_POLL_INTERVAL = float(os.environ.get("SELENE_BARRIER_POLL_INTERVAL", "0.05"))
BARRIER_TIMEOUT = float(os.environ.get("SELENE_BARRIER_TIMEOUT", "600"))

## --- election values ------------------------------------------------------

TRACKER_NUMBER_MIN = 10000000
TRACKER_NUMBER_MAX = 99999999

# exponent range for vote options mapped into the group
VOTE_OPTION_EXPONENT_MAX = 2**31 - 2

## --- logging --------------------------------------------------------------

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL = os.environ.get("SELENE_LOG_LEVEL", "INFO")
