"""Runner that simulates a small Selene election end to end.

Run this script from the repository root. With --tellers 0 a single
authority holds the election key; otherwise every teller runs in its own
thread and the tellers meet through the mixnet directory.
"""

import argparse
import logging
import shutil
import tempfile
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from selene import SeleneSteps, config
from selene.data import VoteOption, Voter
from selene.mixnet import MixnetHelper

DEFAULT_CHOICES = ["Alice", "Bob", "Carol"]


def _print_heading(msg: str):
    print()
    print(msg)


def _print_kv(key: str, value: str):
    print(f"  {key}: {value}")


def _each_teller(executor, parameters, fn) -> List:
    """Run fn(teller) for every teller in parallel, results ordered by teller."""
    tellers = range(1, parameters.number_of_tellers + 1)
    return list(executor.map(fn, tellers))


def _set_up_tellers(steps: SeleneSteps, parameters, executor):
    storage = steps.mixnet.storage(parameters)
    info_files = _each_teller(executor, parameters, lambda t: steps.create_teller(parameters, t))
    # hand every teller a copy of every other teller's information file
    for teller in range(1, parameters.number_of_tellers + 1):
        directory = storage.teller_directory(teller)
        for info_file in info_files:
            if info_file.parent != directory:
                shutil.copy(info_file, directory / info_file.name)
    _each_teller(
        executor,
        parameters,
        lambda t: steps.merge_teller(parameters, t, steps.get_teller_information_files(parameters, t)),
    )


def run_election(steps: SeleneSteps, parameters, votes: List[Optional[str]], choices: List[str]) -> Dict:
    """Run every Selene step for one vote per voter and check each voter's tracker.

    A vote of None or "" abstains. Returns the records of the run together
    with the tally and the number of voters whose tracker check passed.
    """
    number_of_voters = len(votes)
    executor = ThreadPoolExecutor(max_workers=max(parameters.number_of_tellers, 1))
    with executor:
        if parameters.uses_tellers:
            _set_up_tellers(steps, parameters, executor)
            key_pair = _each_teller(executor, parameters, lambda t: steps.create_election_key_pair(parameters, t))[0]
        else:
            key_pair = steps.create_election_key_pair(parameters)

        voters_key_pairs = steps.create_voters_key_pairs(number_of_voters, parameters)
        tracker_numbers = steps.create_tracker_numbers(parameters, key_pair, number_of_voters)

        if parameters.uses_tellers:
            shuffled = _each_teller(
                executor, parameters, lambda t: steps.shuffle_tracker_numbers(parameters, t, tracker_numbers)
            )[0].value
            commitments = [
                c.value
                for c in _each_teller(
                    executor,
                    parameters,
                    lambda t: steps.create_commitments(parameters, key_pair, voters_key_pairs, shuffled),
                )
            ]
            voters = _each_teller(
                executor,
                parameters,
                lambda t: steps.decrypt_commitments(parameters, key_pair, t, voters_key_pairs, shuffled, commitments),
            )[0].value
        else:
            shuffled = steps.shuffle_tracker_numbers(parameters, None, tracker_numbers, key_pair).value
            commitments = [steps.create_commitments(parameters, key_pair, voters_key_pairs, shuffled).value]
            voters = steps.decrypt_commitments(parameters, key_pair, None, voters_key_pairs, shuffled, commitments).value

        steps.associate_voters([Voter(id=i + 1) for i in range(number_of_voters)], voters)
        vote_options = steps.map_vote_options(parameters, [VoteOption(option=c) for c in choices])
        steps.complete_commitments(parameters, voters, commitments)
        for voter, vote in zip(voters, votes):
            voter.plain_text_vote = vote
        steps.encrypt_votes(parameters, key_pair, voters_key_pairs, vote_options, voters)

        if parameters.uses_tellers:
            mixed = _each_teller(
                executor,
                parameters,
                lambda t: steps.mix_votes(parameters, key_pair, t, tracker_numbers, vote_options, voters),
            )[0].value
        else:
            mixed = steps.mix_votes(parameters, key_pair, None, tracker_numbers, vote_options, voters).value

    published = {m.tracker_number.tracker_number: m.plain_text_vote for m in mixed}
    verified = 0
    for voter, vote in zip(voters, votes):
        tracker = steps.decrypt_tracker_number(
            parameters, voter.alpha, voter.beta, voter.trapdoor_key_pair.public_key, voters_key_pairs, tracker_numbers
        )
        if vote and published.get(tracker.tracker_number) == vote:
            verified += 1
    return {
        "key_pair": key_pair,
        "tracker_numbers": tracker_numbers,
        "vote_options": vote_options,
        "voters": voters,
        "mixed": mixed,
        "tally": Counter(published.values()),
        "verified": verified,
    }


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Simulate a Selene election")
    parser.add_argument("--voters", type=int, default=10)
    # bare --tellers runs the default teller set up; without it one authority holds the key
    parser.add_argument("--tellers", type=int, nargs="?", default=0, const=config.DEFAULT_NUMBER_OF_TELLERS)
    parser.add_argument("--threshold", type=int, default=None)
    parser.add_argument("--length-l", type=int, default=1024)
    parser.add_argument("--length-n", type=int, default=160)
    parser.add_argument("--certainty", type=int, default=config.DEFAULT_PRIME_CERTAINTY)
    parser.add_argument("--shuffle-rounds", type=int, default=None)
    parser.add_argument("--mixnet-directory", default=None)
    args = parser.parse_args(argv)
    if args.threshold is None:
        args.threshold = min(config.DEFAULT_THRESHOLD_TELLERS, args.tellers)
    return args


def main(argv=None):
    args = _parse_args(argv)
    logging.basicConfig(format=config.LOG_FORMAT, level=config.LOG_LEVEL)
    directory = args.mixnet_directory or tempfile.mkdtemp(prefix="selene-mixnet-")
    steps = SeleneSteps(mixnet=MixnetHelper(directory, shuffle_rounds=args.shuffle_rounds))

    _print_heading("[Set up] Election parameters")
    parameters = steps.create_election_parameters(
        "demo", args.tellers, args.threshold, args.length_l, args.length_n, args.certainty
    )
    _print_kv("fingerprint", parameters.fingerprint()[:16])
    _print_kv("tellers", f"{parameters.threshold_tellers} of {parameters.number_of_tellers}")

    votes = [None if i % 5 == 4 else DEFAULT_CHOICES[i % len(DEFAULT_CHOICES)] for i in range(args.voters)]
    _print_heading("[Election] Running every step")
    result = run_election(steps, parameters, votes, DEFAULT_CHOICES)
    _print_kv("election key", hex(result["key_pair"].public_key)[:18] + "..")
    _print_kv("votes cast", str(len(result["mixed"])))

    _print_heading("[Tally] Mixed votes")
    for choice in DEFAULT_CHOICES:
        _print_kv(choice, str(result["tally"].get(choice, 0)))

    _print_heading("[Verification] Voters who found their vote by tracker number")
    cast = sum(1 for v in votes if v)
    _print_kv("verified", f"{result['verified']} of {cast}")
    print("\nVerification result:", "OK" if result["verified"] == cast else "MISMATCH")
    return 0 if result["verified"] == cast else 1


if __name__ == "__main__":
    raise SystemExit(main())
