"""Whole elections with a single authority and with a 3 of 4 teller set."""

from collections import Counter
from dataclasses import replace

import pytest

from run_election import run_election

NUMBER_OF_VOTERS = 100
CHOICES = [str(i) for i in range(10)]


def _votes():
    votes = []
    for i in range(NUMBER_OF_VOTERS):
        if i % 7 == 0:
            votes.append(None)
        elif i % 5 == 0:
            votes.append("")
        else:
            votes.append(str(i % 10))
    return votes


@pytest.mark.parametrize("number_of_tellers, threshold_tellers", [(0, 0), (1, 1), (4, 3)])
def test_every_voter_finds_their_vote(steps, parameters, number_of_tellers, threshold_tellers):
    election = replace(
        parameters,
        name=f"election-{number_of_tellers}",
        number_of_tellers=number_of_tellers,
        threshold_tellers=threshold_tellers,
    )
    votes = _votes()
    result = run_election(steps, election, votes, CHOICES)

    cast = [v for v in votes if v]
    assert len(result["mixed"]) == len(cast)
    assert result["verified"] == len(cast)
    assert result["tally"] == Counter(cast)

    # every tracker number is published at most once
    published = [m.tracker_number.tracker_number for m in result["mixed"]]
    assert len(set(published)) == len(published)

    for voter in result["voters"]:
        assert voter.plain_text_vote is None
        assert voter.alpha is not None and voter.beta is not None
    assert [v.id for v in result["voters"]] == list(range(1, NUMBER_OF_VOTERS + 1))
