import json
import logging
from dataclasses import replace

import pytest

from selene import config
from selene.ciphertext import CipherText
from selene.data import CommitmentProof, KeyPair, TrackerNumber, VoteOption, Voter, VoterKeyPairs
from selene.elgamal import decrypt_element
from selene.exceptions import CryptographyError, MalformedInputError, MissingKeyError
from selene.progress import LoggingProgressListener, ProgressListener


class RecordingListener(ProgressListener):
    def __init__(self):
        self.events = []

    def on_start(self, name, total=None):
        self.events.append(("start", name, total))

    def on_progress(self, name, done):
        self.events.append(("progress", name, done))

    def on_end(self, name):
        self.events.append(("end", name))


@pytest.fixture
def teller_parameters(parameters):
    return replace(parameters, name="steps-test", number_of_tellers=4, threshold_tellers=3)


## --- election set up ------------------------------------------------------------


def test_invalid_threshold_is_rejected(steps):
    with pytest.raises(MalformedInputError):
        steps.create_election_parameters("x", 3, 4, 1024, 160)
    with pytest.raises(MalformedInputError):
        steps.create_election_parameters("x", 3, 0, 1024, 160)


def test_check_tellers(steps, parameters, teller_parameters):
    with pytest.raises(CryptographyError) as e:
        steps.check_tellers(parameters, 1)
    assert e.value.message == "Cannot create teller when election is not using tellers"
    with pytest.raises(CryptographyError) as e:
        steps.check_tellers(teller_parameters, 5)
    assert "range 1 to 4" in e.value.message
    with pytest.raises(CryptographyError):
        steps.check_tellers(teller_parameters, 0)
    steps.check_tellers(teller_parameters, 4)


def test_create_teller_needs_tellers(steps, parameters):
    with pytest.raises(CryptographyError):
        steps.create_teller(parameters, 1)


def test_single_authority_key_pair(steps, parameters):
    key_pair = steps.create_election_key_pair(parameters)
    assert key_pair.public_key == pow(parameters.g, key_pair.private_key, parameters.p)


def test_voters_key_pairs_report_progress(steps, parameters):
    listener = RecordingListener()
    steps.add_progress_listener(listener)
    key_pairs = steps.create_voters_key_pairs(3, parameters)
    steps.remove_progress_listener(listener)

    assert len(key_pairs) == 3
    assert all(kp.signature_key_pair.public_key != kp.trapdoor_key_pair.public_key for kp in key_pairs)
    assert listener.events[0] == ("start", "create-voters-key-pairs", 3)
    assert listener.events[-1] == ("end", "create-voters-key-pairs")
    assert [e[2] for e in listener.events if e[0] == "progress"] == [1, 2, 3]


## --- tracker numbers ------------------------------------------------------------


def test_tracker_numbers_are_distinct_and_encrypted(steps, parameters, key_pair):
    trackers = steps.create_tracker_numbers(parameters, key_pair, 20)
    assert len({t.tracker_number for t in trackers}) == 20
    for t in trackers:
        assert config.TRACKER_NUMBER_MIN <= t.tracker_number <= config.TRACKER_NUMBER_MAX
        assert t.tracker_number_in_group == pow(parameters.g, t.tracker_number, parameters.p)
        cipher_text = CipherText.from_bytes(t.encrypted_tracker_number_in_group)
        assert decrypt_element(parameters, key_pair.private_key, cipher_text) == t.tracker_number_in_group


def test_tracker_numbers_need_public_key(steps, parameters):
    with pytest.raises(MissingKeyError):
        steps.create_tracker_numbers(parameters, KeyPair(), 1)


def test_local_shuffle_of_tracker_numbers(steps, parameters, key_pair):
    trackers = steps.create_tracker_numbers(parameters, key_pair, 6)
    shuffled = steps.shuffle_tracker_numbers(parameters, None, trackers, key_pair)

    assert shuffled.proof_file.exists()
    assert all(t.tracker_number is None and t.tracker_number_in_group is None for t in shuffled.value)
    encrypted = {t.encrypted_tracker_number_in_group for t in trackers}
    assert not encrypted & {t.encrypted_tracker_number_in_group for t in shuffled.value}
    decrypted = {
        decrypt_element(parameters, key_pair.private_key, CipherText.from_bytes(t.encrypted_tracker_number_in_group))
        for t in shuffled.value
    }
    assert decrypted == {t.tracker_number_in_group for t in trackers}


def test_local_shuffle_needs_election_key(steps, parameters, key_pair):
    trackers = steps.create_tracker_numbers(parameters, key_pair, 2)
    with pytest.raises(MissingKeyError):
        steps.shuffle_tracker_numbers(parameters, None, trackers)


## --- commitments ------------------------------------------------------------------


def test_commitments_and_tracker_recovery(steps, parameters, key_pair):
    voters_key_pairs = steps.create_voters_key_pairs(3, parameters)
    trackers = steps.create_tracker_numbers(parameters, key_pair, 3)
    shuffled = steps.shuffle_tracker_numbers(parameters, None, trackers, key_pair).value

    commitments = steps.create_commitments(parameters, key_pair, voters_key_pairs, shuffled)
    assert commitments.proof_file.exists()
    for commitment, kp in zip(commitments.value, voters_key_pairs):
        assert commitment.public_key == kp.trapdoor_key_pair.public_key

    voters = steps.decrypt_commitments(parameters, key_pair, None, voters_key_pairs, shuffled, [commitments.value]).value
    steps.complete_commitments(parameters, voters, [commitments.value])

    recovered = [
        steps.decrypt_tracker_number(
            parameters, v.alpha, v.beta, v.trapdoor_key_pair.public_key, voters_key_pairs, trackers
        ).tracker_number
        for v in voters
    ]
    assert sorted(recovered) == sorted(t.tracker_number for t in trackers)


def test_commitment_proof_file(steps, parameters, key_pair):
    voters_key_pairs = steps.create_voters_key_pairs(1, parameters)
    trackers = steps.create_tracker_numbers(parameters, key_pair, 1)
    created = steps.create_commitments(parameters, key_pair, voters_key_pairs, trackers)
    commitment = created.value[0]
    public_key = voters_key_pairs[0].trapdoor_key_pair.public_key

    proof = CommitmentProof.from_dict(json.loads(created.proof_file.read_text())[0])
    assert steps.verify_commitment_proof(parameters, key_pair, public_key, commitment, proof)

    other_key = voters_key_pairs[0].signature_key_pair.public_key
    assert not steps.verify_commitment_proof(parameters, key_pair, other_key, commitment, proof)
    tampered = replace(proof, c=(proof.c * parameters.g) % parameters.p)
    assert not steps.verify_commitment_proof(parameters, key_pair, public_key, commitment, tampered)
    assert not steps.verify_commitment_proof(parameters, key_pair, public_key, commitment, replace(proof, pi5=None))


def test_commitment_counts_must_match(steps, parameters, key_pair):
    voters_key_pairs = steps.create_voters_key_pairs(2, parameters)
    trackers = steps.create_tracker_numbers(parameters, key_pair, 1)
    with pytest.raises(CryptographyError):
        steps.create_commitments(parameters, key_pair, voters_key_pairs, trackers)
    with pytest.raises(CryptographyError):
        steps.decrypt_commitments(parameters, key_pair, None, voters_key_pairs, trackers, [[]])


def test_uneven_teller_commitments_are_rejected(steps, parameters, key_pair):
    voters_key_pairs = steps.create_voters_key_pairs(2, parameters)
    trackers = steps.create_tracker_numbers(parameters, key_pair, 2)
    commitments = steps.create_commitments(parameters, key_pair, voters_key_pairs, trackers).value
    uneven = [commitments, commitments[:1]]
    with pytest.raises(CryptographyError) as e:
        steps.decrypt_commitments(parameters, key_pair, None, voters_key_pairs, trackers, uneven)
    assert e.value.message == "Number of voters and commitments from teller 2 does not match: 2 vs. 1"
    voters = [Voter(voter_key_pairs=v) for v in voters_key_pairs]
    with pytest.raises(CryptographyError):
        steps.complete_commitments(parameters, voters, uneven)
    with pytest.raises(CryptographyError):
        steps.complete_commitments(parameters, voters, [commitments, commitments + commitments[:1]])
    with pytest.raises(CryptographyError):
        steps.complete_commitments(parameters, voters, [])


def test_commitment_must_belong_to_voter(steps, parameters, key_pair):
    voters_key_pairs = steps.create_voters_key_pairs(1, parameters)
    trackers = steps.create_tracker_numbers(parameters, key_pair, 1)
    commitment = steps.create_commitments(parameters, key_pair, voters_key_pairs, trackers).value[0]
    other = steps.create_voters_key_pairs(1, parameters)
    with pytest.raises(CryptographyError):
        steps.decrypt_commitments(parameters, key_pair, None, other, trackers, [[commitment]])
    with pytest.raises(CryptographyError):
        steps.complete_commitments(parameters, [Voter(voter_key_pairs=other[0])], [[commitment]])


## --- voters and ballots -----------------------------------------------------------


def _voter(public_key=None):
    return Voter(voter_key_pairs=VoterKeyPairs(trapdoor_key_pair=KeyPair(public_key=public_key)))


def test_associate_by_key_then_order(steps):
    destination = [_voter(10), _voter(20), _voter(30)]
    source = [Voter(id=1, voter_key_pairs=VoterKeyPairs(trapdoor_key_pair=KeyPair(public_key=30))), Voter(id=2), Voter(id=3)]
    assert steps.associate_voters(source, destination) is destination
    assert [v.id for v in destination] == [2, 3, 1]


def test_associate_errors(steps):
    with pytest.raises(CryptographyError):
        steps.associate_voters([Voter(id=1)], [])
    unknown = Voter(id=1, voter_key_pairs=VoterKeyPairs(trapdoor_key_pair=KeyPair(public_key=99)))
    with pytest.raises(CryptographyError):
        steps.associate_voters([unknown], [_voter(10)])


def test_map_vote_options(steps, parameters):
    options = [VoteOption("Alice"), VoteOption(" "), VoteOption(None), VoteOption("Bob"), VoteOption("Alice")]
    mapped = steps.map_vote_options(parameters, options)
    assert [o.option for o in mapped] == ["Alice", "Bob"]
    values = [o.option_number_in_group for o in mapped]
    assert len(set(values)) == 2
    assert all(pow(v, parameters.q, parameters.p) == 1 for v in values)

    # mapping again changes nothing
    again = steps.map_vote_options(parameters, mapped + [VoteOption("Carol")])
    assert [o.option_number_in_group for o in again[:2]] == values
    assert again[2].option == "Carol" and again[2].option_number_in_group not in values


def test_map_vote_options_rejects_shared_values(steps, parameters):
    with pytest.raises(CryptographyError):
        steps.map_vote_options(parameters, [VoteOption("A", 5), VoteOption("B", 5)])
    with pytest.raises(CryptographyError):
        steps.map_vote_options(parameters, [VoteOption("A", 5), VoteOption("A", 6)])


@pytest.fixture
def ballot_setup(steps, parameters, key_pair):
    voters_key_pairs = steps.create_voters_key_pairs(3, parameters)
    trackers = steps.create_tracker_numbers(parameters, key_pair, 3)
    commitments = [steps.create_commitments(parameters, key_pair, voters_key_pairs, trackers).value]
    voters = steps.decrypt_commitments(parameters, key_pair, None, voters_key_pairs, trackers, commitments).value
    steps.complete_commitments(parameters, voters, commitments)
    options = steps.map_vote_options(parameters, [VoteOption("Yes"), VoteOption("No")])
    return voters_key_pairs, trackers, voters, options


def test_encrypt_votes_skips_abstentions(steps, parameters, key_pair, ballot_setup):
    voters_key_pairs, trackers, voters, options = ballot_setup
    for voter, vote in zip(voters, ["Yes", " ", None]):
        voter.plain_text_vote = vote
    encrypted = steps.encrypt_votes(parameters, key_pair, voters_key_pairs, options, voters)

    assert encrypted.value is voters
    assert voters[0].encrypted_vote and voters[0].plain_text_vote is None
    assert voters[1].encrypted_vote is None and voters[2].encrypted_vote is None
    assert encrypted.proof_file.exists()

    mixed = steps.mix_votes(parameters, key_pair, None, trackers, options, voters).value
    assert len(mixed) == 1
    assert mixed[0].plain_text_vote == "Yes"
    assert mixed[0].tracker_number == trackers[0]


def test_encrypt_votes_rejects_unknown_option(steps, parameters, key_pair, ballot_setup):
    voters_key_pairs, _, voters, options = ballot_setup
    voters[0].plain_text_vote = "Maybe"
    with pytest.raises(CryptographyError) as e:
        steps.encrypt_votes(parameters, key_pair, voters_key_pairs, options, voters)
    assert "does not match one of the available vote options" in e.value.message


def test_pre_encrypted_votes_need_a_proof(steps, parameters, key_pair, ballot_setup, random):
    voters_key_pairs, _, voters, options = ballot_setup
    # a voting device encrypts on the voter's behalf
    device = [replace(voters[0])]
    device[0].plain_text_vote = "No"
    proof = steps._encrypt_vote(parameters, key_pair, voters_key_pairs[0].signature_key_pair, options, device[0])

    voters[0].encrypted_vote = device[0].encrypted_vote
    voters[0].encrypted_vote_signature = device[0].encrypted_vote_signature
    with pytest.raises(CryptographyError) as e:
        steps.encrypt_votes(parameters, key_pair, voters_key_pairs, options, voters)
    assert e.value.message.startswith("Missing signature or proof for encrypted vote for voter")

    accepted = steps.encrypt_votes(parameters, key_pair, voters_key_pairs, options, voters, [proof])
    assert accepted.value[0].encrypted_vote == device[0].encrypted_vote

    # the proof is bound to the voter it was made for
    voters[1].encrypted_vote = device[0].encrypted_vote
    voters[1].encrypted_vote_signature = device[0].encrypted_vote_signature
    with pytest.raises(CryptographyError):
        steps.encrypt_votes(parameters, key_pair, voters_key_pairs, options, voters, [proof])


def test_encrypt_votes_needs_enough_key_pairs(steps, parameters, key_pair, ballot_setup):
    voters_key_pairs, _, voters, options = ballot_setup
    with pytest.raises(CryptographyError):
        steps.encrypt_votes(parameters, key_pair, voters_key_pairs[:1], options, voters)


## --- tracker recovery ---------------------------------------------------------------


def test_decrypt_tracker_number_errors(steps, parameters, key_pair):
    voters_key_pairs = steps.create_voters_key_pairs(1, parameters)
    trapdoor = voters_key_pairs[0].trapdoor_key_pair
    trackers = steps.create_tracker_numbers(parameters, key_pair, 1)

    with pytest.raises(MissingKeyError) as e:
        steps.decrypt_tracker_number(parameters, 1, 1, trapdoor.public_key + 1, voters_key_pairs, trackers)
    assert e.value.message.startswith("Could not find voter's key pair for public key")

    # beta encodes a value that is not a tracker number
    alpha = pow(parameters.g, 5, parameters.p)
    beta = (pow(trapdoor.public_key, 5, parameters.p) * parameters.g) % parameters.p
    with pytest.raises(CryptographyError) as e:
        steps.decrypt_tracker_number(parameters, alpha, beta, trapdoor.public_key, voters_key_pairs, trackers)
    assert e.value.message.startswith("Could not find tracker number from tracker number in group")
    assert not isinstance(e.value, MissingKeyError)

    tracker = trackers[0]
    beta = (pow(trapdoor.public_key, 5, parameters.p) * tracker.tracker_number_in_group) % parameters.p
    assert steps.decrypt_tracker_number(parameters, alpha, beta, trapdoor.public_key, voters_key_pairs, trackers) == tracker


def test_mix_votes_unknown_tracker(steps, parameters, key_pair):
    voters_key_pairs = steps.create_voters_key_pairs(1, parameters)
    trackers = steps.create_tracker_numbers(parameters, key_pair, 1)
    options = steps.map_vote_options(parameters, [VoteOption("Yes")])
    voter = Voter(
        id=1,
        tracker_number=trackers[0],
        plain_text_vote="Yes",
        voter_key_pairs=voters_key_pairs[0],
    )
    steps.encrypt_votes(parameters, key_pair, voters_key_pairs, options, [voter])
    other = [TrackerNumber(10000000, pow(parameters.g, 10000000, parameters.p))]
    with pytest.raises(CryptographyError) as e:
        steps.mix_votes(parameters, key_pair, None, other, options, [voter])
    assert "Could not find tracker number" in e.value.message


def test_logging_progress_listener(steps, parameters, caplog):
    listener = LoggingProgressListener(logging.INFO)
    steps.add_progress_listener(listener)
    with caplog.at_level(logging.INFO, logger="selene.progress"):
        steps.create_voters_key_pairs(2, parameters)
    steps.remove_progress_listener(listener)
    messages = [r.getMessage() for r in caplog.records if r.name == "selene.progress"]
    assert messages == [
        "create-voters-key-pairs: started (2 items)",
        "create-voters-key-pairs: 1/2",
        "create-voters-key-pairs: 2/2",
        "create-voters-key-pairs: complete",
    ]
