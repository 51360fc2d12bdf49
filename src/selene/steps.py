"""Selene protocol steps.

SeleneSteps sequences the algorithms into the election flow:

- election set up: create_election_parameters, tellers, create_election_key_pair
- voter keys: create_voters_key_pairs
- trackers: create_tracker_numbers, shuffle_tracker_numbers
- commitments: create_commitments, decrypt_commitments, complete_commitments
- association and ballots: associate_voters, map_vote_options, encrypt_votes
- tally: mix_votes
- voter side check: decrypt_tracker_number

With zero tellers a single authority holds the election key and shuffles and
decrypts locally. Otherwise every teller runs the teller steps with its own
number, in parallel, and the MixnetHelper keeps them in step.
"""

import json
import logging
import os
import secrets
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from . import config
from .algorithm import require_private_key, require_public_key
from .ciphertext import CipherText
from .data import (
    PUBLIC,
    Commitment,
    CommitmentProof,
    EncryptProof,
    KeyPair,
    Parameters,
    ProofWrapper,
    Statement,
    TrackerNumber,
    VoteOption,
    Voter,
    VoterKeyPairs,
)
from .dsa import DSAAlgorithmHelper
from .elgamal import decrypt_element, encrypt_element
from .exceptions import CryptographyError, MalformedInputError, MissingKeyError
from .mixnet import MixnetHelper
from .mixnet.shuffle import encode_rows, flatten, prove_shuffle, shuffle_rows, to_rows
from .nizkp import (
    ChaumPedersenAlgorithmHelper,
    SchnorrAlgorithmHelper,
    generate_disjunctive_proof,
    verify_disjunctive_proof,
)
from .primitives import generate_random
from .progress import ProgressListener, ProgressNotifier

logger = logging.getLogger(__name__)


class SeleneSteps:
    """Runs the Selene steps with one secure random source and set of listeners."""

    def __init__(
        self,
        random=None,
        listeners: Optional[Iterable[ProgressListener]] = None,
        mixnet: Optional[MixnetHelper] = None,
        shuffle_rounds: Optional[int] = None,
        proof_directory=None,
    ):
        self.random = random or secrets.SystemRandom()
        self.notifier = ProgressNotifier(listeners)
        self.dsa = DSAAlgorithmHelper()
        self.schnorr = SchnorrAlgorithmHelper()
        self.chaum_pedersen = ChaumPedersenAlgorithmHelper()
        self.mixnet = mixnet or MixnetHelper(shuffle_rounds=shuffle_rounds)
        self.shuffle_rounds = shuffle_rounds or self.mixnet.shuffle_rounds
        self.proof_directory = proof_directory

    def add_progress_listener(self, listener: ProgressListener):
        self.notifier.add(listener)

    def remove_progress_listener(self, listener: ProgressListener):
        self.notifier.remove(listener)

    def _write_proof_file(self, name: str, record: Any) -> Path:
        if self.proof_directory is not None:
            Path(self.proof_directory).mkdir(parents=True, exist_ok=True)
        fd, path = tempfile.mkstemp(prefix=f"selene-{name}-", suffix=".json", dir=self.proof_directory)
        with os.fdopen(fd, "w") as f:
            json.dump(record, f)
        return Path(path)

    ## --- election set up ----------------------------------------------------

    def create_election_parameters(
        self,
        name: Optional[str] = None,
        number_of_tellers: int = 0,
        threshold_tellers: int = 0,
        length_l: Optional[int] = None,
        length_n: Optional[int] = None,
        certainty: Optional[int] = None,
    ) -> Parameters:
        """Create DSA group parameters carrying the election name and teller set up."""
        if number_of_tellers < 0 or (number_of_tellers > 0 and not 1 <= threshold_tellers <= number_of_tellers):
            raise MalformedInputError(
                f"Invalid tellers: threshold {threshold_tellers} of {number_of_tellers}"
            )
        parameters = self.dsa.create_parameters(self.random, length_l, length_n, certainty, self.notifier)
        if number_of_tellers == 0:
            threshold_tellers = 0
        logger.info("Created parameters for election %r with %d tellers", name, number_of_tellers)
        return replace(
            parameters, name=name, number_of_tellers=number_of_tellers, threshold_tellers=threshold_tellers
        )

    def check_tellers(self, parameters: Parameters, teller: int):
        if not parameters.uses_tellers:
            raise CryptographyError("Cannot create teller when election is not using tellers")
        if teller is None or not 1 <= teller <= parameters.number_of_tellers:
            raise CryptographyError(
                f"Incorrect teller number: must be in the range 1 to {parameters.number_of_tellers}"
            )

    def create_teller(
        self,
        parameters: Parameters,
        teller: int,
        host_address: str = config.DEFAULT_TELLER_HOST,
        teller_port: int = config.DEFAULT_TELLER_PORT,
        hint_port: int = config.DEFAULT_HINT_PORT,
    ) -> Path:
        self.check_tellers(parameters, teller)
        return self.mixnet.create_teller(parameters, teller, host_address, teller_port, hint_port)

    def get_teller_information_files(self, parameters: Parameters, teller: int) -> List[Path]:
        self.check_tellers(parameters, teller)
        return self.mixnet.get_teller_information_files(parameters, teller)

    def merge_teller(self, parameters: Parameters, teller: int, files: Iterable) -> Path:
        self.check_tellers(parameters, teller)
        return self.mixnet.merge_teller(parameters, teller, files)

    def create_election_key_pair(self, parameters: Parameters, teller: Optional[int] = None) -> KeyPair:
        """Single authority key pair, or this teller's view of the threshold key.

        The threshold key pair only carries the public key; the private share
        stays in the teller's storage.
        """
        if not parameters.uses_tellers:
            return self.dsa.create_keys(self.random, parameters)
        self.check_tellers(parameters, teller)
        return self.mixnet.create_election_key_pair(self.random, parameters, teller)

    def create_voters_key_pairs(self, number_of_voters: int, parameters: Parameters) -> List[VoterKeyPairs]:
        """Independent signature and trapdoor key pairs for every voter."""
        self.notifier.start("create-voters-key-pairs", number_of_voters)
        key_pairs = []
        for i in range(number_of_voters):
            key_pairs.append(
                VoterKeyPairs(
                    signature_key_pair=self.dsa.create_keys(self.random, parameters),
                    trapdoor_key_pair=self.dsa.create_keys(self.random, parameters),
                )
            )
            self.notifier.progress("create-voters-key-pairs", i + 1)
        self.notifier.end("create-voters-key-pairs")
        logger.info("Created key pairs for %d voters", number_of_voters)
        return key_pairs

    ## --- tracker numbers ------------------------------------------------------

    def create_tracker_numbers(self, parameters: Parameters, key_pair: KeyPair, number: int) -> List[TrackerNumber]:
        """Distinct random tracker numbers, encoded as g^n and encrypted."""
        public_key = require_public_key(key_pair)
        span = range(config.TRACKER_NUMBER_MIN, config.TRACKER_NUMBER_MAX + 1)
        if number > len(span):
            raise MalformedInputError(f"Cannot create {number} distinct tracker numbers")

        self.notifier.start("create-tracker-numbers", number)
        tracker_numbers = []
        for i, value in enumerate(self.random.sample(span, number)):
            in_group = pow(parameters.g, value, parameters.p)
            cipher_text, _ = encrypt_element(self.random, parameters, public_key, in_group)
            tracker_numbers.append(TrackerNumber(value, in_group, cipher_text.to_bytes()))
            self.notifier.progress("create-tracker-numbers", i + 1)
        self.notifier.end("create-tracker-numbers")
        logger.info("Created %d tracker numbers", number)
        return tracker_numbers

    def _local_shuffle(self, parameters: Parameters, key_pair: Optional[KeyPair], rows):
        public_key = require_public_key(key_pair)
        shuffled, permutation, randomness = shuffle_rows(self.random, parameters, public_key, rows)
        proof = prove_shuffle(
            self.random, parameters, public_key, rows, shuffled, permutation, randomness, self.shuffle_rounds
        )
        return shuffled, {"input": encode_rows(rows), "output": encode_rows(shuffled), "proof": proof}

    def shuffle_tracker_numbers(
        self,
        parameters: Parameters,
        teller: Optional[int],
        tracker_numbers: List[TrackerNumber],
        key_pair: Optional[KeyPair] = None,
    ) -> ProofWrapper:
        """Re-encrypt and permute the encrypted tracker numbers.

        The result holds only encrypted tracker numbers. With zero tellers the
        election key pair is needed to re-encrypt locally.
        """
        cipher_texts = [CipherText.from_bytes(t.encrypted_tracker_number_in_group) for t in tracker_numbers]
        self.notifier.start("shuffle-tracker-numbers", len(cipher_texts))
        if parameters.uses_tellers:
            self.check_tellers(parameters, teller)
            shuffled = self.mixnet.shuffle(self.random, parameters, teller, 1, cipher_texts)
            result, proof_file = shuffled.value, shuffled.proof_file
        else:
            rows, record = self._local_shuffle(parameters, key_pair, to_rows(cipher_texts, 1))
            result = flatten(rows)
            proof_file = self._write_proof_file("shuffle", record)
        self.notifier.end("shuffle-tracker-numbers")
        logger.info("Shuffled %d tracker numbers", len(result))
        return ProofWrapper(
            [TrackerNumber(encrypted_tracker_number_in_group=c.to_bytes()) for c in result], proof_file
        )

    ## --- commitments ------------------------------------------------------------

    def _create_commitment_proof(
        self, parameters, key_pair, voter_public_key, r, commitment, secret_g, secret_h
    ) -> CommitmentProof:
        p, q, g = parameters.p, parameters.q, parameters.g
        y = key_pair.public_key
        cipher_g = CipherText.from_bytes(commitment.encrypted_g)  # (A1, A2)
        cipher_h = CipherText.from_bytes(commitment.encrypted_h)  # (B1, B2)

        pi11 = self.schnorr.generate_proof(self.random, parameters, secret_g, [Statement(cipher_g.alpha, g)])
        pi12 = self.schnorr.generate_proof(self.random, parameters, secret_h, [Statement(cipher_h.alpha, g)])

        t = generate_random(self.random, q)
        a1_dash, a2_dash = pow(cipher_g.alpha, t, p), pow(cipher_g.beta, t, p)
        b1_dash, b2_dash = pow(cipher_h.alpha, t, p), pow(cipher_h.beta, t, p)
        c, d = pow(commitment.g, t, p), pow(commitment.h, t, p)
        rt = (r * t) % q

        cp = self.chaum_pedersen
        return CommitmentProof(
            a1_dash=a1_dash,
            a2_dash=a2_dash,
            b1_dash=b1_dash,
            b2_dash=b2_dash,
            c=c,
            d=d,
            pi11=pi11,
            pi12=pi12,
            pi21=cp.generate_proof(
                self.random, parameters, t, [Statement(a1_dash, cipher_g.alpha), Statement(a2_dash, cipher_g.beta)]
            ),
            pi22=cp.generate_proof(
                self.random, parameters, t, [Statement(b1_dash, cipher_h.alpha), Statement(b2_dash, cipher_h.beta)]
            ),
            pi23=cp.generate_proof(
                self.random, parameters, t, [Statement(a1_dash, cipher_g.alpha), Statement(b1_dash, cipher_h.alpha)]
            ),
            pi31=cp.generate_proof(
                self.random,
                parameters,
                (secret_g * t) % q,
                [Statement(a1_dash, g), Statement((a2_dash * pow(c, -1, p)) % p, y)],
            ),
            pi32=cp.generate_proof(
                self.random,
                parameters,
                (secret_h * t) % q,
                [Statement(b1_dash, g), Statement((b2_dash * pow(d, -1, p)) % p, y)],
            ),
            pi4=cp.generate_proof(self.random, parameters, rt, [Statement(c, g), Statement(d, voter_public_key)]),
            pi5=self.schnorr.generate_proof(self.random, parameters, rt, [Statement(c, g)]),
        )

    def verify_commitment_proof(
        self,
        parameters: Parameters,
        key_pair: KeyPair,
        voter_public_key: int,
        commitment: Commitment,
        proof: CommitmentProof,
    ) -> bool:
        """Check every proof of a commitment against its published ciphertexts."""
        p, g = parameters.p, parameters.g
        y = require_public_key(key_pair)
        try:
            cipher_g = CipherText.from_bytes(commitment.encrypted_g)
            cipher_h = CipherText.from_bytes(commitment.encrypted_h)
            c_inverse, d_inverse = pow(proof.c, -1, p), pow(proof.d, -1, p)
        except (CryptographyError, TypeError, ValueError):
            return False
        schnorr, cp = self.schnorr, self.chaum_pedersen
        checks = [
            (schnorr, proof.pi11, [Statement(cipher_g.alpha, g)]),
            (schnorr, proof.pi12, [Statement(cipher_h.alpha, g)]),
            (cp, proof.pi21, [Statement(proof.a1_dash, cipher_g.alpha), Statement(proof.a2_dash, cipher_g.beta)]),
            (cp, proof.pi22, [Statement(proof.b1_dash, cipher_h.alpha), Statement(proof.b2_dash, cipher_h.beta)]),
            (cp, proof.pi23, [Statement(proof.a1_dash, cipher_g.alpha), Statement(proof.b1_dash, cipher_h.alpha)]),
            (cp, proof.pi31, [Statement(proof.a1_dash, g), Statement((proof.a2_dash * c_inverse) % p, y)]),
            (cp, proof.pi32, [Statement(proof.b1_dash, g), Statement((proof.b2_dash * d_inverse) % p, y)]),
            (cp, proof.pi4, [Statement(proof.c, g), Statement(proof.d, voter_public_key)]),
            (schnorr, proof.pi5, [Statement(proof.c, g)]),
        ]
        for helper, pi, statements in checks:
            if pi is None or not helper.verify_proof(parameters, pi, statements):
                return False
        return True

    def create_commitments(
        self,
        parameters: Parameters,
        key_pair: KeyPair,
        voters_key_pairs: List[VoterKeyPairs],
        tracker_numbers: List[TrackerNumber],
    ) -> ProofWrapper:
        """One commitment per voter binding a fresh r to the voter's trapdoor key.

        Each commitment holds g^r and h^r (h the trapdoor public key) in the
        clear for this teller and encrypted for publication. The proofs are
        checked before they are written to the proof file.
        """
        if len(voters_key_pairs) != len(tracker_numbers):
            raise CryptographyError(
                "Number of voter key pairs and tracker numbers does not match: "
                f"{len(voters_key_pairs)} vs. {len(tracker_numbers)}"
            )
        require_public_key(key_pair)
        p = parameters.p

        self.notifier.start("create-commitments", len(voters_key_pairs))
        commitments, proofs = [], []
        for i, voter_key_pairs in enumerate(voters_key_pairs):
            voter_public_key = require_public_key(voter_key_pairs.trapdoor_key_pair)
            r = self.random.getrandbits(parameters.l) % p
            h = pow(voter_public_key, r, p)
            a = pow(parameters.g, r, p)
            encrypted_h, secret_h = encrypt_element(self.random, parameters, key_pair.public_key, h)
            encrypted_g, secret_g = encrypt_element(self.random, parameters, key_pair.public_key, a)
            commitment = Commitment(
                encrypted_g=encrypted_g.to_bytes(),
                encrypted_h=encrypted_h.to_bytes(),
                g=a,
                h=h,
                public_key=voter_public_key,
            )
            proof = self._create_commitment_proof(parameters, key_pair, voter_public_key, r, commitment, secret_g, secret_h)
            if not self.verify_commitment_proof(parameters, key_pair, voter_public_key, commitment, proof):
                raise CryptographyError(f"Could not verify commitment proofs for voter: {i}")
            commitments.append(commitment)
            proofs.append(proof.to_dict(PUBLIC))
            self.notifier.progress("create-commitments", i + 1)
        self.notifier.end("create-commitments")
        logger.info("Created %d commitments", len(commitments))
        return ProofWrapper(commitments, self._write_proof_file("commitments", proofs))

    @staticmethod
    def _check_commitment_owner(voter_key_pairs: Optional[VoterKeyPairs], commitment: Commitment, i: int) -> int:
        trapdoor = voter_key_pairs.trapdoor_key_pair if voter_key_pairs else None
        public_key = trapdoor.public_key if trapdoor else None
        if public_key is None or public_key != commitment.public_key:
            raise CryptographyError(
                f"Voter's trapdoor public key (null {public_key is None}) does not match commitment public key for voter {i}"
            )
        return public_key

    def _local_decrypt(self, parameters: Parameters, key_pair: KeyPair, cipher_texts: List[CipherText]):
        """Decrypt with the election private key, proving each decryption."""
        x = require_private_key(key_pair)
        y = key_pair.public_key or pow(parameters.g, x, parameters.p)
        values, proofs = [], []
        for cipher_text in cipher_texts:
            shared = pow(cipher_text.alpha, x, parameters.p)
            proof = self.chaum_pedersen.generate_proof(
                self.random,
                parameters,
                x,
                [Statement(y, parameters.g), Statement(shared, cipher_text.alpha)],
            )
            values.append(decrypt_element(parameters, x, cipher_text))
            proofs.append({"alpha": cipher_text.alpha, "shared": shared, "proof": proof.to_dict(PUBLIC)})
        return values, proofs

    @staticmethod
    def _check_commitment_counts(count: int, commitments: List[List[Commitment]]):
        """Every teller must have sent exactly one commitment per voter."""
        if not commitments:
            raise CryptographyError("No commitments to combine")
        for t, teller_commitments in enumerate(commitments):
            if len(teller_commitments) != count:
                raise CryptographyError(
                    f"Number of voters and commitments from teller {t + 1} does not match: "
                    f"{count} vs. {len(teller_commitments)}"
                )

    def decrypt_commitments(
        self,
        parameters: Parameters,
        key_pair: KeyPair,
        teller: Optional[int],
        voters_key_pairs: List[VoterKeyPairs],
        tracker_numbers: List[TrackerNumber],
        commitments: List[List[Commitment]],
    ) -> ProofWrapper:
        """Combine every teller's encrypted h with the shuffled tracker and decrypt.

        The i-th voter gets beta = (product of h_i) * g^tracker, the half of
        the commitment that is published.
        """
        if len(voters_key_pairs) != len(tracker_numbers):
            raise CryptographyError(
                "Number of voter key pairs and tracker numbers does not match: "
                f"{len(voters_key_pairs)} vs. {len(tracker_numbers)}"
            )
        self._check_commitment_counts(len(voters_key_pairs), commitments)
        if parameters.uses_tellers:
            self.check_tellers(parameters, teller)

        p = parameters.p
        self.notifier.start("decrypt-commitments", len(voters_key_pairs))
        combined = []
        for i, voter_key_pairs in enumerate(voters_key_pairs):
            product = CipherText(1, 1)
            for teller_commitments in commitments:
                commitment = teller_commitments[i]
                self._check_commitment_owner(voter_key_pairs, commitment, i)
                product = product.multiply(CipherText.from_bytes(commitment.encrypted_h), p)
            tracker = CipherText.from_bytes(tracker_numbers[i].encrypted_tracker_number_in_group)
            combined.append(product.multiply(tracker, p))

        if parameters.uses_tellers:
            decrypted = self.mixnet.decrypt(self.random, parameters, teller, 1, combined)
            values, proof_file = decrypted.value, decrypted.proof_file
        else:
            values, proofs = self._local_decrypt(parameters, key_pair, combined)
            proof_file = self._write_proof_file("decrypt", proofs)

        voters = []
        for i, voter_key_pairs in enumerate(voters_key_pairs):
            voters.append(Voter(beta=values[i], tracker_number=tracker_numbers[i], voter_key_pairs=voter_key_pairs))
            self.notifier.progress("decrypt-commitments", i + 1)
        self.notifier.end("decrypt-commitments")
        logger.info("Decrypted commitments for %d voters", len(voters))
        return ProofWrapper(voters, proof_file)

    def complete_commitments(self, parameters: Parameters, voters: List[Voter], commitments: List[List[Commitment]]) -> List[Voter]:
        """Set each voter's alpha to the product of every teller's g^r."""
        self._check_commitment_counts(len(voters), commitments)
        for i, voter in enumerate(voters):
            alpha = 1
            for teller_commitments in commitments:
                commitment = teller_commitments[i]
                self._check_commitment_owner(voter.voter_key_pairs, commitment, i)
                alpha = (alpha * commitment.g) % parameters.p
            voter.alpha = alpha
        logger.info("Completed commitments for %d voters", len(voters))
        return voters

    ## --- voters and ballots ---------------------------------------------------

    def associate_voters(self, source: List[Voter], destination: List[Voter]) -> List[Voter]:
        """Give the pre-allocated voters in `destination` the ids from `source`.

        A source voter carrying a trapdoor public key is matched to the voter
        with that key; the rest are assigned in order. No cryptography is done.
        """
        if len(source) != len(destination):
            raise CryptographyError(
                f"Number of source and destination voters does not match: {len(source)} vs. {len(destination)}"
            )
        by_key: Dict[int, Voter] = {}
        for voter in destination:
            trapdoor = voter.trapdoor_key_pair
            if trapdoor is not None and trapdoor.public_key is not None:
                by_key[trapdoor.public_key] = voter

        assigned = set()
        unkeyed = []
        for voter in source:
            trapdoor = voter.trapdoor_key_pair
            if trapdoor is None or trapdoor.public_key is None:
                unkeyed.append(voter)
                continue
            match = by_key.get(trapdoor.public_key)
            if match is None:
                raise CryptographyError(f"No pre-allocated voter has the trapdoor public key of voter {voter.id}")
            match.id = voter.id
            assigned.add(id(match))

        remaining = (voter for voter in destination if id(voter) not in assigned)
        for voter in unkeyed:
            match = next(remaining, None)
            if match is None:
                raise CryptographyError(f"No pre-allocated voter left for voter {voter.id}")
            match.id = voter.id
        logger.info("Associated %d voters", len(source))
        return destination

    def map_vote_options(self, parameters: Parameters, vote_options: List[VoteOption]) -> List[VoteOption]:
        """Give every distinct non-blank option a unique group element.

        Blank options are dropped and duplicate text collapses into one
        option. Existing assignments are kept, so mapping twice changes
        nothing.
        """
        mapped: Dict[str, VoteOption] = {}
        for vote_option in vote_options:
            if vote_option is None or vote_option.option is None or not vote_option.option.strip():
                continue
            existing = mapped.get(vote_option.option)
            if existing is None:
                mapped[vote_option.option] = vote_option
            elif vote_option.option_number_in_group is not None:
                if existing.option_number_in_group is None:
                    existing.option_number_in_group = vote_option.option_number_in_group
                elif existing.option_number_in_group != vote_option.option_number_in_group:
                    raise CryptographyError(f"Vote option {vote_option.option!r} has two group values")

        assigned = [o.option_number_in_group for o in mapped.values() if o.option_number_in_group is not None]
        used = set(assigned)
        if len(used) != len(assigned):
            raise CryptographyError("Vote options already mapped to the same group value")
        for vote_option in mapped.values():
            if vote_option.option_number_in_group is not None:
                continue
            while True:
                value = pow(parameters.g, self.random.randint(1, config.VOTE_OPTION_EXPONENT_MAX), parameters.p)
                if value not in used:
                    break
            vote_option.option_number_in_group = value
            used.add(value)
        logger.info("Mapped %d vote options", len(mapped))
        return list(mapped.values())

    @staticmethod
    def _encrypt_proof_bound(voter: Voter, signature_public_key: int):
        return (signature_public_key, voter.alpha or 0, voter.beta or 0)

    def verify_encrypt_proof(
        self,
        parameters: Parameters,
        key_pair: KeyPair,
        vote_options: List[VoteOption],
        voter: Voter,
        proof: EncryptProof,
    ) -> bool:
        """Check a voter's encrypted vote: its signature and the option proof."""
        public_key = require_public_key(key_pair)
        signature_key_pair = voter.signature_key_pair
        signature_public_key = require_public_key(signature_key_pair)
        if voter.encrypted_vote is None or proof.encrypted_vote_signature is None:
            return False
        if not self.dsa.verify(parameters, signature_key_pair, voter.encrypted_vote, proof.encrypted_vote_signature):
            return False
        try:
            cipher_text = CipherText.from_bytes(voter.encrypted_vote)
        except CryptographyError:
            return False
        return verify_disjunctive_proof(
            parameters,
            public_key,
            cipher_text,
            [o.option_number_in_group for o in vote_options],
            proof,
            self._encrypt_proof_bound(voter, signature_public_key),
        )

    def _encrypt_vote(self, parameters, key_pair, signature_key_pairs, vote_options, voter) -> EncryptProof:
        options = [o.option_number_in_group for o in vote_options]
        index = next((i for i, o in enumerate(vote_options) if o.option == voter.plain_text_vote), None)
        if index is None:
            raise CryptographyError(
                f"Plaintext vote for voter {voter.id} does not match one of the available vote options {voter.plain_text_vote}"
            )
        cipher_text, k = encrypt_element(self.random, parameters, key_pair.public_key, options[index])
        encrypted_vote = cipher_text.to_bytes()
        signature = self.dsa.sign(self.random, parameters, signature_key_pairs, encrypted_vote)
        proof = generate_disjunctive_proof(
            self.random,
            parameters,
            key_pair.public_key,
            cipher_text,
            k,
            options,
            index,
            self._encrypt_proof_bound(voter, signature_key_pairs.public_key),
        )
        voter.encrypted_vote = encrypted_vote
        voter.encrypted_vote_signature = signature
        voter.plain_text_vote = None
        return replace(proof, encrypted_vote_signature=signature)

    def encrypt_votes(
        self,
        parameters: Parameters,
        key_pair: KeyPair,
        voters_key_pairs: List[VoterKeyPairs],
        vote_options: List[VoteOption],
        voters: List[Voter],
        external_proofs: Optional[List[EncryptProof]] = None,
    ) -> ProofWrapper:
        """Encrypt, sign and prove every cast vote.

        Voters with no vote or a blank vote abstain and get no ciphertext.
        Votes that arrive already encrypted are accepted only with a matching
        external proof that verifies. The plaintext is cleared once encrypted.
        """
        if len(voters_key_pairs) < len(voters):
            raise CryptographyError(
                f"Number of voter key pairs insufficient for voters: {len(voters_key_pairs)} vs. {len(voters)}"
            )
        require_public_key(key_pair)
        signature_keys = {
            kp.signature_key_pair.public_key: kp.signature_key_pair
            for kp in voters_key_pairs
            if kp is not None and kp.signature_key_pair is not None
        }
        external = {bytes(p.encrypted_vote_signature): p for p in external_proofs or [] if p and p.encrypted_vote_signature}

        self.notifier.start("encrypt-votes", len(voters))
        proofs = []
        encrypted_votes = set()
        for i, voter in enumerate(voters):
            if voter.encrypted_vote:
                proof = external.get(bytes(voter.encrypted_vote_signature or b""))
                if proof is None:
                    raise CryptographyError(f"Missing signature or proof for encrypted vote for voter {voter.id}")
                if not self.verify_encrypt_proof(parameters, key_pair, vote_options, voter, proof):
                    raise CryptographyError(f"Could not verify encryption proof for voter {voter.id}")
            elif voter.plain_text_vote is not None and voter.plain_text_vote.strip():
                signature_public_key = voter.signature_key_pair.public_key if voter.signature_key_pair else None
                if signature_public_key is None:
                    raise MissingKeyError(f"Missing signature key pair for voter {voter.id}")
                signature_key_pair = signature_keys.get(signature_public_key)
                if signature_key_pair is None or signature_key_pair.private_key is None:
                    raise MissingKeyError(f"Could not find signature private key for voter {voter.id}")
                proof = self._encrypt_vote(parameters, key_pair, signature_key_pair, vote_options, voter)
                if not self.verify_encrypt_proof(parameters, key_pair, vote_options, voter, proof):
                    raise CryptographyError(f"Could not verify encryption proof for voter {voter.id}")
            else:
                self.notifier.progress("encrypt-votes", i + 1)
                continue
            encrypted_votes.add(voter.encrypted_vote)
            proofs.append(proof.to_dict(PUBLIC))
            self.notifier.progress("encrypt-votes", i + 1)

        if len(encrypted_votes) != len(proofs):
            raise CryptographyError("Found duplicate encrypted votes")
        self.notifier.end("encrypt-votes")
        logger.info("Encrypted %d votes, %d abstentions", len(proofs), len(voters) - len(proofs))
        return ProofWrapper(voters, self._write_proof_file("encrypt", proofs))

    ## --- tally ----------------------------------------------------------------

    def mix_votes(
        self,
        parameters: Parameters,
        key_pair: KeyPair,
        teller: Optional[int],
        tracker_numbers: List[TrackerNumber],
        vote_options: List[VoteOption],
        voters: List[Voter],
    ) -> ProofWrapper:
        """Shuffle (tracker, vote) pairs and decrypt them.

        Only voters with both an encrypted tracker number and an encrypted
        vote take part. The result is one Voter per cast vote holding the
        tracker number and the plaintext vote, in shuffled order.
        """
        if len(tracker_numbers) < len(voters):
            raise CryptographyError(
                f"Number of tracker numbers insufficient for voters: {len(tracker_numbers)} vs. {len(voters)}"
            )
        if parameters.uses_tellers:
            self.check_tellers(parameters, teller)

        rows = []
        for voter in voters:
            tracker = voter.tracker_number.encrypted_tracker_number_in_group if voter.tracker_number else None
            if tracker and voter.encrypted_vote:
                rows.append([CipherText.from_bytes(tracker), CipherText.from_bytes(voter.encrypted_vote)])

        self.notifier.start("mix-votes", len(rows))
        if parameters.uses_tellers:
            mixed = self.mixnet.mix(self.random, parameters, teller, 2, flatten(rows))
            values, proof_file = mixed.value, mixed.proof_file
        else:
            shuffled, record = self._local_shuffle(parameters, key_pair, rows)
            values, record["decryptions"] = self._local_decrypt(parameters, key_pair, flatten(shuffled))
            proof_file = self._write_proof_file("mix", record)

        trackers = {t.tracker_number_in_group: t for t in tracker_numbers}
        options = {o.option_number_in_group: o for o in vote_options}
        mixed_voters = []
        for i in range(0, len(values), 2):
            tracker = trackers.get(values[i])
            if tracker is None:
                raise CryptographyError(f"Could not find tracker number for tracker number in group {values[i]}")
            option = options.get(values[i + 1])
            if option is None:
                raise CryptographyError(f"Could not find vote option for vote option in group {values[i + 1]}")
            mixed_voters.append(Voter(tracker_number=tracker, plain_text_vote=option.option))
            self.notifier.progress("mix-votes", len(mixed_voters))
        self.notifier.end("mix-votes")
        logger.info("Mixed %d votes", len(mixed_voters))
        return ProofWrapper(mixed_voters, proof_file)

    ## --- voter side -----------------------------------------------------------

    def decrypt_tracker_number(
        self,
        parameters: Parameters,
        alpha: int,
        beta: int,
        public_key: int,
        voters_key_pairs: List[VoterKeyPairs],
        tracker_numbers: List[TrackerNumber],
    ) -> TrackerNumber:
        """Recover a voter's tracker number from their published (alpha, beta)."""
        key_pair = next(
            (
                kp.trapdoor_key_pair
                for kp in voters_key_pairs
                if kp.trapdoor_key_pair is not None and kp.trapdoor_key_pair.public_key == public_key
            ),
            None,
        )
        if key_pair is None:
            raise MissingKeyError(f"Could not find voter's key pair for public key: {public_key}")
        in_group = decrypt_element(parameters, require_private_key(key_pair), CipherText(alpha, beta))
        tracker = next((t for t in tracker_numbers if t.tracker_number_in_group == in_group), None)
        if tracker is None:
            raise CryptographyError(f"Could not find tracker number from tracker number in group: {in_group}")
        return tracker
