"""Non-interactive zero-knowledge proofs (Fiat-Shamir sigma protocols).

- SchnorrAlgorithmHelper: knowledge of w with lhs = rhs^w for one statement
- ChaumPedersenAlgorithmHelper: one w shared by one or more statements
- generate_disjunctive_proof / verify_disjunctive_proof: an ElGamal
  ciphertext encrypts one of a list of group elements, without saying which

Challenges are hashed with a digest matched to q's bit length.
"""

from typing import List, Optional, Sequence

from .algorithm import AlgorithmHelper
from .ciphertext import CipherText
from .data import EncryptProof, Parameters, Proof, Statement
from .exceptions import MalformedInputError, ProofPreconditionError
from .primitives import generate_random, hash_values


class _SigmaProofHelper(AlgorithmHelper):
    """Shared proof logic. Subclasses restrict the number of statements."""

    def _check_statements(self, statements: Optional[Sequence[Statement]]):
        if not statements:
            raise ProofPreconditionError("Must have at least one statement")

    def create_parameters(self, random, *args):
        self._refuse("parameter creation")

    def create_keys(self, random, parameters):
        self._refuse("key creation")

    @staticmethod
    def _challenge(parameters: Parameters, commitments: List[int], statements: Sequence[Statement]) -> int:
        values = list(commitments)
        for statement in statements:
            values.extend((statement.right_hand_side, statement.left_hand_side))
        values.extend((parameters.p, parameters.q))
        return hash_values(parameters.q.bit_length(), *values)

    def generate_proof(self, random, parameters: Parameters, witness: Optional[int], statements) -> Proof:
        """Prove knowledge of `witness` for every statement.

        k is drawn in [1, q-1], t_i = rhs_i^k, c = H(t.., rhs_1, lhs_1, .., p, q)
        and the response is r = k + c*w mod q.
        """
        if witness is None:
            raise ProofPreconditionError("Missing witness")
        self._check_statements(statements)
        p, q = parameters.p, parameters.q
        k = generate_random(random, q)
        commitments = [pow(s.right_hand_side, k, p) for s in statements]
        c = self._challenge(parameters, commitments, statements)
        return Proof(hash=c, signature=(k + c * witness) % q)

    def verify_proof(self, parameters: Parameters, proof: Optional[Proof], statements) -> bool:
        if proof is None:
            raise MalformedInputError("Missing proof")
        self._check_statements(statements)
        p = parameters.p
        c, r = proof.hash, proof.signature
        try:
            commitments = [
                (pow(s.right_hand_side, r, p) * pow(s.left_hand_side, -c, p)) % p for s in statements
            ]
        except ValueError:
            # left hand side not invertible mod p
            return False
        return self._challenge(parameters, commitments, statements) == c


class SchnorrAlgorithmHelper(_SigmaProofHelper):
    name = "Schnorr"

    def _check_statements(self, statements):
        super()._check_statements(statements)
        if len(statements) != 1:
            raise ProofPreconditionError("Must have exactly one statement")


class ChaumPedersenAlgorithmHelper(_SigmaProofHelper):
    name = "Chaum-Pedersen"


## --- disjunctive proof of encryption ---------------------------------------


def _disjunctive_challenge(parameters, public_key, cipher_text, options, commitments, bound) -> int:
    values = [parameters.p, parameters.q, parameters.g, public_key, cipher_text.alpha, cipher_text.beta]
    values.extend(bound)
    values.extend(options)
    for a1, a2 in commitments:
        values.extend((a1, a2))
    return hash_values(parameters.q.bit_length(), *values) % parameters.q


def generate_disjunctive_proof(
    random,
    parameters: Parameters,
    public_key: int,
    cipher_text: CipherText,
    k: int,
    options: Sequence[int],
    index: int,
    bound: Sequence[int] = (),
) -> EncryptProof:
    """Prove cipher_text = (g^k, y^k * options[index]) without revealing index.

    Every branch but the real one is simulated with a random challenge and
    response; the real challenge is whatever makes the sum equal the
    Fiat-Shamir hash. `bound` values enter the hash so the proof cannot be
    moved to another voter.
    """
    p, q, g = parameters.p, parameters.q, parameters.g
    commitments = []
    challenges = [0] * len(options)
    responses = [0] * len(options)
    simulated_sum = 0
    s = generate_random(random, q)
    for i, m in enumerate(options):
        if i == index:
            commitments.append((pow(g, s, p), pow(public_key, s, p)))
            continue
        e_sim = generate_random(random, q)
        z_sim = generate_random(random, q)
        numerator = (cipher_text.beta * pow(m, -1, p)) % p
        a1 = (pow(g, z_sim, p) * pow(cipher_text.alpha, -e_sim, p)) % p
        a2 = (pow(public_key, z_sim, p) * pow(numerator, -e_sim, p)) % p
        commitments.append((a1, a2))
        challenges[i] = e_sim
        responses[i] = z_sim
        simulated_sum = (simulated_sum + e_sim) % q
    e = _disjunctive_challenge(parameters, public_key, cipher_text, options, commitments, bound)
    challenges[index] = (e - simulated_sum) % q
    responses[index] = (s + challenges[index] * k) % q
    return EncryptProof(commitments=commitments, challenges=challenges, responses=responses)


def verify_disjunctive_proof(
    parameters: Parameters,
    public_key: int,
    cipher_text: CipherText,
    options: Sequence[int],
    proof: EncryptProof,
    bound: Sequence[int] = (),
) -> bool:
    p, q, g = parameters.p, parameters.q, parameters.g
    n = len(options)
    if not (len(proof.commitments) == len(proof.challenges) == len(proof.responses) == n):
        return False
    try:
        for m, (a1, a2), e_i, z_i in zip(options, proof.commitments, proof.challenges, proof.responses):
            numerator = (cipher_text.beta * pow(m, -1, p)) % p
            if (pow(g, z_i, p) * pow(cipher_text.alpha, -e_i, p)) % p != a1:
                return False
            if (pow(public_key, z_i, p) * pow(numerator, -e_i, p)) % p != a2:
                return False
    except ValueError:
        return False
    e = _disjunctive_challenge(parameters, public_key, cipher_text, options, proof.commitments, bound)
    return sum(proof.challenges) % q == e
