"""Threshold ElGamal: Feldman key sharing and combination of partial decryptions.

Every teller deals a random polynomial f of degree threshold-1 over Z_q,
publishes A_k = g^a_k for its coefficients and hands f(j) to teller j. A
teller's secret is the sum of the shares it received, the election public
key is the product of every dealer's A_0, and any `threshold` tellers can
decrypt by Lagrange interpolation in the exponent.
"""

from typing import Dict, Iterable, List, Tuple

from ..ciphertext import CipherText
from ..data import Parameters, Proof, Statement
from ..primitives import generate_random


def deal(random, parameters: Parameters, threshold: int, number_of_tellers: int) -> Tuple[List[int], Dict[int, int]]:
    """Return the coefficient commitments and the share for every teller."""
    p, q, g = parameters.p, parameters.q, parameters.g
    coefficients = [generate_random(random, q) for _ in range(threshold)]
    commitments = [pow(g, a, p) for a in coefficients]
    shares = {}
    for j in range(1, number_of_tellers + 1):
        shares[j] = sum(a * pow(j, k, q) for k, a in enumerate(coefficients)) % q
    return commitments, shares


def _evaluate_commitments(parameters: Parameters, commitments: List[int], teller: int) -> int:
    p, q = parameters.p, parameters.q
    value = 1
    for k, a in enumerate(commitments):
        value = (value * pow(a, pow(teller, k, q), p)) % p
    return value


def verify_share(parameters: Parameters, commitments: List[int], teller: int, share: int) -> bool:
    return pow(parameters.g, share, parameters.p) == _evaluate_commitments(parameters, commitments, teller)


def public_share(parameters: Parameters, all_commitments: Dict[int, List[int]], teller: int) -> int:
    """g^x_i for teller i, computed from the published commitments only."""
    value = 1
    for commitments in all_commitments.values():
        value = (value * _evaluate_commitments(parameters, commitments, teller)) % parameters.p
    return value


def election_public_key(parameters: Parameters, all_commitments: Dict[int, List[int]]) -> int:
    value = 1
    for commitments in all_commitments.values():
        value = (value * commitments[0]) % parameters.p
    return value


def lagrange_coefficient(tellers: Iterable[int], teller: int, q: int) -> int:
    numerator, denominator = 1, 1
    for j in tellers:
        if j == teller:
            continue
        numerator = (numerator * j) % q
        denominator = (denominator * (j - teller)) % q
    return (numerator * pow(denominator, -1, q)) % q


def decryption_statements(parameters: Parameters, share_public_key: int, cipher_text: CipherText, partial: int):
    return [
        Statement(left_hand_side=share_public_key, right_hand_side=parameters.g),
        Statement(left_hand_side=partial, right_hand_side=cipher_text.alpha),
    ]


def partial_decrypt(random, parameters, chaum_pedersen, secret_share: int, share_public_key: int, cipher_text: CipherText):
    """alpha^x_i with a proof that it uses the same x_i as the public share."""
    partial = pow(cipher_text.alpha, secret_share, parameters.p)
    proof = chaum_pedersen.generate_proof(
        random, parameters, secret_share, decryption_statements(parameters, share_public_key, cipher_text, partial)
    )
    return partial, proof


def verify_partial(parameters, chaum_pedersen, share_public_key: int, cipher_text: CipherText, partial: int, proof: Proof) -> bool:
    return chaum_pedersen.verify_proof(
        parameters, proof, decryption_statements(parameters, share_public_key, cipher_text, partial)
    )


def combine(parameters: Parameters, partials: Dict[int, int], cipher_text: CipherText) -> int:
    """Recover m = beta / alpha^x from the partial decryptions of a teller subset."""
    p, q = parameters.p, parameters.q
    shared = 1
    for teller, partial in partials.items():
        shared = (shared * pow(partial, lagrange_coefficient(partials, teller, q), p)) % p
    return (cipher_text.beta * pow(shared, -1, p)) % p
