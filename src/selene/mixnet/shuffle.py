"""Re-encryption shuffle of ciphertext rows and its proof.

A row is a list of ciphertexts that stay together (for example a tracker and
a vote). Shuffling maps output[i] = reencrypt(input[permutation[i]]) with
fresh randomness for every ciphertext.

The proof is a cut-and-choose argument made non-interactive with
Fiat-Shamir: the prover publishes `rounds` shadow shuffles of the input, and
for each one a hashed challenge bit decides whether it opens input -> shadow
or shadow -> output. Opening both for the same shadow would reveal the
permutation, so each round halves a cheating prover's chances.
"""

from typing import Any, Dict, List, Optional, Sequence

from ..ciphertext import CipherText
from ..data import Parameters
from ..elgamal import reencrypt
from ..primitives import hash_values

Rows = List[List[CipherText]]


def to_rows(cipher_texts: Sequence[CipherText], width: int) -> Rows:
    if width < 1 or len(cipher_texts) % width:
        raise ValueError(f"Cannot split {len(cipher_texts)} ciphertexts into rows of width {width}")
    return [list(cipher_texts[i:i + width]) for i in range(0, len(cipher_texts), width)]


def flatten(rows: Rows) -> List[CipherText]:
    return [c for row in rows for c in row]


def encode_rows(rows: Rows) -> List[List[List[int]]]:
    return [[[c.alpha, c.beta] for c in row] for row in rows]


def decode_rows(data) -> Rows:
    return [[CipherText(int(a), int(b)) for a, b in row] for row in data]


def shuffle_rows(
    random,
    parameters: Parameters,
    public_key: int,
    rows: Rows,
    permutation: Optional[List[int]] = None,
    randomness: Optional[List[List[int]]] = None,
):
    """Permute and re-encrypt `rows`; returns (rows, permutation, randomness).

    Passing a permutation and randomness replays a shuffle, which is how the
    verifier checks an opened round.
    """
    if permutation is None:
        permutation = list(range(len(rows)))
        random.shuffle(permutation)
    out, used = [], []
    for i, source in enumerate(permutation):
        row, row_randomness = [], []
        for c, cipher_text in enumerate(rows[source]):
            r = None if randomness is None else randomness[i][c]
            reencrypted, r = reencrypt(random, parameters, public_key, cipher_text, r)
            row.append(reencrypted)
            row_randomness.append(r)
        out.append(row)
        used.append(row_randomness)
    return out, permutation, used


def _challenge_bits(parameters: Parameters, public_key: int, rows_in: Rows, rows_out: Rows, shadows: List[Rows], rounds: int) -> List[int]:
    values = [parameters.p, parameters.q, parameters.g, public_key, rounds]
    for rows in [rows_in, rows_out] + shadows:
        for c in flatten(rows):
            values.extend((c.alpha, c.beta))
    seed = hash_values(512, *values)
    bits: List[int] = []
    counter = 0
    while len(bits) < rounds:
        block = hash_values(512, seed, counter)
        bits.extend((block >> j) & 1 for j in range(512))
        counter += 1
    return bits[:rounds]


def prove_shuffle(
    random,
    parameters: Parameters,
    public_key: int,
    rows_in: Rows,
    rows_out: Rows,
    permutation: List[int],
    randomness: List[List[int]],
    rounds: int,
) -> Dict[str, Any]:
    q = parameters.q
    shadows, hidden = [], []
    for _ in range(rounds):
        shadow, shadow_permutation, shadow_randomness = shuffle_rows(random, parameters, public_key, rows_in)
        shadows.append(shadow)
        hidden.append((shadow_permutation, shadow_randomness))

    openings = []
    for bit, (shadow_permutation, shadow_randomness) in zip(
        _challenge_bits(parameters, public_key, rows_in, rows_out, shadows, rounds), hidden
    ):
        if bit == 0:
            openings.append({"permutation": shadow_permutation, "randomness": shadow_randomness})
            continue
        # map the shadow onto the output: shadow[sigma[i]] holds input[permutation[i]]
        inverse = {source: i for i, source in enumerate(shadow_permutation)}
        sigma = [inverse[source] for source in permutation]
        tau = [
            [(r - shadow_randomness[sigma[i]][c]) % q for c, r in enumerate(row)]
            for i, row in enumerate(randomness)
        ]
        openings.append({"permutation": sigma, "randomness": tau})
    return {"rounds": rounds, "shadows": [encode_rows(s) for s in shadows], "openings": openings}


def _is_permutation(permutation, size: int) -> bool:
    return sorted(permutation) == list(range(size))


def verify_shuffle(
    parameters: Parameters, public_key: int, rows_in: Rows, rows_out: Rows, proof: Dict[str, Any], rounds: int
) -> bool:
    """Check a shuffle proof against the verifier's own round count.

    Proofs carrying fewer than `rounds` rounds are rejected.
    """
    required = max(rounds, 1)
    rounds = proof.get("rounds", 0)
    if not isinstance(rounds, int) or rounds < required or len(rows_in) != len(rows_out):
        return False
    shadows = [decode_rows(s) for s in proof.get("shadows", [])]
    openings = proof.get("openings", [])
    if len(shadows) != rounds or len(openings) != rounds:
        return False
    bits = _challenge_bits(parameters, public_key, rows_in, rows_out, shadows, rounds)
    for bit, shadow, opening in zip(bits, shadows, openings):
        permutation = opening["permutation"]
        if not _is_permutation(permutation, len(rows_in)):
            return False
        source, target = (rows_in, shadow) if bit == 0 else (shadow, rows_out)
        try:
            replayed, _, _ = shuffle_rows(None, parameters, public_key, source, permutation, opening["randomness"])
        except (IndexError, TypeError, ValueError):
            return False
        if replayed != target:
            return False
    return True
