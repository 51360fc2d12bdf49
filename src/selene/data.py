"""Records exchanged between the Selene steps.

Each record is a dataclass whose fields are tagged with the named views they
belong to. `to_dict(view)` gives the projection of a record for that view
(for example the public projection of a KeyPair omits the private key) and
`from_dict` rebuilds a record from any projection. Fields without a view tag
appear in every projection. Writing the projections to files is left to the
caller.
"""

import base64
import hashlib
import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union, get_args, get_origin, get_type_hints

## --- views ------------------------------------------------------------------

PUBLIC = "public"
PRIVATE = "private"
RESTRICTED_PUBLIC = "restricted-public"
MIXED = "mixed"
VOTE = "vote"
VOTER_VOTE = "voter-vote"
ERS_IMPORT = "ers-import"
ERS_EXPORT = "ers-export"
ERS_KEY_IMPORT = "ers-key-import"
ERS_VOTE_IMPORT = "ers-vote-import"
ERS_VOTE_ENCRYPTED_IMPORT = "ers-vote-encrypted-import"
ERS_VOTE_EXPORT = "ers-vote-export"

# a view also shows every field of the view it extends
_VIEW_PARENTS = {RESTRICTED_PUBLIC: PUBLIC, ERS_EXPORT: PUBLIC}


def _views(*names: str) -> Dict[str, Any]:
    return {"views": frozenset(names)}


def in_view(field_views, view: Optional[str]) -> bool:
    """Return True if a field tagged with `field_views` is shown in `view`."""
    if view is None or not field_views:
        return True
    while view is not None:
        if view in field_views:
            return True
        view = _VIEW_PARENTS.get(view)
    return False


def _encode(value: Any, view: Optional[str]) -> Any:
    if isinstance(value, Record):
        return value.to_dict(view)
    if isinstance(value, (list, tuple)):
        return [_encode(v, view) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


def _decode(tp: Any, value: Any) -> Any:
    origin = get_origin(tp)
    args = get_args(tp)
    if origin is Union:
        inner = [a for a in args if a is not type(None)]
        return _decode(inner[0], value)
    if origin in (list, List):
        return [_decode(args[0], v) for v in value]
    if origin in (tuple, Tuple):
        return tuple(_decode(a, v) for a, v in zip(args, value))
    if tp is bytes:
        return base64.b64decode(value)
    if isinstance(tp, type) and issubclass(tp, Record):
        return tp.from_dict(value)
    if tp is int:
        return int(value)
    return value


class Record:
    """Mixin giving dataclasses view-filtered dict projections."""

    def to_dict(self, view: Optional[str] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            if not in_view(f.metadata.get("views"), view):
                continue
            value = _encode(getattr(self, f.name), view)
            if value is None or value == {}:
                continue
            out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        hints = get_type_hints(cls)
        kwargs = {}
        for f in fields(cls):
            if data.get(f.name) is not None:
                kwargs[f.name] = _decode(hints[f.name], data[f.name])
        return cls(**kwargs)


## --- group and keys ---------------------------------------------------------


@dataclass(frozen=True)
class Parameters(Record):
    """Election parameters

    Attributes
    - p: prime modulus
    - q: prime order of the subgroup generated by g, dividing p-1
    - g: generator of the order q subgroup
    - l: bit length of p
    - m: bit length of q
    - name: election name
    - number_of_tellers: 0 when a single authority holds the election key
    - threshold_tellers: tellers needed to decrypt
    """

    p: int = 0
    q: int = 0
    g: int = 0
    l: int = 0
    m: int = 0
    name: Optional[str] = None
    number_of_tellers: int = 0
    threshold_tellers: int = 0

    @property
    def uses_tellers(self) -> bool:
        return self.number_of_tellers > 0

    def fingerprint(self) -> str:
        """SHA-256 over the canonical public projection."""
        canonical = json.dumps(self.to_dict(PUBLIC), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass(frozen=True)
class KeyPair(Record):
    """A private exponent and its public key g^x mod p.

    The private key is absent when only public material is held, for example
    the election key of a threshold election.
    """

    private_key: Optional[int] = field(default=None, metadata=_views(PRIVATE))
    public_key: Optional[int] = field(
        default=None,
        metadata=_views(ERS_KEY_IMPORT, ERS_VOTE_ENCRYPTED_IMPORT, ERS_VOTE_IMPORT, VOTE, VOTER_VOTE, PUBLIC),
    )

    def public(self) -> "KeyPair":
        return KeyPair(public_key=self.public_key)


@dataclass(frozen=True)
class VoterKeyPairs(Record):
    signature_key_pair: Optional[KeyPair] = None
    trapdoor_key_pair: Optional[KeyPair] = None


## --- proofs -----------------------------------------------------------------


@dataclass(frozen=True)
class Statement(Record):
    """The equation left_hand_side = right_hand_side^witness mod p."""

    left_hand_side: int = field(default=0, metadata=_views(PUBLIC))
    right_hand_side: int = field(default=0, metadata=_views(PUBLIC))


@dataclass(frozen=True)
class Proof(Record):
    """Fiat-Shamir transcript: the challenge `hash` and the response `signature`."""

    hash: int = field(default=0, metadata=_views(PUBLIC))
    signature: int = field(default=0, metadata=_views(PUBLIC))


@dataclass(frozen=True)
class CommitmentProof(Record):
    """Proofs that a commitment was formed from the published ciphertexts.

    a1_dash..b2_dash are the encrypted commitments raised to a blinding
    exponent t, c and d are the plaintext commitments raised to t.
    """

    a1_dash: int = field(default=0, metadata=_views(PUBLIC))
    a2_dash: int = field(default=0, metadata=_views(PUBLIC))
    b1_dash: int = field(default=0, metadata=_views(PUBLIC))
    b2_dash: int = field(default=0, metadata=_views(PUBLIC))
    c: int = field(default=0, metadata=_views(PUBLIC))
    d: int = field(default=0, metadata=_views(PUBLIC))
    pi11: Optional[Proof] = field(default=None, metadata=_views(PUBLIC))
    pi12: Optional[Proof] = field(default=None, metadata=_views(PUBLIC))
    pi21: Optional[Proof] = field(default=None, metadata=_views(PUBLIC))
    pi22: Optional[Proof] = field(default=None, metadata=_views(PUBLIC))
    pi23: Optional[Proof] = field(default=None, metadata=_views(PUBLIC))
    pi31: Optional[Proof] = field(default=None, metadata=_views(PUBLIC))
    pi32: Optional[Proof] = field(default=None, metadata=_views(PUBLIC))
    pi4: Optional[Proof] = field(default=None, metadata=_views(PUBLIC))
    pi5: Optional[Proof] = field(default=None, metadata=_views(PUBLIC))


@dataclass(frozen=True)
class EncryptProof(Record):
    """Disjunctive proof that an encrypted vote is one of the mapped options.

    Attributes
    - commitments: one (a1, a2) pair per vote option
    - challenges: per option challenges, summing to the Fiat-Shamir hash mod q
    - responses: per option responses
    - encrypted_vote_signature: signature binding the proof to the ciphertext
    """

    commitments: List[Tuple[int, int]] = field(default_factory=list, metadata=_views(PUBLIC))
    challenges: List[int] = field(default_factory=list, metadata=_views(PUBLIC))
    responses: List[int] = field(default_factory=list, metadata=_views(PUBLIC))
    encrypted_vote_signature: Optional[bytes] = field(default=None, metadata=_views(PUBLIC))


@dataclass
class ProofWrapper:
    """A step result together with the proof artifact written for it."""

    value: Any
    proof_file: Optional[Path] = None


## --- election records -------------------------------------------------------


@dataclass(frozen=True)
class Commitment(Record):
    """One teller's commitment for one voter

    Attributes
    - encrypted_g, encrypted_h: encoded ElGamal ciphertexts of g and h
    - g: g^r, teller only
    - h: trapdoor_public_key^r, teller only
    - public_key: the voter's trapdoor public key the commitment is bound to
    """

    encrypted_g: Optional[bytes] = field(default=None, metadata=_views(PUBLIC))
    encrypted_h: Optional[bytes] = field(default=None, metadata=_views(PUBLIC))
    g: Optional[int] = field(default=None, metadata=_views(PRIVATE))
    h: Optional[int] = field(default=None, metadata=_views(PRIVATE))
    public_key: Optional[int] = field(default=None, metadata=_views(PUBLIC))


@dataclass(eq=False)
class TrackerNumber(Record):
    """A tracker number, its encoding g^n mod p and the encrypted encoding.

    Two tracker numbers are equal when their integer values are.
    """

    tracker_number: Optional[int] = field(default=None, metadata=_views(RESTRICTED_PUBLIC, MIXED))
    tracker_number_in_group: Optional[int] = field(default=None, metadata=_views(RESTRICTED_PUBLIC))
    encrypted_tracker_number_in_group: Optional[bytes] = field(
        default=None, metadata=_views(ERS_VOTE_ENCRYPTED_IMPORT, ERS_VOTE_IMPORT, VOTE, PUBLIC)
    )

    def __eq__(self, other):
        if not isinstance(other, TrackerNumber):
            return NotImplemented
        return self.tracker_number == other.tracker_number

    def __hash__(self):
        return hash(self.tracker_number)


@dataclass
class VoteOption(Record):
    option: Optional[str] = field(default=None, metadata=_views(ERS_IMPORT, PUBLIC))
    option_number_in_group: Optional[int] = field(default=None, metadata=_views(ERS_IMPORT, PUBLIC))


@dataclass
class Voter(Record):
    """A voter as it moves through the election.

    The plaintext vote is transient: it is cleared once the vote is encrypted
    and is never projected together with the encrypted vote.
    """

    id: Optional[int] = field(
        default=None,
        metadata=_views(ERS_EXPORT, ERS_VOTE_EXPORT, ERS_IMPORT, ERS_KEY_IMPORT, ERS_VOTE_ENCRYPTED_IMPORT, ERS_VOTE_IMPORT),
    )
    alpha: Optional[int] = field(default=None, metadata=_views(ERS_VOTE_EXPORT))
    beta: Optional[int] = field(default=None, metadata=_views(ERS_VOTE_ENCRYPTED_IMPORT, ERS_VOTE_IMPORT, VOTE, PUBLIC))
    encrypted_vote: Optional[bytes] = field(
        default=None, metadata=_views(ERS_VOTE_ENCRYPTED_IMPORT, ERS_VOTE_EXPORT, VOTE, VOTER_VOTE)
    )
    encrypted_vote_signature: Optional[bytes] = field(
        default=None, metadata=_views(ERS_VOTE_ENCRYPTED_IMPORT, ERS_VOTE_EXPORT, VOTE, VOTER_VOTE)
    )
    plain_text_vote: Optional[str] = field(default=None, metadata=_views(ERS_VOTE_ENCRYPTED_IMPORT, ERS_VOTE_IMPORT, MIXED))
    tracker_number: Optional[TrackerNumber] = None
    voter_key_pairs: Optional[VoterKeyPairs] = None

    def to_dict(self, view: Optional[str] = None) -> Dict[str, Any]:
        out = super().to_dict(view)
        if "encrypted_vote" in out:
            out.pop("plain_text_vote", None)
        return out

    @property
    def signature_key_pair(self) -> Optional[KeyPair]:
        return self.voter_key_pairs.signature_key_pair if self.voter_key_pairs else None

    @property
    def trapdoor_key_pair(self) -> Optional[KeyPair]:
        return self.voter_key_pairs.trapdoor_key_pair if self.voter_key_pairs else None
