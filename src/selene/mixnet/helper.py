"""Threshold mix network run by the tellers of an election.

Each teller calls the same operation with the same input from its own thread
or process. The tellers meet through TellerStorage: every step writes its
public output to a session directory on the bulletin and waits until the
records it needs from the other tellers are there. The proof artifact handed
back for a session is a zip archive of that session directory.
"""

import hashlib
import logging
import shutil
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .. import config
from ..ciphertext import CipherText
from ..data import KeyPair, Parameters, Proof, ProofWrapper
from ..exceptions import CryptographyError, MalformedInputError
from ..nizkp import ChaumPedersenAlgorithmHelper
from . import threshold
from .shuffle import decode_rows, encode_rows, flatten, prove_shuffle, shuffle_rows, to_rows, verify_shuffle
from .storage import TellerStorage

logger = logging.getLogger(__name__)

PROTOCOL_INFO = "protInfo.json"
PRIVATE_INFO = "privInfo.json"
SESSIONS = "sessions.json"


def _digest(cipher_texts: Sequence[CipherText]) -> str:
    h = hashlib.sha256()
    for cipher_text in cipher_texts:
        h.update(cipher_text.to_bytes())
    return h.hexdigest()


class MixnetHelper:
    """Key generation, shuffling and decryption shared between tellers."""

    def __init__(
        self,
        directory=None,
        shuffle_rounds: Optional[int] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.directory = Path(directory or config.MIXNET_DIRECTORY)
        self.shuffle_rounds = shuffle_rounds or config.SHUFFLE_PROOF_ROUNDS
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.chaum_pedersen = ChaumPedersenAlgorithmHelper()

    def storage(self, parameters: Parameters) -> TellerStorage:
        return TellerStorage(self.directory, parameters, self.poll_interval, self.timeout)

    ## --- teller set up ------------------------------------------------------

    def create_teller(self, parameters: Parameters, teller: int, host_address: str, teller_port: int, hint_port: int) -> Path:
        """Write this teller's information file, to be copied to every other teller."""
        storage = self.storage(parameters)
        name = storage.teller_name(teller)
        info = {
            "name": name,
            "teller": teller,
            "http": f"http://{host_address}:{teller_port}",
            "hint": f"{host_address}:{hint_port}",
            "election": parameters.name,
            "fingerprint": parameters.fingerprint(),
            "number_of_tellers": parameters.number_of_tellers,
            "threshold_tellers": parameters.threshold_tellers,
        }
        logger.info("Creating %s at %s", name, info["http"])
        return storage.write(storage.teller_directory(teller) / f"{name}.json", info)

    def get_teller_information_files(self, parameters: Parameters, teller: int) -> List[Path]:
        storage = self.storage(parameters)
        directory = storage.teller_directory(teller)
        return [directory / f"{storage.teller_name(i)}.json" for i in range(1, parameters.number_of_tellers + 1)]

    def merge_teller(self, parameters: Parameters, teller: int, files: Iterable) -> Path:
        """Merge every teller's information file into this teller's protocol info."""
        files = [Path(f) for f in files]
        expected = parameters.number_of_tellers
        if len(files) != expected:
            raise MalformedInputError(f"Expected {expected} teller information files but got {len(files)}")
        storage = self.storage(parameters)
        infos = [storage.read(f) for f in files]
        if sorted(info.get("teller") for info in infos) != list(range(1, expected + 1)):
            raise MalformedInputError("Teller information files do not cover every teller")
        fingerprint = parameters.fingerprint()
        for info in infos:
            if info.get("fingerprint") != fingerprint:
                raise MalformedInputError(f"Teller information file for {info.get('name')} belongs to another election")
        infos.sort(key=lambda info: info["teller"])
        logger.info("Merged %d teller information files for %s", expected, storage.teller_name(teller))
        return storage.write(storage.teller_directory(teller) / PROTOCOL_INFO, {"tellers": infos})

    def _require_merged(self, storage: TellerStorage, teller: int):
        if not (storage.teller_directory(teller) / PROTOCOL_INFO).exists():
            raise CryptographyError(f"{storage.teller_name(teller)} has not been merged")

    def _private_info(self, storage: TellerStorage, teller: int) -> Dict:
        path = storage.teller_directory(teller) / PRIVATE_INFO
        if not path.exists():
            raise CryptographyError(f"{storage.teller_name(teller)} has no election key share")
        return storage.read(path)

    def _session(self, storage: TellerStorage, teller: int, operation: str, digest: str) -> Path:
        # every teller runs the same operations in the same order, so counters line up
        path = storage.teller_directory(teller) / SESSIONS
        counters = storage.read(path) if path.exists() else {}
        counters[operation] = counters.get(operation, 0) + 1
        storage.write(path, counters)
        return storage.bulletin(f"{operation}-{counters[operation]:04d}-{digest[:12]}")

    def _archive(self, storage: TellerStorage, teller: int, session: Path) -> Path:
        base = storage.teller_directory(teller) / "proofs" / session.name
        base.parent.mkdir(parents=True, exist_ok=True)
        return Path(shutil.make_archive(str(base), "zip", root_dir=session))

    ## --- key generation -----------------------------------------------------

    def create_election_key_pair(self, random, parameters: Parameters, teller: int) -> KeyPair:
        """Run distributed key generation; returns the public election key only."""
        storage = self.storage(parameters)
        self._require_merged(storage, teller)
        number, needed = parameters.number_of_tellers, parameters.threshold_tellers
        session = self._session(storage, teller, "keygen", parameters.fingerprint())

        commitments, shares = threshold.deal(random, parameters, needed, number)
        storage.write(session / f"commitments-{teller}.json", {"commitments": commitments})
        for recipient, share in shares.items():
            inbox = storage.teller_directory(recipient) / "inbox" / session.name
            storage.write(inbox / f"share-{teller}.json", {"share": share})

        all_commitments = {}
        secret_share = 0
        inbox = storage.teller_directory(teller) / "inbox" / session.name
        for dealer in range(1, number + 1):
            dealt = storage.wait_for(session / f"commitments-{dealer}.json")["commitments"]
            share = storage.wait_for(inbox / f"share-{dealer}.json")["share"]
            if len(dealt) != needed or not threshold.verify_share(parameters, dealt, teller, share):
                raise CryptographyError(f"Teller {dealer} dealt an invalid key share")
            all_commitments[dealer] = dealt
            secret_share = (secret_share + share) % parameters.q

        public_key = threshold.election_public_key(parameters, all_commitments)
        storage.write(
            storage.teller_directory(teller) / PRIVATE_INFO,
            {
                "session": session.name,
                "secret_share": secret_share,
                "commitments": {str(d): c for d, c in all_commitments.items()},
                "public_key": public_key,
            },
        )
        storage.write(session / f"public-key-{teller}.json", {"public_key": public_key})
        logger.info("%s holds its share of the election key", storage.teller_name(teller))
        return KeyPair(public_key=public_key)

    ## --- shuffle and decrypt --------------------------------------------------

    def _shuffle_session(self, random, parameters, storage, teller, session, rows, public_key):
        previous = rows
        for mixer in range(1, parameters.number_of_tellers + 1):
            path = session / f"shuffle-{mixer}.json"
            if mixer == teller:
                current, permutation, randomness = shuffle_rows(random, parameters, public_key, previous)
                proof = prove_shuffle(
                    random, parameters, public_key, previous, current, permutation, randomness, self.shuffle_rounds
                )
                storage.write(path, {"rows": encode_rows(current), "proof": proof})
            else:
                record = storage.wait_for(path)
                current = decode_rows(record["rows"])
                proof = record["proof"]
                if not verify_shuffle(parameters, public_key, previous, current, proof, self.shuffle_rounds):
                    raise CryptographyError(f"Shuffle proof from teller {mixer} does not verify")
            previous = current
        return previous

    def _decrypt_session(self, random, parameters, storage, teller, session, cipher_texts: List[CipherText], private) -> List[int]:
        share_keys = {
            int(d): threshold.public_share(parameters, {int(k): c for k, c in private["commitments"].items()}, int(d))
            for d in private["commitments"]
        }
        secret_share = private["secret_share"]
        partials, proofs = [], []
        for cipher_text in cipher_texts:
            partial, proof = threshold.partial_decrypt(
                random, parameters, self.chaum_pedersen, secret_share, share_keys[teller], cipher_text
            )
            partials.append(partial)
            proofs.append([proof.hash, proof.signature])
        storage.write(session / f"partial-{teller}.json", {"partials": partials, "proofs": proofs})

        paths = {session / f"partial-{d}.json": d for d in range(1, parameters.number_of_tellers + 1)}
        needed = parameters.threshold_tellers
        verified: Dict[int, List[int]] = {}
        # a partial that fails is skipped; keep waiting for the others until enough verify
        while len(verified) < needed and paths:
            for path in storage.wait_for_count(paths, 1):
                d = paths.pop(path)
                record = storage.read(path)
                if self._verify_partials(parameters, share_keys[d], cipher_texts, record):
                    verified[d] = record["partials"]
                else:
                    logger.warning("Partial decryption from teller %d does not verify", d)
                if len(verified) == needed:
                    break
        if len(verified) < needed:
            raise CryptographyError(f"Only {len(verified)} of {needed} required partial decryptions verify")
        return [
            threshold.combine(parameters, {d: values[i] for d, values in verified.items()}, cipher_text)
            for i, cipher_text in enumerate(cipher_texts)
        ]

    def _verify_partials(self, parameters, share_key, cipher_texts, record) -> bool:
        partials, proofs = record.get("partials", []), record.get("proofs", [])
        if len(partials) != len(cipher_texts) or len(proofs) != len(cipher_texts):
            return False
        return all(
            threshold.verify_partial(parameters, self.chaum_pedersen, share_key, c, d, Proof(hash=h, signature=s))
            for c, d, (h, s) in zip(cipher_texts, partials, proofs)
        )

    def shuffle(self, random, parameters: Parameters, teller: int, width: int, cipher_texts: List[CipherText]) -> ProofWrapper:
        """Re-encrypt and permute rows of `width` ciphertexts through every teller."""
        storage = self.storage(parameters)
        private = self._private_info(storage, teller)
        session = self._session(storage, teller, "shuffle", _digest(cipher_texts))
        logger.info("%s shuffling %d ciphertexts in %s", storage.teller_name(teller), len(cipher_texts), session.name)
        rows = self._shuffle_session(
            random, parameters, storage, teller, session, to_rows(cipher_texts, width), private["public_key"]
        )
        return ProofWrapper(flatten(rows), self._archive(storage, teller, session))

    def decrypt(self, random, parameters: Parameters, teller: int, width: int, cipher_texts: List[CipherText]) -> ProofWrapper:
        """Jointly decrypt; every teller returns the same plaintexts."""
        if width < 1 or len(cipher_texts) % width:
            raise MalformedInputError(f"Cannot split {len(cipher_texts)} ciphertexts into rows of width {width}")
        storage = self.storage(parameters)
        private = self._private_info(storage, teller)
        session = self._session(storage, teller, "decrypt", _digest(cipher_texts))
        logger.info("%s decrypting %d ciphertexts in %s", storage.teller_name(teller), len(cipher_texts), session.name)
        values = self._decrypt_session(random, parameters, storage, teller, session, cipher_texts, private)
        return ProofWrapper(values, self._archive(storage, teller, session))

    def mix(self, random, parameters: Parameters, teller: int, width: int, cipher_texts: List[CipherText]) -> ProofWrapper:
        """Shuffle then decrypt in one session, keeping rows of `width` together."""
        storage = self.storage(parameters)
        private = self._private_info(storage, teller)
        session = self._session(storage, teller, "mix", _digest(cipher_texts))
        logger.info("%s mixing %d ciphertexts in %s", storage.teller_name(teller), len(cipher_texts), session.name)
        rows = self._shuffle_session(
            random, parameters, storage, teller, session, to_rows(cipher_texts, width), private["public_key"]
        )
        values = self._decrypt_session(random, parameters, storage, teller, session, flatten(rows), private)
        return ProofWrapper(values, self._archive(storage, teller, session))
