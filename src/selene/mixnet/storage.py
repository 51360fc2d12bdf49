"""File based exchange area for the tellers of one election.

The layout under the storage root is

    <fingerprint>/
        bulletin/<session>/...   records every teller may read
        Teller<n>/...            one teller's private records and inbox
        tmp/                     staging for atomic writes

where <fingerprint> identifies the election parameters. Records are JSON
files written with a rename so a reader never sees a partial file.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Iterable, List, Optional

from .. import config
from ..data import Parameters
from ..exceptions import CryptographyError

logger = logging.getLogger(__name__)

TELLER_NAME = "Teller"


class TellerStorage:
    def __init__(
        self,
        root,
        parameters: Parameters,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.parameters = parameters
        self.directory = Path(root) / parameters.fingerprint()[:16]
        self.poll_interval = config.BARRIER_POLL_INTERVAL if poll_interval is None else poll_interval
        self.timeout = config.BARRIER_TIMEOUT if timeout is None else timeout

    def teller_name(self, teller: int) -> str:
        padding = len(str(self.parameters.number_of_tellers))
        return f"{TELLER_NAME}{teller:0{padding}d}"

    def teller_directory(self, teller: int) -> Path:
        return self.directory / self.teller_name(teller)

    def bulletin(self, *parts: str) -> Path:
        return self.directory.joinpath("bulletin", *parts)

    def write(self, path: Path, record: Any) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        staging = self.directory / "tmp"
        staging.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=staging, suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(record, f)
            os.replace(tmp, path)
        except OSError as e:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise CryptographyError(f"Could not write {path}", e) from e
        return path

    def read(self, path: Path) -> Any:
        try:
            with open(path) as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise CryptographyError(f"Could not read {path}", e) from e

    def wait_for(self, path: Path) -> Any:
        """Block until another teller has written `path`, then read it."""
        self.wait_for_count([path], 1)
        return self.read(path)

    def wait_for_count(self, paths: Iterable[Path], count: int) -> List[Path]:
        """Block until at least `count` of `paths` exist and return those that do."""
        paths = list(paths)
        deadline = time.monotonic() + self.timeout
        while True:
            present = [p for p in paths if p.exists()]
            if len(present) >= count:
                return present
            if time.monotonic() > deadline:
                raise CryptographyError(
                    f"Timed out waiting for {count} of {len(paths)} teller records in {paths[0].parent}"
                )
            time.sleep(self.poll_interval)
