"""Faucet state aggregate and its on-disk snapshot store."""

import fcntl
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class FaucetStats(NamedTuple):
    """Running usage counters, all in wei except the count."""

    payout_count: int = 0
    total_paid_out: int = 0
    total_funded: int = 0


@dataclass
class FaucetState:
    """Everything the engine owns and mutates.

    Attributes
    ----------
    payout_amount : int
        Wei sent per successful payout.
    lock_duration : int
        Seconds a recipient waits between payouts.
    pool_balance : int
        Wei held in custody for distribution.
    locks : dict[str, int]
        Checksummed recipient address to the timestamp of its last payout.
    stats : FaucetStats
        Running counters.
    """

    payout_amount: int
    lock_duration: int
    pool_balance: int = 0
    locks: dict[str, int] = field(default_factory=dict)
    stats: FaucetStats = field(default_factory=FaucetStats)


@dataclass
class FaucetSnapshot:
    """Persistable view of the engine and its guards."""

    owner: str
    paused: bool
    state: FaucetState


_SNAPSHOT_ADAPTER = TypeAdapter(FaucetSnapshot)


class StateStore:
    """JSON file holding the latest faucet snapshot.

    Processes sharing the file (the service and CLI invocations) hold
    ``locked()`` while they reload, mutate and save, so one process never
    overwrites changes saved by another.

    Parameters
    ----------
    path : str | Path
        Location of the state file. Parent directories are created on save.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._path.with_name(self._path.name + ".lock")

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold an exclusive lock on the state file.

        Blocks until no other process holds it. The lock lives on a sidecar
        ``.lock`` file because ``save`` replaces the state file itself.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a") as lock:
            fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)

    def load(self) -> FaucetSnapshot | None:
        """Read the stored snapshot.

        Returns
        -------
        FaucetSnapshot | None
            The snapshot, or None if no state file exists yet.

        Raises
        ------
        ValueError
            If the file exists but does not hold a valid snapshot.
        """
        if not self._path.exists():
            return None
        try:
            return _SNAPSHOT_ADAPTER.validate_json(self._path.read_bytes())
        except ValidationError as e:
            raise ValueError(f"Corrupt faucet state file {self._path}: {e}") from e

    def save(self, snapshot: FaucetSnapshot) -> None:
        """Write a snapshot atomically, replacing the previous one."""
        self._path.parent.mkdir(parents=True, exist_ok=True)

        # Temp file in the same directory keeps os.replace on one filesystem
        fd, temp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".purple-state-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(_SNAPSHOT_ADAPTER.dump_json(snapshot, indent=2))
            os.replace(temp_path, self._path)
        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise

        logger.debug("Faucet state saved", extra={"path": str(self._path)})
