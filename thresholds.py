import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional

from errors import InvalidThresholdUpdate, PermissionDenied
from utils import utcnow_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Thresholds:
    max_transport_temp_c: int  # °C x100
    max_weight_deviation_pct: int
    min_dry_matter_pct: int
    version: int = 1

    def as_dict(self) -> dict:
        return {
            "max_transport_temp_c": self.max_transport_temp_c,
            "max_weight_deviation_pct": self.max_weight_deviation_pct,
            "min_dry_matter_pct": self.min_dry_matter_pct,
            "version": self.version,
        }


@dataclass(frozen=True)
class ThresholdsUpdated:
    actor: str
    thresholds: Thresholds
    timestamp: str

    def as_payload(self) -> dict:
        return {"actor": self.actor, "new_values": self.thresholds.as_dict()}


def _check_int(name: str, value) -> int:
    # bool is an int subclass but never a meaningful threshold
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidThresholdUpdate(f"{name} must be an integer, got {value!r}")
    return value


class ThresholdRegistry:
    """
    Holds the audit thresholds currently in force.

    The snapshot is an immutable Thresholds instance swapped under a lock,
    so readers never see a half-applied update. Only the owner may update,
    and all three limits are always replaced together.
    """

    def __init__(self, owner: str, thresholds: Thresholds):
        self._owner = owner
        self._current = thresholds
        self._lock = threading.Lock()

    @classmethod
    def initialize(cls, owner: str, max_transport_temp_c: int, max_weight_deviation_pct: int,
                   min_dry_matter_pct: int, version: int = 1) -> "ThresholdRegistry":
        thresholds = Thresholds(
            max_transport_temp_c=_check_int("max_transport_temp_c", max_transport_temp_c),
            max_weight_deviation_pct=_check_int("max_weight_deviation_pct", max_weight_deviation_pct),
            min_dry_matter_pct=_check_int("min_dry_matter_pct", min_dry_matter_pct),
            version=version,
        )
        logger.info("Threshold registry initialized by owner %s: %s", owner, thresholds)
        return cls(owner, thresholds)

    @property
    def owner(self) -> str:
        return self._owner

    def current(self) -> Thresholds:
        return self._current

    def update(self, max_transport_temp_c: int, max_weight_deviation_pct: int,
               min_dry_matter_pct: int, actor: str,
               persist: Optional[Callable[[ThresholdsUpdated], None]] = None) -> ThresholdsUpdated:
        """Replace all thresholds. `persist` runs before the swap; if it raises, nothing changes."""
        if actor != self._owner:
            logger.warning("Threshold update rejected for %s", actor)
            raise PermissionDenied(actor, "update thresholds")
        values = (
            _check_int("max_transport_temp_c", max_transport_temp_c),
            _check_int("max_weight_deviation_pct", max_weight_deviation_pct),
            _check_int("min_dry_matter_pct", min_dry_matter_pct),
        )
        with self._lock:
            new = replace(
                self._current,
                max_transport_temp_c=values[0],
                max_weight_deviation_pct=values[1],
                min_dry_matter_pct=values[2],
                version=self._current.version + 1,
            )
            event = ThresholdsUpdated(actor=actor, thresholds=new, timestamp=utcnow_iso())
            if persist is not None:
                persist(event)
            self._current = new
        logger.info("Thresholds updated to version %d by %s", new.version, actor)
        return event
