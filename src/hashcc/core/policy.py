"""Security policy: path containment, absolute paths and weak algorithms."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from hashcc.config.models import PolicyConfig
from hashcc.core.digest import Algorithm
from hashcc.errors import PolicyViolation

LOGGER = logging.getLogger(__name__)

REASON_ABSOLUTE = "absolute path not allowed"
REASON_ESCAPES = "path escapes base directory"
REASON_WEAK = "weak algorithm not allowed"


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of validating one candidate path."""

    accepted: bool
    resolved: Optional[Path] = None
    reason: Optional[str] = None

    def raise_for_rejection(self, candidate: str) -> Path:
        if not self.accepted or self.resolved is None:
            raise PolicyViolation(self.reason or "rejected", path=candidate)
        return self.resolved


class SecurityPolicy:
    """Immutable per-invocation path and algorithm policy.

    Relative candidates are resolved against ``base_dir`` when one is
    configured; the normalised real path (symlinks followed) must stay inside
    the real ``base_dir``.
    """

    def __init__(
        self,
        *,
        base_dir: Path | None = None,
        allow_absolute: bool = False,
        allow_weak: bool = False,
    ) -> None:
        self._base_dir = Path(base_dir).expanduser() if base_dir is not None else None
        self._base_real = self._base_dir.resolve() if self._base_dir is not None else None
        self._allow_absolute = allow_absolute
        self._allow_weak = allow_weak

    @classmethod
    def from_config(cls, config: PolicyConfig) -> "SecurityPolicy":
        return cls(
            base_dir=config.base_dir,
            allow_absolute=config.allow_absolute,
            allow_weak=config.allow_weak,
        )

    @property
    def base_dir(self) -> Path | None:
        return self._base_dir

    @property
    def allow_absolute(self) -> bool:
        return self._allow_absolute

    def algorithm_allowed(self, algorithm: Algorithm) -> bool:
        return self._allow_weak or not algorithm.weak

    def check_algorithm(self, algorithm: Algorithm) -> None:
        """Raise PolicyViolation when ``algorithm`` is weak and weak algorithms are not allowed."""

        if not self.algorithm_allowed(algorithm):
            raise PolicyViolation(
                f"{REASON_WEAK} ({algorithm.name}); pass --allow-weak to proceed"
            )

    def validate(self, candidate: str | Path, *, algorithm: Algorithm | None = None) -> PolicyDecision:
        """Accept or reject ``candidate``, returning the path to read on acceptance."""

        if algorithm is not None and not self.algorithm_allowed(algorithm):
            return PolicyDecision(False, reason=f"{REASON_WEAK} ({algorithm.name})")

        raw = Path(candidate)
        if raw.is_absolute() and not self._allow_absolute:
            return PolicyDecision(False, reason=REASON_ABSOLUTE)

        if self._base_dir is not None and not raw.is_absolute():
            resolved = self._base_dir / raw
        else:
            resolved = raw

        if not self.contains(resolved):
            return PolicyDecision(False, reason=REASON_ESCAPES)
        return PolicyDecision(True, resolved=resolved)

    def contains(self, path: Path) -> bool:
        """Return True if ``path`` resolves inside the base directory (always True without one)."""

        if self._base_real is None:
            return True
        try:
            real = path.resolve()
        except (OSError, RuntimeError) as exc:
            LOGGER.debug("Could not resolve %s: %s", path, exc)
            return False
        return real == self._base_real or self._base_real in real.parents


__all__ = [
    "PolicyDecision",
    "REASON_ABSOLUTE",
    "REASON_ESCAPES",
    "REASON_WEAK",
    "SecurityPolicy",
]
