"""Fault admission gate — dedup, cooldown and post-success grace.

Decides whether a fault may start a repair session.  The decision and
the state update happen under one lock, so two faults arriving together
can never both be admitted for the same window.

Order of checks (first match wins):

1. ``now < cooldown_until``                       → ``cooldown``
2. ``now - last_success_at < success_grace_s``    → ``post_success_transient``
3. fingerprint already in ``seen_fingerprints``   → ``already_fixed``
4. otherwise accept: record fingerprint, arm cooldown.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass, field

from autofix.contracts import Admission, Fault

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_S = 5.0
DEFAULT_SUCCESS_GRACE_S = 2.0
DEFAULT_PREFIX_CHARS = 100


def fingerprint(fault: Fault, prefix_chars: int = DEFAULT_PREFIX_CHARS) -> str:
    """Stable dedup key from the fault kind and a bounded message prefix."""
    key = f"{fault.kind.value}:{fault.raw_message[:prefix_chars]}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


@dataclass
class GateState:
    """Per-session dedup/cooldown state.  Owned by one ``FaultGate``."""

    seen_fingerprints: set[str] = field(default_factory=set)
    cooldown_until: float = 0.0
    last_success_at: float | None = None


class FaultGate:
    """Admission control for repair sessions."""

    def __init__(
        self,
        state: GateState | None = None,
        *,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        success_grace_s: float = DEFAULT_SUCCESS_GRACE_S,
        prefix_chars: int = DEFAULT_PREFIX_CHARS,
    ) -> None:
        if cooldown_s < 0 or success_grace_s < 0:
            raise ValueError("windows must be non-negative")
        if prefix_chars < 1:
            raise ValueError("prefix_chars must be >= 1")
        self._state = state if state is not None else GateState()
        self._cooldown_s = cooldown_s
        self._grace_s = success_grace_s
        self._prefix_chars = prefix_chars
        self._lock = threading.Lock()

    @property
    def state(self) -> GateState:
        return self._state

    def fingerprint(self, fault: Fault) -> str:
        return fingerprint(fault, self._prefix_chars)

    def admit(self, fault: Fault, now: float) -> Admission:
        """Check-and-set admission for *fault* observed at *now*."""
        fp = self.fingerprint(fault)
        with self._lock:
            st = self._state
            if now < st.cooldown_until:
                logger.debug("Fault %s suppressed: cooldown (%.2fs left)", fp, st.cooldown_until - now)
                return Admission(accepted=False, fingerprint=fp, reason="cooldown")

            if st.last_success_at is not None and now - st.last_success_at < self._grace_s:
                logger.debug("Fault %s suppressed: appeared right after a successful build", fp)
                return Admission(accepted=False, fingerprint=fp, reason="post_success_transient")

            if fp in st.seen_fingerprints:
                logger.debug("Fault %s suppressed: already handled", fp)
                return Admission(accepted=False, fingerprint=fp, reason="already_fixed")

            st.seen_fingerprints.add(fp)
            st.cooldown_until = now + self._cooldown_s

        logger.info("Fault %s admitted (%s)", fp, fault.kind.value)
        return Admission(accepted=True, fingerprint=fp)

    def record_success(self, now: float) -> None:
        """A verified clean build: forget seen faults, drop the cooldown."""
        with self._lock:
            self._state.seen_fingerprints.clear()
            self._state.cooldown_until = 0.0
            self._state.last_success_at = now

    def note_patch_applied(self, now: float) -> None:
        """Open the grace window for the recompile a merged patch triggers."""
        with self._lock:
            self._state.last_success_at = now

    def release(self, fp: str) -> None:
        """Evict *fp* so a persistent fault can be retried after a failed/aborted session."""
        with self._lock:
            self._state.seen_fingerprints.discard(fp)


__all__ = [
    "DEFAULT_COOLDOWN_S",
    "DEFAULT_PREFIX_CHARS",
    "DEFAULT_SUCCESS_GRACE_S",
    "FaultGate",
    "GateState",
    "fingerprint",
]
