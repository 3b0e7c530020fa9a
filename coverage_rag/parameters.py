"""Hybrid retrieval tunables.

Defines:
- HybridParameters: immutable, validated (alpha, k_semantic, k_lexical, k_context) value.
- HybridConfig: long-lived, lock-guarded holder with validating setters and snapshot().

A retrieval works from one HybridParameters value for its whole duration, so a setter
running on another thread can never mix a new alpha with an old k_context.
"""
import math
import threading
from dataclasses import dataclass, replace
from numbers import Integral, Real
from typing import Optional

from coverage_rag.config import settings
from coverage_rag.exceptions import ConfigurationError


def _check_alpha(alpha) -> float:
    if isinstance(alpha, bool) or not isinstance(alpha, Real):
        raise ConfigurationError(f"alpha must be a number, got {alpha!r}")
    alpha = float(alpha)
    if not math.isfinite(alpha) or alpha < 0.0 or alpha > 1.0:
        raise ConfigurationError(f"alpha must be in range [0, 1], got {alpha}")
    return alpha


def _check_k(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return int(value)


@dataclass(frozen=True)
class HybridParameters:
    """Weights and cut-offs for one hybrid retrieval.

    Attributes:
        alpha: Weight of the normalized semantic score; (1 - alpha) weighs the lexical one.
        k_semantic: Candidates taken from the cosine-similarity scan.
        k_lexical: Candidates taken from the lexical index.
        k_context: Maximum number of results returned.
    """
    alpha: float = 0.6
    k_semantic: int = 200
    k_lexical: int = 200
    k_context: int = 30

    def __post_init__(self):
        object.__setattr__(self, "alpha", _check_alpha(self.alpha))
        for name in ("k_semantic", "k_lexical", "k_context"):
            object.__setattr__(self, name, _check_k(name, getattr(self, name)))

    @classmethod
    def from_settings(cls) -> "HybridParameters":
        return cls(
            alpha=settings.HYBRID_ALPHA,
            k_semantic=settings.K_SEMANTIC,
            k_lexical=settings.K_LEXICAL,
            k_context=settings.K_CONTEXT,
        )

    def with_overrides(self, **changes) -> "HybridParameters":
        """Return a validated copy with the non-None fields of changes applied."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes) if changes else self


class HybridConfig:
    """Mutable configuration surface of a retrieval engine.

    Every setter validates synchronously and raises ConfigurationError without changing
    state. Readers take consistent snapshots via snapshot().
    """

    def __init__(self, params: Optional[HybridParameters] = None):
        self._lock = threading.Lock()
        self._params = params or HybridParameters.from_settings()

    def snapshot(self) -> HybridParameters:
        with self._lock:
            return self._params

    def update(self, **changes) -> HybridParameters:
        """Apply several changes atomically; either all take effect or none do."""
        with self._lock:
            self._params = self._params.with_overrides(**changes)
            return self._params

    @property
    def alpha(self) -> float:
        return self.snapshot().alpha

    @alpha.setter
    def alpha(self, value: float) -> None:
        self.update(alpha=_check_alpha(value))

    @property
    def k_semantic(self) -> int:
        return self.snapshot().k_semantic

    @k_semantic.setter
    def k_semantic(self, value: int) -> None:
        self.update(k_semantic=_check_k("k_semantic", value))

    @property
    def k_lexical(self) -> int:
        return self.snapshot().k_lexical

    @k_lexical.setter
    def k_lexical(self, value: int) -> None:
        self.update(k_lexical=_check_k("k_lexical", value))

    @property
    def k_context(self) -> int:
        return self.snapshot().k_context

    @k_context.setter
    def k_context(self, value: int) -> None:
        self.update(k_context=_check_k("k_context", value))
