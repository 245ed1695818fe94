"""
Circuit breakers for outbound provider calls (pybreaker).

A provider that keeps failing (quota exhausted, outage) is short-circuited
for a cool-down period so a long enrichment run degrades the affected
signal quickly instead of waiting on every destination.
"""

from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, Optional

import pybreaker

from travel_enrichment.logging_config import get_logger, metrics

logger = get_logger("circuit_breaker")

# Re-exported so callers need not import pybreaker directly
CircuitBreakerError = pybreaker.CircuitBreakerError


# ============================================================================
# Configuration
# ============================================================================

@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    fail_max: int = 5               # Consecutive failures before opening
    reset_timeout: float = 60.0     # Seconds before a trial call is allowed
    exclude: tuple = ()             # Exceptions that don't count as failures


# Default configurations per provider
DEFAULT_CONFIGS = {
    "places": CircuitBreakerConfig(fail_max=5, reset_timeout=60.0),
    "pexels": CircuitBreakerConfig(fail_max=3, reset_timeout=120.0),
    "bigquery": CircuitBreakerConfig(fail_max=3, reset_timeout=300.0),
    "default": CircuitBreakerConfig(),
}


class LoggingListener(pybreaker.CircuitBreakerListener):
    """Logs state transitions and counts breaker trips."""

    def state_change(self, cb, old_state, new_state):
        old_name = old_state.name if old_state else None
        logger.warning(
            f"Circuit breaker '{cb.name}' changed state: {old_name} -> {new_state.name}",
            extra={"breaker": cb.name, "old_state": old_name, "new_state": new_state.name}
        )
        if new_state.name == pybreaker.STATE_OPEN:
            metrics.record_error(f"{cb.name}_circuit_open")


# ============================================================================
# Circuit Breaker Registry
# ============================================================================

class CircuitBreakerRegistry:
    """
    Registry for managing multiple circuit breakers.

    Provides a central place to get/create circuit breakers by name.
    """

    def __init__(self):
        self._breakers: Dict[str, pybreaker.CircuitBreaker] = {}
        self._lock = Lock()

    def get(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None
    ) -> pybreaker.CircuitBreaker:
        """
        Get or create a circuit breaker by name.

        Args:
            name: Circuit breaker identifier
            config: Optional configuration override

        Returns:
            pybreaker.CircuitBreaker instance
        """
        with self._lock:
            if name not in self._breakers:
                breaker_config = config or DEFAULT_CONFIGS.get(name, DEFAULT_CONFIGS["default"])
                self._breakers[name] = pybreaker.CircuitBreaker(
                    fail_max=breaker_config.fail_max,
                    reset_timeout=breaker_config.reset_timeout,
                    exclude=list(breaker_config.exclude),
                    listeners=[LoggingListener()],
                    name=name,
                )
            return self._breakers[name]

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        """Get state and failure count of all circuit breakers."""
        return {
            name: {"state": breaker.current_state, "fail_counter": breaker.fail_counter}
            for name, breaker in self._breakers.items()
        }

    def reset_all(self) -> None:
        """Close all circuit breakers."""
        with self._lock:
            for breaker in self._breakers.values():
                breaker.close()


# Global registry instance
circuit_breakers = CircuitBreakerRegistry()


def get_circuit_breaker(name: str) -> pybreaker.CircuitBreaker:
    """
    Get a circuit breaker by name from the global registry.

    Args:
        name: Circuit breaker identifier

    Returns:
        Circuit breaker instance
    """
    return circuit_breakers.get(name)
