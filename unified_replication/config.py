"""Operator configuration management."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_BACKEND_PREFERENCE = ["ceph", "trident", "powerstore"]


@dataclass
class DiscoveryConfig:
    cache_ttl_seconds: float = 300.0
    timeout_per_backend: float = 10.0
    enable_caching: bool = True


@dataclass
class RetryConfig:
    max_attempts: int = 5
    initial_delay: float = 1.0
    max_delay: float = 300.0
    multiplier: float = 2.0
    jitter: float = 0.1


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 1
    cooldown_seconds: float = 60.0


@dataclass
class EngineConfig:
    backend_preference: List[str] = field(default_factory=lambda: list(DEFAULT_BACKEND_PREFERENCE))
    validate_capabilities: bool = True


@dataclass
class ServerConfig:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8081


@dataclass
class OperatorConfig:
    discovery: DiscoveryConfig
    retry: RetryConfig
    circuit_breaker: CircuitBreakerConfig
    engine: EngineConfig
    server: ServerConfig
    log_level: str = "INFO"
    kubeconfig: Optional[str] = None


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


def load_operator_config() -> OperatorConfig:
    """Load operator configuration from environment variables."""
    discovery_config = DiscoveryConfig(
        cache_ttl_seconds=float(os.getenv('DISCOVERY_CACHE_TTL_SECONDS', '300')),
        timeout_per_backend=float(os.getenv('DISCOVERY_TIMEOUT_PER_BACKEND', '10')),
        enable_caching=_get_bool('DISCOVERY_CACHE_ENABLED', 'true')
    )

    retry_config = RetryConfig(
        max_attempts=int(os.getenv('RETRY_MAX_ATTEMPTS', '5')),
        initial_delay=float(os.getenv('RETRY_INITIAL_DELAY', '1.0')),
        max_delay=float(os.getenv('RETRY_MAX_DELAY', '300')),
        multiplier=float(os.getenv('RETRY_MULTIPLIER', '2.0')),
        jitter=float(os.getenv('RETRY_JITTER', '0.1'))
    )

    breaker_config = CircuitBreakerConfig(
        failure_threshold=int(os.getenv('CIRCUIT_FAILURE_THRESHOLD', '5')),
        success_threshold=int(os.getenv('CIRCUIT_SUCCESS_THRESHOLD', '1')),
        cooldown_seconds=float(os.getenv('CIRCUIT_COOLDOWN_SECONDS', '60'))
    )

    preference = os.getenv('BACKEND_PREFERENCE')
    engine_config = EngineConfig(
        backend_preference=(
            [b.strip().lower() for b in preference.split(',') if b.strip()]
            if preference else list(DEFAULT_BACKEND_PREFERENCE)
        ),
        validate_capabilities=_get_bool('VALIDATE_CAPABILITIES', 'true')
    )

    server_config = ServerConfig(
        enabled=_get_bool('HEALTH_SERVER_ENABLED', 'true'),
        host=os.getenv('HEALTH_HOST', '0.0.0.0'),
        port=int(os.getenv('HEALTH_PORT', '8081'))
    )

    return OperatorConfig(
        discovery=discovery_config,
        retry=retry_config,
        circuit_breaker=breaker_config,
        engine=engine_config,
        server=server_config,
        log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        kubeconfig=os.getenv('KUBECONFIG')
    )
