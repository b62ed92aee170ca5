"""Controller engine.

Composes discovery, backend selection, translation, the adapter registry and
the resilience layer into one reconciliation pass per replication object.
"""

import logging
import threading
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .adapters.registry import AdapterRegistry
from .config import EngineConfig
from .discovery.capabilities import CapabilityRegistry
from .discovery.engine import DiscoveryEngine
from .errors import BackendUnavailableError, ConfigurationError, ReplicationError, reason_for
from .kube.client import ResourceClient
from .metrics import RECONCILE_ERRORS, track_operation
from .models import (
    FINALIZER,
    BackendIdentity,
    Condition,
    Extensions,
    Operation,
    ReconcileResult,
    ReplicationClass,
    ReplicationGroup,
    ReplicationIntent,
    ReplicationMode,
    ReplicationState,
    UnifiedStatus,
)
from .resilience import CircuitBreakerRegistry, RetryManager
from .selection import select_backend
from .state_machine import StateMachine, TransitionVerdict
from .translation import TranslationEngine

logger = logging.getLogger(__name__)

READY = "Ready"
RECONCILE_COMPLETE = "ReconcileComplete"


class ControllerEngine:
    def __init__(self, client: ResourceClient, registry: AdapterRegistry,
                 discovery: Optional[DiscoveryEngine] = None,
                 translator: Optional[TranslationEngine] = None,
                 state_machine: Optional[StateMachine] = None,
                 retry: Optional[RetryManager] = None,
                 breakers: Optional[CircuitBreakerRegistry] = None,
                 config: Optional[EngineConfig] = None):
        """Initialize the controller engine.

        Args:
            client: Object store client for classes and PVCs
            registry: Adapter registry owned by the caller
            discovery: Discovery engine; one is built on ``client`` if omitted
            translator: Translation engine shared with the adapters
            state_machine: Transition validator
            retry: Retry manager wrapping every adapter call
            breakers: Per-backend circuit breakers
            config: Engine settings; None means defaults
        """
        self.client = client
        self.registry = registry
        self.config = config
        self.discovery = discovery or DiscoveryEngine(client, preference=self._settings().backend_preference)
        self.translator = translator or TranslationEngine()
        self.state_machine = state_machine or StateMachine()
        self.retry = retry or RetryManager()
        self.breakers = breakers or CircuitBreakerRegistry()
        self._lock = threading.Lock()
        self._operation_count = 0
        self._errors_by_reason: Counter = Counter()

    def _settings(self) -> EngineConfig:
        if self.config is None:
            self.config = EngineConfig()
        return self.config

    @property
    def capabilities(self) -> CapabilityRegistry:
        return self.discovery.capabilities

    @property
    def preference(self) -> List[BackendIdentity]:
        return [BackendIdentity.parse(b) for b in self._settings().backend_preference]

    def _count_operation(self):
        with self._lock:
            self._operation_count += 1

    def _count_error(self, error: BaseException):
        reason = reason_for(error)
        with self._lock:
            self._errors_by_reason[reason] += 1
        RECONCILE_ERRORS.labels(reason=reason).inc()

    # Resolution helpers

    async def resolve_class(self, name: Optional[str]) -> Optional[ReplicationClass]:
        """Fetch the named replication class.

        Raises:
            ConfigurationError: If the class does not exist or has no provisioner
        """
        if not name:
            return None
        obj = await self.client.get_replication_class(name)
        if obj is None:
            raise ConfigurationError(f"replication class {name} not found", reason="ClassNotFound")
        replication_class = ReplicationClass.from_object(obj)
        if not replication_class.provisioner:
            raise ConfigurationError(f"replication class {name} has no provisioner")
        return replication_class

    async def select_backend(self, target: Union[ReplicationIntent, ReplicationGroup],
                             replication_class: Optional[ReplicationClass] = None) -> BackendIdentity:
        discovery = await self.discovery.discover_backends()
        endpoints = [getattr(target, "source_endpoint", None), getattr(target, "destination_endpoint", None)]
        backend = select_backend(
            target.extensions,
            replication_class.provisioner if replication_class else None,
            endpoints,
            discovery,
            self.preference,
        )
        logger.info(f"Using backend {backend.value} ({backend.label}) for {target.key}")
        return backend

    def backend_parameters(self, replication_class: Optional[ReplicationClass],
                           extensions: Extensions, backend: BackendIdentity) -> Dict[str, str]:
        """Class parameters overlaid with the string values of the backend's extension block."""
        parameters = dict(replication_class.parameters) if replication_class else {}
        for key, value in extensions.for_backend(backend).items():
            if isinstance(value, str):
                parameters[key] = value
        return parameters

    def validate_configuration(self, backend: BackendIdentity, state: ReplicationState,
                               mode: ReplicationMode, parameters: Dict[str, str],
                               extensions: Extensions, group: bool = False):
        """Translate and validate a request before touching the backend.

        Raises:
            TranslationError: For untranslatable modes or malformed parameters
            UnsupportedCapabilityError: If the backend cannot satisfy the request
        """
        self.translator.to_backend(state, mode, backend)
        self.translator.validate_parameters(backend, parameters)
        if self._settings().validate_capabilities:
            self.capabilities.validate(backend, state, mode, extensions.for_backend(backend), group=group)

    def check_transition(self, target: Union[ReplicationIntent, ReplicationGroup]) -> TransitionVerdict:
        """Validate the move from the current state to the desired one.

        A desired state the backend already accepted is a no-op even when the
        observed state has moved on, so transitional requests such as promoting
        survive later passes. Otherwise the observed state is the starting
        point, falling back to the last accepted request while nothing has
        been observed.

        Raises:
            InvalidTransitionError: If the transition is illegal
        """
        status = target.status
        desired = target.replication_state
        if status.requested_state == desired:
            return self.state_machine.check(desired, desired)
        current = status.state if status.state is not None else status.requested_state
        return self.state_machine.validate(current, desired)

    async def _invoke(self, backend: BackendIdentity, name: str,
                      operation: Callable[[], Awaitable[Any]]) -> Any:
        """Run an adapter call under retry, each attempt through the backend's breaker."""
        breaker = self.breakers.get(backend.value)
        return await self.retry.execute(lambda: breaker.call(operation), name=f"{backend.value}.{name}")

    @track_operation("reconcile")
    async def _reconcile(self, backend, intent, parameters) -> ReconcileResult:
        adapter = self.registry.get_adapter(backend)
        return await self._invoke(backend, "reconcile", lambda: adapter.reconcile(intent, parameters))

    @track_operation("delete")
    async def _delete(self, backend, intent) -> None:
        adapter = self.registry.get_adapter(backend)
        await self._invoke(backend, "delete", lambda: adapter.delete(intent))

    @track_operation("status")
    async def _status(self, backend, intent) -> UnifiedStatus:
        adapter = self.registry.get_adapter(backend)
        return await self._invoke(backend, "status", lambda: adapter.get_status(intent))

    @track_operation("reconcile_group")
    async def _reconcile_group(self, backend, group, members, parameters) -> ReconcileResult:
        adapter = self.registry.get_group_adapter(backend)
        return await self._invoke(backend, "reconcile_group",
                                  lambda: adapter.reconcile_group(group, members, parameters))

    @track_operation("delete_group")
    async def _delete_group(self, backend, group, members) -> None:
        adapter = self.registry.get_group_adapter(backend)
        await self._invoke(backend, "delete_group", lambda: adapter.delete_group(group, members))

    @track_operation("group_status")
    async def _group_status(self, backend, group) -> UnifiedStatus:
        adapter = self.registry.get_group_adapter(backend)
        return await self._invoke(backend, "group_status", lambda: adapter.get_group_status(group))

    # Single volume

    async def process_replication(self, intent: ReplicationIntent,
                                  operation: Union[Operation, str]) -> None:
        """Reconcile one replication intent.

        The outcome is folded into ``intent.status``; the finalizer list is
        updated in place.

        Args:
            intent: The intent to reconcile
            operation: create, update or delete

        Raises:
            ReplicationError: Any failure, after it has been recorded in status
        """
        operation = Operation(operation)
        if intent.deletion_timestamp is not None:
            operation = Operation.DELETE
        self._count_operation()
        logger.info(f"Processing {operation.value} for {intent.key}")

        backend = intent.status.backend
        try:
            if operation == Operation.DELETE:
                await self._finalize(intent)
                return

            intent.validate()
            replication_class = await self.resolve_class(intent.replication_class)
            backend = await self.select_backend(intent, replication_class)
            parameters = self.backend_parameters(replication_class, intent.extensions, backend)
            self.validate_configuration(backend, intent.replication_state, intent.replication_mode,
                                        parameters, intent.extensions)
            verdict = self.check_transition(intent)

            if FINALIZER not in intent.finalizers:
                intent.finalizers.append(FINALIZER)

            result = await self._reconcile(backend, intent, parameters)
            unified = await self._status(backend, intent)
            self.state_machine.record(intent.key, verdict)
            self._fold_success(intent, backend, result, unified)
        except ReplicationError as e:
            self._fold_failure(intent, backend, e)
            raise

    async def _finalize(self, intent: ReplicationIntent):
        if FINALIZER not in intent.finalizers:
            logger.debug(f"{intent.key} has no finalizer, nothing to clean up")
            return

        backend = intent.status.backend
        if backend is None:
            try:
                replication_class = await self.resolve_class(intent.replication_class)
                backend = await self.select_backend(intent, replication_class)
            except BackendUnavailableError as e:
                if e.indeterminate:
                    # Backend objects may still exist; keep the finalizer until discovery settles.
                    logger.warning(f"Cannot resolve backend for {intent.key}, keeping finalizer: {e}")
                    raise
                logger.warning(f"No backend to clean up for {intent.key}: {e}")
                backend = None
            except ConfigurationError as e:
                logger.warning(f"No backend to clean up for {intent.key}: {e}")
                backend = None

        if backend is not None:
            await self._delete(backend, intent)
        intent.finalizers.remove(FINALIZER)
        self.state_machine.forget(intent.key)
        logger.info(f"Finalized {intent.key}")

    async def get_replication_status(self, intent: ReplicationIntent) -> UnifiedStatus:
        """Read the backend status of an intent in unified terms."""
        self._count_operation()
        replication_class = await self.resolve_class(intent.replication_class)
        backend = await self.select_backend(intent, replication_class)
        self.translator.to_backend(intent.replication_state, intent.replication_mode, backend)
        return await self._status(backend, intent)

    # Volume groups

    async def process_group_replication(self, group: ReplicationGroup,
                                        operation: Union[Operation, str]) -> None:
        """Reconcile a label-selected volume group.

        Membership is recomputed from the selector on every call.
        """
        operation = Operation(operation)
        if group.deletion_timestamp is not None:
            operation = Operation.DELETE
        self._count_operation()
        logger.info(f"Processing {operation.value} for group {group.key}")

        backend = group.status.backend
        try:
            if operation == Operation.DELETE:
                await self._finalize_group(group)
                return

            group.validate()
            members = await self.group_members(group)
            group.status.persistent_volume_claims_ref_list = members
            if not members:
                raise ConfigurationError(f"no PVCs match selector in namespace {group.namespace}",
                                         reason="NoMatchingVolumes")

            replication_class = await self.resolve_class(group.replication_class)
            backend = await self.select_backend(group, replication_class)
            parameters = self.backend_parameters(replication_class, group.extensions, backend)
            self.validate_configuration(backend, group.replication_state, group.replication_mode,
                                        parameters, group.extensions, group=True)
            verdict = self.check_transition(group)

            if FINALIZER not in group.finalizers:
                group.finalizers.append(FINALIZER)

            result = await self._reconcile_group(backend, group, members, parameters)
            unified = await self._group_status(backend, group)
            self.state_machine.record(group.key, verdict)
            self._fold_success(group, backend, result, unified)
        except ReplicationError as e:
            self._fold_failure(group, backend, e)
            raise

    async def group_members(self, group: ReplicationGroup) -> List[str]:
        pvcs = await self.client.list_pvcs(group.namespace, group.selector)
        return sorted(pvc["metadata"]["name"] for pvc in pvcs)

    async def _finalize_group(self, group: ReplicationGroup):
        if FINALIZER not in group.finalizers:
            return
        backend = group.status.backend
        if backend is None:
            try:
                replication_class = await self.resolve_class(group.replication_class)
                backend = await self.select_backend(group, replication_class)
            except BackendUnavailableError as e:
                if e.indeterminate:
                    logger.warning(f"Cannot resolve backend for group {group.key}, keeping finalizer: {e}")
                    raise
                logger.warning(f"No backend to clean up for group {group.key}: {e}")
                backend = None
            except ConfigurationError as e:
                logger.warning(f"No backend to clean up for group {group.key}: {e}")
                backend = None

        if backend is not None:
            members = list(group.status.persistent_volume_claims_ref_list)
            await self._delete_group(backend, group, members)
        group.finalizers.remove(FINALIZER)
        self.state_machine.forget(group.key)
        logger.info(f"Finalized group {group.key}")

    async def get_group_status(self, group: ReplicationGroup) -> UnifiedStatus:
        self._count_operation()
        replication_class = await self.resolve_class(group.replication_class)
        backend = await self.select_backend(group, replication_class)
        return await self._group_status(backend, group)

    # Status folding

    def _fold_success(self, target, backend: BackendIdentity, result: ReconcileResult,
                      unified: UnifiedStatus):
        status = target.status
        status.backend = backend
        status.requested_state = target.replication_state
        # None when the backend state is unreadable or group members disagree.
        status.state = unified.state if unified.exists else target.replication_state
        if hasattr(status, "mode"):
            status.mode = target.replication_mode
            status.last_sync_time = unified.last_sync_time
            status.last_sync_duration = unified.last_sync_duration
        status.message = unified.message or result.message
        status.observed_generation = target.generation
        status.set_condition(Condition(
            type=READY,
            status=True,
            reason=RECONCILE_COMPLETE,
            message=result.message,
            observed_generation=target.generation,
        ))
        logger.info(f"Reconciled {target.key} on {backend.value}: {result.message} "
                    f"({result.writes} writes)")

    def _fold_failure(self, target, backend: Optional[BackendIdentity], error: ReplicationError):
        self._count_error(error)
        status = target.status
        if backend is not None:
            status.backend = backend
        status.message = str(error)
        status.observed_generation = target.generation
        status.set_condition(Condition(
            type=READY,
            status=False,
            reason=reason_for(error),
            message=str(error),
            observed_generation=target.generation,
        ))
        logger.error(f"Reconcile of {target.key} failed ({reason_for(error)}): {error}")

    # Cache and metrics

    def invalidate_cache(self):
        self.discovery.invalidate_cache()

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            operation_count = self._operation_count
            errors = dict(self._errors_by_reason)
        last_discovery = self.discovery.last_discovery
        return {
            "operation_count": operation_count,
            "cache_hits": self.discovery.cache_hits,
            "cache_misses": self.discovery.cache_misses,
            "cache_entries": self.discovery.cache_entries(),
            "last_discovery": last_discovery.isoformat() if last_discovery else None,
            "errors_by_reason": errors,
            "circuit_states": self.breakers.states(),
        }
