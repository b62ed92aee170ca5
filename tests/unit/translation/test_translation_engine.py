"""Unit tests for state and mode translation."""
import unittest

from unified_replication.errors import TranslationError
from unified_replication.models import BackendIdentity, ReplicationMode, ReplicationState
from unified_replication.translation import TranslationEngine, TranslationValidator

B = BackendIdentity
S = ReplicationState


class TestStateTranslation(unittest.TestCase):
    """Test cases for bidirectional state mapping."""

    def setUp(self):
        self.engine = TranslationEngine()

    def test_round_trip_except_aliases(self):
        """FromBackend(ToBackend(s)) returns s for every non-alias state."""
        for backend in BackendIdentity:
            for state in ReplicationState:
                if self.engine.is_alias(backend, state):
                    continue
                value, _ = self.engine.to_backend(state, ReplicationMode.ASYNCHRONOUS, backend)
                self.assertEqual(self.engine.from_backend(value, backend), state,
                                 f"{backend.value}: {state.value} -> {value}")

    def test_every_state_maps_forward(self):
        for backend in BackendIdentity:
            for state in ReplicationState:
                value = self.engine.translate_state_to_backend(backend, state)
                self.assertIn(value, self.engine.supported_backend_states(backend))

    def test_ceph_is_passthrough_for_roles(self):
        self.assertEqual(self.engine.to_backend("primary", "asynchronous", B.CEPH), ("primary", "async"))
        self.assertEqual(self.engine.to_backend("secondary", "synchronous", B.CEPH), ("secondary", "sync"))
        self.assertEqual(self.engine.translate_state_to_backend(B.CEPH, S.SYNCING), "resync")

    def test_trident_uses_state_nouns(self):
        self.assertEqual(self.engine.translate_state_to_backend(B.TRIDENT, "primary"), "established")
        # The API rejects "reestablishing"; the accepted value is "reestablished".
        self.assertEqual(self.engine.translate_state_to_backend(B.TRIDENT, "secondary"), "reestablished")
        self.assertEqual(self.engine.translate_state_to_backend(B.TRIDENT, S.PROMOTING), "promoted")

    def test_powerstore_uses_action_verbs(self):
        self.assertEqual(self.engine.translate_state_to_backend(B.POWERSTORE, S.SOURCE), "Failover")
        self.assertEqual(self.engine.translate_state_to_backend(B.POWERSTORE, S.REPLICA), "Sync")
        self.assertEqual(self.engine.translate_state_to_backend(B.POWERSTORE, S.SYNCING), "Reprotect")

    def test_backend_only_values_map_to_nearest_state(self):
        self.assertEqual(self.engine.from_backend("promoted", B.TRIDENT), S.SOURCE)
        self.assertEqual(self.engine.from_backend("resync-promote", B.CEPH), S.PROMOTING)
        self.assertEqual(self.engine.from_backend("error", B.CEPH), S.FAILED)
        self.assertEqual(self.engine.from_backend("FailedOver", B.POWERSTORE), S.SOURCE)
        self.assertEqual(self.engine.from_backend("Syncing", B.POWERSTORE), S.SYNCING)

    def test_unknown_forward_state_uses_safe_default(self):
        self.assertEqual(self.engine.translate_state_to_backend(B.CEPH, "bogus"), "secondary")
        self.assertEqual(self.engine.translate_state_to_backend(B.TRIDENT, "bogus"), "reestablished")
        self.assertEqual(self.engine.translate_state_to_backend(B.POWERSTORE, "bogus"), "Sync")

    def test_unknown_reverse_state_raises(self):
        with self.assertRaises(TranslationError) as ctx:
            self.engine.from_backend("reestablishing", B.TRIDENT)
        error = ctx.exception
        self.assertEqual(error.error_type, TranslationError.UNSUPPORTED_MAPPING)
        self.assertEqual(
            str(error),
            "translation error (unsupported_mapping) for backend trident field state='reestablishing': "
            "backend state has no unified equivalent",
        )

    def test_reverse_lookup_is_case_sensitive(self):
        with self.assertRaises(TranslationError):
            self.engine.from_backend("Primary", B.CEPH)


class TestModeTranslation(unittest.TestCase):
    """Test cases for replication mode mapping."""

    def setUp(self):
        self.engine = TranslationEngine()

    def test_mode_flavours(self):
        self.assertEqual(self.engine.translate_mode_to_backend(B.TRIDENT, "synchronous"), "Sync")
        self.assertEqual(self.engine.translate_mode_to_backend(B.POWERSTORE, "asynchronous"), "ASYNC")
        for mode in ("continuous", "interval", "eventual"):
            self.assertEqual(self.engine.translate_mode_to_backend(B.CEPH, mode), "async")

    def test_mode_from_backend(self):
        self.assertEqual(self.engine.translate_mode_from_backend(B.POWERSTORE, "SYNC"),
                         ReplicationMode.SYNCHRONOUS)
        self.assertEqual(self.engine.supported_backend_modes(B.TRIDENT), ["Async", "Sync"])

    def test_unknown_mode_is_invalid_value(self):
        with self.assertRaises(TranslationError) as ctx:
            self.engine.translate_mode_to_backend(B.CEPH, "metro")
        self.assertEqual(ctx.exception.error_type, TranslationError.INVALID_VALUE)
        self.assertEqual(ctx.exception.field, "mode")


class TestParameterValidation(unittest.TestCase):
    """Test cases for free-form parameter maps."""

    def setUp(self):
        self.engine = TranslationEngine()

    def test_valid_parameters_pass(self):
        self.engine.validate_parameters(B.CEPH, {"mirroringMode": "snapshot", "schedulingInterval": "5m",
                                                 "pool": "replicapool"})
        self.engine.validate_parameters(B.TRIDENT, {"replicationPolicy": "MirrorAllSnapshots",
                                                    "replicationSchedule": "15m",
                                                    "remoteVolume-data": "svm1:vol_data"})
        self.engine.validate_parameters(B.POWERSTORE, {"protectionPolicy": "gold", "remoteSystem": "PS2",
                                                       "rpo": "5m"})
        self.engine.validate_parameters(B.CEPH, None)

    def test_unknown_mirroring_mode_names_key_and_value(self):
        with self.assertRaises(TranslationError) as ctx:
            self.engine.validate_parameters(B.CEPH, {"mirroringMode": "continuous"})
        self.assertEqual(ctx.exception.field, "mirroringMode")
        self.assertEqual(ctx.exception.value, "continuous")
        self.assertIn("must be one of: journal, snapshot", str(ctx.exception))

    def test_malformed_duration(self):
        with self.assertRaises(TranslationError) as ctx:
            self.engine.validate_parameters(B.TRIDENT, {"replicationSchedule": "every hour"})
        self.assertEqual(ctx.exception.field, "replicationSchedule")

    def test_blank_identifier(self):
        with self.assertRaises(TranslationError) as ctx:
            self.engine.validate_parameters(B.POWERSTORE, {"remoteSystem": "  "})
        self.assertEqual(ctx.exception.field, "remoteSystem")

    def test_mode_parameter_checked(self):
        with self.assertRaises(TranslationError):
            self.engine.validate_parameters(B.TRIDENT, {"replicationMode": "sometimes"})

    def test_extensions_ignore_non_string_values(self):
        self.engine.validate_extensions(B.CEPH, {"mirroringMode": "journal", "retries": 3})


class TestTranslationValidator(unittest.TestCase):
    """Test cases for table consistency checks."""

    def test_tables_are_consistent(self):
        validator = TranslationValidator()
        for backend, errors in validator.validate_all().items():
            self.assertEqual(errors, [], backend.value)

    def test_statistics(self):
        stats = TranslationValidator().statistics(B.TRIDENT)
        self.assertEqual(stats.forward_states, 6)
        self.assertEqual(stats.reverse_states, 6)
        self.assertIn("established-failed", stats.backend_only_values)
        self.assertIn("promoting", stats.aliases)

    def test_broken_table_is_reported(self):
        engine = TranslationEngine()
        engine.state_from_backend = {b: dict(v) for b, v in engine.state_from_backend.items()}
        del engine.state_from_backend[B.CEPH]["resync"]
        errors = TranslationValidator(engine).validate_backend(B.CEPH)
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].error_type, TranslationError.MISSING_MAPPING)
        self.assertEqual(errors[0].value, "resync")
