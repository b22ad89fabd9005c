"""Tests for the threshold registry."""

import pytest

from errors import InvalidThresholdUpdate, PermissionDenied
from thresholds import ThresholdRegistry, Thresholds


class TestThresholdRegistry:

    def test_initialize(self, registry):
        assert registry.owner == "admin"
        assert registry.current() == Thresholds(800, 5, 21, version=1)

    def test_zero_is_a_literal_threshold(self):
        registry = ThresholdRegistry.initialize("admin", 0, 0, 0)
        assert registry.current().max_transport_temp_c == 0

    def test_initialize_rejects_non_integers(self):
        with pytest.raises(InvalidThresholdUpdate):
            ThresholdRegistry.initialize("admin", 8.5, 5, 21)

    def test_owner_update_replaces_all_values(self, registry):
        event = registry.update(700, 3, 23, actor="admin")
        assert registry.current() == Thresholds(700, 3, 23, version=2)
        assert event.actor == "admin"
        assert event.thresholds.version == 2
        assert event.as_payload()["new_values"]["min_dry_matter_pct"] == 23

    def test_non_owner_update_is_denied(self, registry):
        before = registry.current()
        with pytest.raises(PermissionDenied):
            registry.update(900, 10, 10, actor="productor1")
        assert registry.current() is before

    def test_invalid_values_leave_snapshot_untouched(self, registry):
        before = registry.current()
        with pytest.raises(InvalidThresholdUpdate):
            registry.update(800, "5", 21, actor="admin")
        with pytest.raises(InvalidThresholdUpdate):
            registry.update(800, 5, True, actor="admin")
        assert registry.current() is before

    def test_failed_persist_keeps_old_values(self, registry):
        def persist(event):
            raise RuntimeError("disk full")

        with pytest.raises(RuntimeError):
            registry.update(600, 2, 25, actor="admin", persist=persist)
        assert registry.current() == Thresholds(800, 5, 21, version=1)

    def test_persist_sees_new_values_before_swap(self, registry):
        seen = []

        def persist(event):
            seen.append((event.thresholds.version, registry.current().version))

        registry.update(600, 2, 25, actor="admin", persist=persist)
        assert seen == [(2, 1)]
