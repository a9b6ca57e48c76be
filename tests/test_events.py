"""
Tests for nfd_reconcile.events
"""

import logging

import pytest

from nfd_reconcile.events import (
    OWNED_KINDS,
    should_reconcile,
    should_reconcile_update,
    validate_update_event,
)

OBJ = {"metadata": {"name": "nfd-worker"}}


class TestValidateUpdateEvent:
    """Tests for update event validation."""

    def test_both_sides(self):
        """Events with both states are valid."""
        assert validate_update_event(OBJ, OBJ)

    @pytest.mark.parametrize("old,new", [(None, OBJ), (OBJ, None), (None, None)])
    def test_missing_side(self, old, new, caplog):
        """A missing side is invalid and logged."""
        with caplog.at_level(logging.ERROR):
            assert not validate_update_event(old, new)
        assert "Update event has no" in caplog.text


class TestUpdatePredicate:
    """Tests for the owned-object update filter."""

    def test_well_formed_update_suppressed(self):
        """A complete update event does not trigger a pass."""
        assert should_reconcile_update(OBJ, OBJ) is False

    def test_malformed_update_triggers(self):
        """An update with a missing side triggers a pass."""
        assert should_reconcile_update(None, OBJ) is True

    @pytest.mark.parametrize("kind", OWNED_KINDS)
    def test_owned_kinds_filtered(self, kind):
        """Every owned kind goes through the filter."""
        assert should_reconcile(kind, OBJ, OBJ) is False

    @pytest.mark.parametrize("kind", ["SecurityContextConstraints", "NodeFeatureDiscovery"])
    def test_other_kinds_pass(self, kind):
        """Kinds outside the owned list always trigger."""
        assert should_reconcile(kind, OBJ, OBJ) is True
