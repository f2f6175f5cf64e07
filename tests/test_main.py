"""Tests for the status written back to SearchCluster objects."""

from unittest.mock import MagicMock, patch as mock_patch

import kopf
import pytest

import main


class FakePatch:
    def __init__(self):
        self.status = {}


@pytest.fixture
def logger():
    return MagicMock()


def test_apply_status_writes_changed_fields_only():
    patch = FakePatch()

    changed = main.apply_status(patch, {"phase": "Ready", "url": "a"}, {"phase": "Ready", "url": "b"})

    assert changed is True
    assert patch.status["url"] == "b"
    assert "phase" not in patch.status
    assert "lastUpdated" in patch.status


def test_apply_status_unchanged():
    patch = FakePatch()

    assert main.apply_status(patch, {"phase": "Ready"}, {"phase": "Ready"}) is False
    assert patch.status == {}


def test_reconcile_records_status(cluster, logger):
    patch = FakePatch()
    observed = {"phase": "Ready", "url": "https://logs-http.ns.svc:9200"}

    with mock_patch.object(main, "KubeClient"), \
            mock_patch.object(main, "reconcile_cluster", return_value=observed):
        main.reconcile(cluster, "logs", "ns", logger, patch, {})

    assert patch.status["phase"] == "Ready"
    assert patch.status["message"] == "Cluster ready"


def test_reconcile_permanent_error_sets_error_phase(cluster, logger):
    patch = FakePatch()

    with mock_patch.object(main, "KubeClient"), \
            mock_patch.object(main, "reconcile_cluster", side_effect=kopf.PermanentError("bad spec")):
        with pytest.raises(kopf.PermanentError):
            main.reconcile(cluster, "logs", "ns", logger, patch, {})

    assert patch.status["phase"] == "Error"
    assert patch.status["message"] == "bad spec"
