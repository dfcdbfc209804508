"""Tests for the shared scan state."""

import threading

import pytest

from mediaindex.errors import DatabaseBusy
from mediaindex.scanner import ScanPhase, ScanState


class TestScanState:
    def test_second_activation_is_refused(self):
        state = ScanState()
        assert state.try_activate("/media", True)
        assert not state.try_activate("/media", True)
        assert state.snapshot().phase == ScanPhase.ENUMERATING

    def test_idle_write_refused_while_scanning(self):
        state = ScanState()
        state.try_activate("/media", True)
        with pytest.raises(DatabaseBusy):
            with state.idle_write("assign a tag"):
                pass

    def test_scan_waits_for_running_write(self):
        state = ScanState()
        activated = threading.Event()

        def start_scan():
            if state.try_activate("/media", True):
                activated.set()

        with state.idle_write("index a file"):
            worker = threading.Thread(target=start_scan)
            worker.start()
            assert not activated.wait(0.2)
            assert not state.active

        worker.join(5)
        assert activated.is_set()
        assert state.active
