import threading

import pytest

from ovirtagent.core.exceptions import HypervisorUnavailableError
from ovirtagent.internal.once import OnceCell
from ovirtagent.internal.rethrow import rethrow


class TestOnceCell:
    def test_factory_runs_once_across_threads(self):
        calls = []
        cell = OnceCell(lambda: calls.append(1) or "conn")
        threads = [threading.Thread(target=cell.get) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert cell.get() == "conn"
        assert calls == [1]

    def test_failed_factory_leaves_cell_empty(self):
        attempts = iter([RuntimeError("engine down"), "conn"])

        def factory():
            value = next(attempts)
            if isinstance(value, Exception):
                raise value
            return value

        cell = OnceCell(factory)
        with pytest.raises(RuntimeError):
            cell.get()
        assert not cell.initialized
        assert cell.get() == "conn"

    def test_reset_returns_previous_value(self):
        cell = OnceCell(lambda: "conn")
        assert cell.peek() is None
        cell.get()
        assert cell.reset() == "conn"
        assert not cell.initialized


class TestRethrow:
    def test_translates_and_chains(self):
        @rethrow(OSError, HypervisorUnavailableError, "list vms")
        def fail():
            raise ConnectionResetError("reset by peer")

        with pytest.raises(HypervisorUnavailableError, match="list vms failed: reset by peer") as exc_info:
            fail()
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)

    def test_other_errors_pass_through(self):
        @rethrow(OSError, HypervisorUnavailableError)
        def fail():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            fail()
