#tests\test_best_effort.py

"""Test best-effort engine operations."""

import pytest
from docker.errors import APIError

from fake_docker import api_error, not_found
from workload_engine.engine.best_effort import best_effort, is_already_absent


def failing(error):
    def action(*args, **kwargs):
        raise error
    return action


class TestBestEffort:
    """Test which failures are swallowed."""

    @pytest.mark.parametrize("error", [
        not_found("No such container: bunker-app-x"),
        api_error(304, "container already stopped"),
        api_error(409, "removal of container bunker-app-x is already in progress"),
        api_error(500, "Error response from daemon: No such container: bunker-app-x"),
    ])
    def test_already_absent(self, error):
        assert is_already_absent(error)
        assert best_effort("remove", failing(error)) is False

    def test_success(self):
        calls = []

        assert best_effort("stop", lambda timeout: calls.append(timeout), timeout=5) is True
        assert calls == [5]

    def test_unrelated_failure_propagates(self):
        with pytest.raises(APIError):
            best_effort("remove", failing(api_error(500, "device or resource busy")))

    def test_swallow_all(self):
        assert best_effort("stop", failing(api_error(500, "cannot kill")), swallow_all=True) is False

    def test_non_engine_errors_always_propagate(self):
        with pytest.raises(KeyError):
            best_effort("stop", failing(KeyError("bug")), swallow_all=True)
