"""
Pytest configuration for the PIPE simulator test suite.

    python -m pytest                      # everything
    python -m pytest -n auto              # parallel workers (pytest-xdist)
    python -m pytest -m "not crosscheck"  # skip pipeline-vs-ISA comparisons
    python -m pytest --random-programs 500
"""

import pytest

DEFAULT_RANDOM_PROGRAMS = 60


def pytest_addoption(parser):
    parser.addoption("--random-programs", type=int, default=DEFAULT_RANDOM_PROGRAMS,
                     help="Number of generated programs for the ISA cross-check "
                          f"(default {DEFAULT_RANDOM_PROGRAMS})")


def pytest_configure(config):
    config.addinivalue_line("markers",
        "crosscheck: pipeline results compared against the sequential ISA model")


@pytest.fixture(scope="class")
def random_programs(request):
    """Attach the configured program count to unittest-style test classes."""
    request.cls.random_programs = request.config.getoption("--random-programs")
