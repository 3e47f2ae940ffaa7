"""Pytest plumbing for tests decorated with ``@requests_mock.Mocker()``.

The decorator appends the mocker as a positional argument, but pytest
follows ``__wrapped__`` and would otherwise look for a fixture named after
that parameter. Hiding ``__wrapped__`` lets the decorator supply it.
"""


def pytest_pycollect_makeitem(collector, name, obj):
    code = getattr(obj, "__code__", None)
    if (
        callable(obj)
        and hasattr(obj, "__wrapped__")
        and code is not None
        and "requests_mock" in code.co_filename
    ):
        del obj.__wrapped__
    return None
