"""Checks on how the test suite itself is collected."""


def test_build_package_tests_are_not_skipped(request):
    """tests/unit/build shares its name with pytest's default ignored directories."""
    assert "build" not in request.config.getini("norecursedirs")
