"""Tests for package structure and importability."""

from __future__ import annotations


def test_package_imports() -> None:
    """Verify the lighthouse_pulse package can be imported."""
    import lighthouse_pulse

    assert lighthouse_pulse.__version__ == "0.1.0"


def test_submodule_imports() -> None:
    """Verify all submodules can be imported without error."""
    import lighthouse_pulse.config
    import lighthouse_pulse.models
    import lighthouse_pulse.pagespeed
    import lighthouse_pulse.runner
    import lighthouse_pulse.server
    import lighthouse_pulse.storage

    assert lighthouse_pulse.config is not None
    assert lighthouse_pulse.models is not None
    assert lighthouse_pulse.pagespeed is not None
    assert lighthouse_pulse.runner is not None
    assert lighthouse_pulse.server is not None
    assert lighthouse_pulse.storage is not None


def test_version_format() -> None:
    """Verify the version string follows semantic versioning."""
    from lighthouse_pulse import __version__

    parts = __version__.split(".")
    assert len(parts) == 3, f"Version {__version__} does not follow semver (expected X.Y.Z)"
    for part in parts:
        assert part.isdigit(), f"Version component '{part}' is not numeric"
