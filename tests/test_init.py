"""Smoke tests for package layout."""

import importlib


def test_version_importable() -> None:
    """from blob_mirror import __version__ works."""
    from blob_mirror import __version__

    assert isinstance(__version__, str)
    assert __version__ == "0.1.0"


def test_subpackages_importable() -> None:
    """All subpackages are importable."""
    subpackages = [
        "blob_mirror.entities",
        "blob_mirror.gateway",
        "blob_mirror.memory",
        "blob_mirror.mcp",
        "blob_mirror.sync",
    ]
    for pkg in subpackages:
        mod = importlib.import_module(pkg)
        assert mod is not None


def test_error_hierarchy() -> None:
    """Gateway and lookup errors share the MirrorError base."""
    from blob_mirror.errors import (
        GatewayError,
        LockUnavailableError,
        MessageNotFoundError,
        MirrorError,
        NotFoundError,
        PartialFailureError,
        PreconditionFailedError,
        RegistrationIncompleteError,
        TransientGatewayError,
    )

    assert issubclass(TransientGatewayError, GatewayError)
    assert issubclass(MessageNotFoundError, NotFoundError)
    for exc in (
        GatewayError,
        LockUnavailableError,
        NotFoundError,
        PartialFailureError,
        PreconditionFailedError,
        RegistrationIncompleteError,
    ):
        assert issubclass(exc, MirrorError)
