"""Runtime configuration for parglm.

Controls the default block size, worker-thread count and numeric backend
used when a fit does not pass them explicitly.

Resolution order (first match wins):
    1. Programmatic override via :func:`set_block_size`,
       :func:`set_max_threads` or :func:`set_backend`.
    2. The ``PARGLM_BLOCK_SIZE``, ``PARGLM_MAX_THREADS`` and
       ``PARGLM_BACKEND`` environment variables.
    3. Built-in defaults: 10000 rows per block, ``os.cpu_count()``
       threads, ``"auto"`` backend.

Examples:
    Use smaller blocks from the shell::

        export PARGLM_BLOCK_SIZE=2000

    Force the CPU backend programmatically::

        import parglm
        parglm.set_backend("cpu")

    Clear the override again::

        parglm.set_backend("auto")
"""

from __future__ import annotations

import os

DEFAULT_BLOCK_SIZE = 10000

_VALID_BACKENDS = {"auto", "cpu", "pytorch"}

# Sentinels: None means "no programmatic override has been set".
_block_size_override: int | None = None
_max_threads_override: int | None = None
_backend_override: str | None = None


def _positive_int(value, name: str) -> int:
    try:
        out = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    if out < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return out


def get_block_size() -> int:
    """Return the default number of observations per block."""
    if _block_size_override is not None:
        return _block_size_override

    env = os.environ.get("PARGLM_BLOCK_SIZE", "").strip()
    if env:
        return _positive_int(env, "PARGLM_BLOCK_SIZE")

    return DEFAULT_BLOCK_SIZE


def set_block_size(block_size: int | None) -> None:
    """Set the default block size. ``None`` clears the override."""
    global _block_size_override
    if block_size is None:
        _block_size_override = None
        return
    _block_size_override = _positive_int(block_size, "block_size")


def get_max_threads() -> int:
    """Return the default worker-thread count."""
    if _max_threads_override is not None:
        return _max_threads_override

    env = os.environ.get("PARGLM_MAX_THREADS", "").strip()
    if env:
        return _positive_int(env, "PARGLM_MAX_THREADS")

    return os.cpu_count() or 1


def set_max_threads(max_threads: int | None) -> None:
    """Set the default worker-thread count. ``None`` clears the override."""
    global _max_threads_override
    if max_threads is None:
        _max_threads_override = None
        return
    _max_threads_override = _positive_int(max_threads, "max_threads")


def get_backend_name() -> str:
    """Return the configured backend name (``"auto"``, ``"cpu"`` or ``"pytorch"``).

    Returns:
        The lower-cased backend name; resolving ``"auto"`` to hardware is
        left to :func:`parglm._backends.get_backend`.
    """
    if _backend_override is not None:
        return _backend_override

    env = os.environ.get("PARGLM_BACKEND", "").strip().lower()
    if env:
        if env not in _VALID_BACKENDS:
            raise ValueError(
                f"PARGLM_BACKEND={env!r} is not valid. "
                f"Choose from {sorted(_VALID_BACKENDS)}."
            )
        return env

    return "auto"


def set_backend(name: str) -> None:
    """Set the default numeric backend.

    Args:
        name: ``"cpu"``, ``"pytorch"``, or ``"auto"`` (case-insensitive).
            ``"auto"`` clears the override so that the environment
            variable or hardware detection decides.

    Raises:
        ValueError: If *name* is not a recognised backend.
    """
    global _backend_override
    key = name.strip().lower()
    if key not in _VALID_BACKENDS:
        raise ValueError(
            f"Unknown backend {name!r}. Choose from {sorted(_VALID_BACKENDS)}."
        )
    _backend_override = None if key == "auto" else key
