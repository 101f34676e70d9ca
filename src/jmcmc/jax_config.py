"""
JAX environment setup. Imported by ``jmcmc/__init__.py`` ahead of jax itself.

Environment variables read here:

- ``JMCMC_CACHE_DIR``: where compiled sampler kernels persist between
  sessions (default ``~/.cache/jax/jmcmc_cache``).
- ``JMCMC_DISABLE_CACHE``: set to ``1`` to skip the persistent cache,
  e.g. on read-only home directories.

Values already present for the JAX/XLA variables are left untouched.
"""
import os
from pathlib import Path

# Quiet the XLA C++ logger; sampler progress goes through `logging`
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

if os.environ.get("JMCMC_DISABLE_CACHE", "0") != "1":
    _cache_dir = Path(os.environ.get("JMCMC_CACHE_DIR",
                                     Path.home() / ".cache" / "jax" / "jmcmc_cache"))
    try:
        _cache_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        _cache_dir = None
    if _cache_dir is not None:
        os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_cache_dir))
        # Chunk kernels of small models compile in well under a second
        os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")
