from __future__ import annotations

import os

# The relationship-matrix code runs on JAX; keep tests on the CPU backend.
os.environ.setdefault("JAX_PLATFORM_NAME", "cpu")
os.environ.setdefault("JAX_PLATFORMS", "cpu")
