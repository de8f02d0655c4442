"""nativearch: multi-architecture container images built on native runners.

Each platform in a fixed matrix is built on its own native builder and
pushed by digest; the digests travel as short-lived artifacts to a merge
stage that publishes one multi-platform manifest list.
"""

__version__ = "0.1.0"
__description__ = "Multi-architecture image builds on native runners"

from nativearch.core.orchestrator import Orchestrator
from nativearch.models.platforms import DEFAULT_MATRIX, Platform, PlatformMatrix

__all__ = ["Orchestrator", "Platform", "PlatformMatrix", "DEFAULT_MATRIX", "__version__"]
