"""Fixed-set parallel fan-out over the platform matrix, with a join.

One task per declared platform runs on a thread pool. ``run`` returns only
once every task is terminal, so callers get a barrier for free.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import wait as wait_futures

from nativearch.core.buildx import BuildxBuilder, ImageBuilder
from nativearch.core.concurrency import CancellationToken
from nativearch.models.platforms import Platform, PlatformMatrix
from nativearch.models.results import StepOutcome
from nativearch.models.runs import BuildInstanceResult

logger = logging.getLogger(__name__)

PlatformTask = Callable[[Platform, CancellationToken], BuildInstanceResult]


class BuilderRouter:
    """Static mapping from a platform's host class to the builder that serves it.

    Parameters
    ----------
    builders:
        host class -> ``ImageBuilder``.
    default:
        Used for host classes without an explicit entry.
    """

    def __init__(
        self,
        builders: Mapping[str, ImageBuilder] | None = None,
        default: ImageBuilder | None = None,
    ) -> None:
        self._builders = dict(builders or {})
        self._default = default

    @classmethod
    def from_builder_names(cls, names: Mapping[str, str]) -> BuilderRouter:
        """Build from host class -> buildx builder name (``Settings.runner_builders``)."""
        return cls(
            {host: BuildxBuilder(builder=name) for host, name in names.items()},
            default=BuildxBuilder(),
        )

    def for_platform(self, platform: Platform) -> ImageBuilder:
        builder = self._builders.get(platform.host_class, self._default)
        if builder is None:
            raise LookupError(f"No builder configured for host class {platform.host_class!r}")
        return builder


class PlatformFanout:
    """Run one task per platform concurrently and collect results by identifier."""

    def __init__(self, max_workers: int | None = None) -> None:
        self.max_workers = max_workers

    def run(
        self,
        matrix: PlatformMatrix,
        task: PlatformTask,
        cancel_token: CancellationToken,
    ) -> dict[str, BuildInstanceResult]:
        workers = self.max_workers or len(matrix)
        results: dict[str, BuildInstanceResult] = {}
        # fail-fast cancels siblings only, never the enclosing run
        instance_token = cancel_token.child()

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="nativearch") as pool:
            futures = {
                pool.submit(self._guarded, task, platform, instance_token, matrix.fail_fast): platform
                for platform in matrix.platforms
            }
            wait_futures(futures)
            for future, platform in futures.items():
                results[platform.identifier] = future.result()

        logger.info(
            "Fan-out joined: %s",
            ", ".join(f"{pid}={r.outcome.value}" for pid, r in results.items()),
        )
        # keep matrix declaration order
        return {pid: results[pid] for pid in matrix.identifiers}

    @staticmethod
    def _guarded(
        task: PlatformTask,
        platform: Platform,
        cancel_token: CancellationToken,
        fail_fast: bool,
    ) -> BuildInstanceResult:
        try:
            result = task(platform, cancel_token)
        except Exception as exc:
            logger.exception("Build task for %s raised", platform.identifier)
            result = BuildInstanceResult(
                platform=platform.identifier,
                host_class=platform.host_class,
                label=platform.label,
                outcome=StepOutcome.FAILURE,
                error=str(exc),
            )
        if fail_fast and result.outcome == StepOutcome.FAILURE:
            cancel_token.cancel(f"fail-fast: {platform.identifier} failed")
        return result
