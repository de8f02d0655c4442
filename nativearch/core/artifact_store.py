"""Short-retention digest artifact exchange between the two stages.

Storage layout::

    {base_path}/{artifact_name}/{digest_hex}     empty file; the name is the payload
    {base_path}/{artifact_name}.json             platform, created_at, retention

One artifact per platform, one digest file per artifact. Uploading a name
twice is a conflict: each build instance writes to its own slot.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from nativearch.models.artifacts import (
    ARTIFACT_PREFIX,
    DEFAULT_RETENTION_DAYS,
    BuildDigest,
    DigestArtifact,
    InvalidDigestError,
    artifact_name_for,
)

logger = logging.getLogger(__name__)


class ArtifactConflictError(RuntimeError):
    """Raised when an artifact with the same name was already uploaded."""


class MissingArtifactError(RuntimeError):
    """Raised when an expected artifact is absent or expired."""


class ArtifactIntegrityError(RuntimeError):
    """Raised when an artifact directory does not hold exactly one digest."""


class DigestArtifactStore:
    """Filesystem-backed artifact exchange keyed by artifact name.

    Parameters
    ----------
    base_path:
        Root directory for artifact storage.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    def _dir(self, name: str) -> Path:
        return self._base / name

    def _meta(self, name: str) -> Path:
        return self._base / f"{name}.json"

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload(
        self,
        platform: str,
        digest: BuildDigest,
        *,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> DigestArtifact:
        """Persist one digest as the artifact for *platform*."""
        artifact = DigestArtifact(
            name=artifact_name_for(platform),
            platform=platform,
            digest=digest,
            retention_days=retention_days,
        )
        directory = self._dir(artifact.name)
        self._base.mkdir(parents=True, exist_ok=True)
        try:
            directory.mkdir(parents=False, exist_ok=False)
        except FileExistsError as exc:
            raise ArtifactConflictError(
                f"Artifact {artifact.name} already exists; artifact names must be unique per run"
            ) from exc

        (directory / digest.hex).touch()
        self._meta(artifact.name).write_text(
            json.dumps(
                {
                    "platform": artifact.platform,
                    "created_at": artifact.created_at.isoformat(),
                    "retention_days": artifact.retention_days,
                },
                indent=2,
                sort_keys=True,
            )
            + "\n",
            encoding="utf-8",
        )
        logger.info(
            "Uploaded artifact %s (%s, retention %dd)",
            artifact.name,
            digest.value[:19],
            retention_days,
        )
        return artifact

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def _load(self, name: str) -> DigestArtifact:
        directory = self._dir(name)
        meta_path = self._meta(name)
        if not directory.is_dir() or not meta_path.exists():
            raise MissingArtifactError(f"Artifact not found: {name}")

        files = [p for p in directory.iterdir() if p.is_file()]
        if len(files) != 1:
            raise ArtifactIntegrityError(
                f"Artifact {name} must hold exactly one digest file, found {len(files)}"
            )
        try:
            digest = BuildDigest.parse(files[0].name)
        except InvalidDigestError as exc:
            raise ArtifactIntegrityError(f"Artifact {name}: {exc}") from exc

        meta = json.loads(meta_path.read_text(encoding="utf-8"))
        return DigestArtifact(
            name=name,
            platform=meta["platform"],
            digest=digest,
            retention_days=meta["retention_days"],
            created_at=datetime.fromisoformat(meta["created_at"]),
        )

    def download(
        self, names: list[str], *, now: datetime | None = None
    ) -> dict[str, DigestArtifact]:
        """Fetch exactly the named artifacts, or fail.

        There is no partial result: one missing or expired artifact raises
        ``MissingArtifactError`` for the whole call.
        """
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate artifact names requested: {names}")
        now = now or datetime.now(timezone.utc)
        found: dict[str, DigestArtifact] = {}
        missing: list[str] = []
        for name in names:
            try:
                artifact = self._load(name)
            except MissingArtifactError:
                missing.append(name)
                continue
            if artifact.is_expired(now):
                missing.append(name)
                continue
            found[name] = artifact
        if missing:
            raise MissingArtifactError(
                f"Missing artifacts: {', '.join(sorted(missing))}"
            )
        return found

    def download_matching(
        self, pattern: str = f"{ARTIFACT_PREFIX}*", *, now: datetime | None = None
    ) -> dict[str, DigestArtifact]:
        """Fetch every live artifact whose name matches *pattern*."""
        names = [n for n in self.list_names() if fnmatch.fnmatchcase(n, pattern)]
        now = now or datetime.now(timezone.utc)
        live = {}
        for name in names:
            artifact = self._load(name)
            if not artifact.is_expired(now):
                live[name] = artifact
        return live

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def list_names(self) -> list[str]:
        if not self._base.is_dir():
            return []
        return sorted(p.name for p in self._base.iterdir() if p.is_dir())

    def exists(self, name: str) -> bool:
        return self._dir(name).is_dir()

    def purge_expired(self, now: datetime | None = None) -> list[str]:
        """Delete every artifact past its retention window."""
        now = now or datetime.now(timezone.utc)
        purged: list[str] = []
        for name in self.list_names():
            try:
                artifact = self._load(name)
            except (MissingArtifactError, ArtifactIntegrityError):
                logger.warning("Skipping unreadable artifact %s during purge", name)
                continue
            if artifact.is_expired(now):
                shutil.rmtree(self._dir(name))
                self._meta(name).unlink(missing_ok=True)
                purged.append(name)
        if purged:
            logger.info("Purged %d expired artifact(s): %s", len(purged), ", ".join(purged))
        return purged


def purge_workspace(base_path: Path, now: datetime | None = None) -> list[str]:
    """Purge expired artifacts from every per-run store under *base_path*.

    Run directories left empty are removed. Returns
    ``<run_id>/<artifact_name>`` for each purged artifact.
    """
    base = Path(base_path)
    if not base.is_dir():
        return []
    purged: list[str] = []
    for run_dir in sorted(p for p in base.iterdir() if p.is_dir()):
        store = DigestArtifactStore(run_dir)
        purged.extend(f"{run_dir.name}/{name}" for name in store.purge_expired(now))
        if not any(run_dir.iterdir()):
            try:
                run_dir.rmdir()
            except OSError:
                # repopulated since the check
                continue
            logger.debug("Removed empty run directory %s", run_dir)
    return purged
