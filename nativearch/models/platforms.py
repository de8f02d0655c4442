"""Target platform models and the statically declared build matrix."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator

_SEPARATORS = ("/", "\\")


class UnknownPlatformError(RuntimeError):
    """Raised when a platform identifier is outside the declared matrix."""


def platform_label(identifier: str) -> str:
    """Derive a filesystem-safe label from a platform identifier.

    ``linux/amd64`` -> ``linux-amd64``; ``linux/arm/v7`` -> ``linux-arm-v7``.
    """
    label = identifier
    for sep in _SEPARATORS:
        label = label.replace(sep, "-")
    return label


class Platform(BaseModel):
    """One target OS/CPU pair and the host class that builds it natively."""

    model_config = ConfigDict(frozen=True)

    identifier: str  # "os/arch[/variant]"
    host_class: str

    @model_validator(mode="after")
    def _check_identifier(self) -> Platform:
        parts = self.identifier.split("/")
        if len(parts) not in (2, 3) or not all(parts):
            raise ValueError(
                f"Platform identifier must look like os/arch[/variant], got {self.identifier!r}"
            )
        return self

    @property
    def os(self) -> str:
        return self.identifier.split("/")[0]

    @property
    def architecture(self) -> str:
        return self.identifier.split("/")[1]

    @property
    def variant(self) -> str | None:
        parts = self.identifier.split("/")
        return parts[2] if len(parts) == 3 else None

    @property
    def label(self) -> str:
        return platform_label(self.identifier)


class PlatformMatrix(BaseModel):
    """Fixed set of platforms declared up front.

    There is no dynamic discovery: every lookup must hit a declared entry.
    ``fail_fast`` is off so that every platform attempts to build even when
    a sibling fails.
    """

    model_config = ConfigDict(frozen=True)

    platforms: tuple[Platform, ...]
    fail_fast: bool = False

    @model_validator(mode="after")
    def _check_unique(self) -> PlatformMatrix:
        if not self.platforms:
            raise ValueError("Platform matrix must declare at least one platform")
        identifiers = [p.identifier for p in self.platforms]
        if len(set(identifiers)) != len(identifiers):
            raise ValueError(f"Duplicate platform identifiers: {identifiers}")
        labels = [p.label for p in self.platforms]
        if len(set(labels)) != len(labels):
            raise ValueError(f"Platform labels collide: {labels}")
        return self

    @property
    def identifiers(self) -> list[str]:
        return [p.identifier for p in self.platforms]

    @property
    def labels(self) -> list[str]:
        return [p.label for p in self.platforms]

    def get(self, identifier: str) -> Platform:
        for platform in self.platforms:
            if platform.identifier == identifier:
                return platform
        raise UnknownPlatformError(
            f"Platform {identifier!r} is not declared. "
            f"Declared: {', '.join(self.identifiers)}"
        )

    def host_class_for(self, identifier: str) -> str:
        return self.get(identifier).host_class

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.identifiers

    def __len__(self) -> int:
        return len(self.platforms)


DEFAULT_MATRIX = PlatformMatrix(
    platforms=(
        Platform(identifier="linux/amd64", host_class="ubuntu-latest"),
        Platform(identifier="linux/arm64", host_class="ubuntu-24.04-arm"),
    ),
)
