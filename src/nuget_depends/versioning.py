"""NuGet version parsing and version range matching.

NuGet versions are SemVer 2.0 versions that may carry a fourth numeric
"revision" part (``1.2.3.4``). They are parsed onto
:class:`semantic_version.Version`; a non-zero revision is kept in the build
metadata as the identifiers ``("r", "<revision>")`` so that it survives
formatting and takes part in ordering through :func:`version_key`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from semantic_version import Version

if TYPE_CHECKING:
    from collections.abc import Iterable

_VERSION_RE = re.compile(
    r"""^\s*
    (?P<major>\d+)
    (?:\.(?P<minor>\d+))?
    (?:\.(?P<patch>\d+))?
    (?:\.(?P<revision>\d+))?
    (?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    (?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    \s*$""",
    re.VERBOSE,
)

_REVISION_TAG = "r"


def parse_version(text: str) -> Version:
    """Parse a NuGet version string.

    Missing minor and patch parts default to zero, and leading zeros are
    dropped, the same way NuGet normalizes ``1.01`` to ``1.1.0``.

    Args:
        text: Version string such as ``13.0.1``, ``1.0``, ``4.3.0.1`` or ``2.0.0-beta.1``

    Returns:
        The parsed version

    Raises:
        ValueError: If ``text`` is not a valid NuGet version

    """
    match = _VERSION_RE.match(text) if isinstance(text, str) else None
    if match is None:
        msg = f"Invalid NuGet version: {text!r}"
        raise ValueError(msg)
    revision = int(match.group("revision") or 0)
    build: tuple[str, ...] = ()
    if revision:
        build = (_REVISION_TAG, str(revision))
    if match.group("build"):
        build += tuple(match.group("build").split("."))
    prerelease = tuple(match.group("prerelease").split(".")) if match.group("prerelease") else ()
    return Version(
        major=int(match.group("major")),
        minor=int(match.group("minor") or 0),
        patch=int(match.group("patch") or 0),
        prerelease=prerelease,
        build=build,
    )


def revision(version: Version) -> int:
    """Return the fourth numeric part of a NuGet version (zero for three-part versions)."""
    build = version.build or ()
    if len(build) >= 2 and build[0] == _REVISION_TAG and build[1].isdigit():  # noqa: PLR2004
        return int(build[1])
    return 0


def _metadata(version: Version) -> tuple[str, ...]:
    build = tuple(version.build or ())
    if revision(version):
        return build[2:]
    return build


def version_key(version: Version) -> tuple:
    """Sort key implementing NuGet precedence: major, minor, patch, revision, then release label.

    Release labels compare case-insensitively and a release sorts after all of
    its prereleases. Build metadata never affects precedence.
    """
    if version.prerelease:
        label = (0, tuple((0, int(p), "") if p.isdigit() else (1, 0, p.lower()) for p in version.prerelease))
    else:
        label = (1, ())
    return (version.major, version.minor, version.patch, revision(version), label)


def format_version(version: Version, *, metadata: bool = True) -> str:
    """Render a version the way NuGet prints normalized versions.

    Args:
        version: Version to render
        metadata: Whether to include ``+metadata``; the registry's flat
            container addresses packages without it

    Returns:
        The normalized version string, e.g. ``1.0.0``, ``4.3.0.1`` or ``2.0.0-beta.1``

    """
    text = f"{version.major}.{version.minor}.{version.patch}"
    rev = revision(version)
    if rev:
        text += f".{rev}"
    if version.prerelease:
        text += "-" + ".".join(version.prerelease)
    extra = _metadata(version)
    if metadata and extra:
        text += "+" + ".".join(extra)
    return text


@dataclass(frozen=True)
class VersionRange:
    """A NuGet version range in interval notation.

    A missing bound means the range is open on that side.
    """

    min_version: Version | None = None
    max_version: Version | None = None
    include_min: bool = True
    include_max: bool = False

    @classmethod
    def all(cls) -> VersionRange:
        """Return the range that every version satisfies."""
        return cls(include_min=False)

    @classmethod
    def exact(cls, version: Version) -> VersionRange:
        """Return the range that only ``version`` satisfies."""
        return cls(min_version=version, max_version=version, include_min=True, include_max=True)

    @classmethod
    def parse(cls, text: str) -> VersionRange:  # noqa: C901
        """Parse NuGet range notation.

        Supported forms::

            1.0            version >= 1.0 (a bare version is a minimum)
            [1.0]          exactly 1.0
            [1.0,2.0)      1.0 <= version < 2.0
            (1.0,)         version > 1.0
            (,2.0]         version <= 2.0
            (, ) or *      any version

        Raises:
            ValueError: If ``text`` is not valid range notation

        """
        if not isinstance(text, str):
            msg = f"Invalid version range: {text!r}"
            raise ValueError(msg)  # noqa: TRY004
        s = text.strip()
        if s == "*":
            return cls.all()
        if not s:
            msg = "Invalid version range: empty string"
            raise ValueError(msg)
        if s[0] not in "[(":
            return cls(min_version=parse_version(s), include_min=True)

        if len(s) < 3 or s[-1] not in "])":  # noqa: PLR2004
            msg = f"Invalid version range: {text!r}"
            raise ValueError(msg)
        include_min = s[0] == "["
        include_max = s[-1] == "]"
        inner = s[1:-1]

        if "," not in inner:
            if not (include_min and include_max):
                msg = f"Invalid version range: {text!r} (an exact version needs square brackets)"
                raise ValueError(msg)
            return cls.exact(parse_version(inner))

        low, _, high = inner.partition(",")
        if "," in high:
            msg = f"Invalid version range: {text!r} (too many bounds)"
            raise ValueError(msg)
        min_version = parse_version(low) if low.strip() else None
        max_version = parse_version(high) if high.strip() else None

        if min_version is not None and max_version is not None:
            low_key, high_key = version_key(min_version), version_key(max_version)
            if low_key > high_key or (low_key == high_key and not (include_min and include_max)):
                msg = f"Invalid version range: {text!r} (empty interval)"
                raise ValueError(msg)

        return cls(
            min_version=min_version,
            max_version=max_version,
            include_min=include_min and min_version is not None,
            include_max=include_max and max_version is not None,
        )

    @property
    def is_exact(self) -> bool:
        """Check whether the range pins a single version."""
        return (
            self.min_version is not None
            and self.max_version is not None
            and self.include_min
            and self.include_max
            and version_key(self.min_version) == version_key(self.max_version)
        )

    @property
    def allows_prerelease(self) -> bool:
        """Prerelease versions are only candidates when a bound is itself a prerelease."""
        return any(bound is not None and bound.prerelease for bound in (self.min_version, self.max_version))

    def satisfies(self, version: Version) -> bool:
        """Check whether ``version`` lies within the bounds of this range."""
        key = version_key(version)
        if self.min_version is not None:
            low = version_key(self.min_version)
            if key < low or (key == low and not self.include_min):
                return False
        if self.max_version is not None:
            high = version_key(self.max_version)
            if key > high or (key == high and not self.include_max):
                return False
        return True

    def find_best_match(self, versions: Iterable[Version]) -> Version | None:
        """Return the highest version in ``versions`` that satisfies this range, or None."""
        best: Version | None = None
        for version in versions:
            if version.prerelease and not self.allows_prerelease:
                continue
            if not self.satisfies(version):
                continue
            if best is None or version_key(version) > version_key(best):
                best = version
        return best

    def to_normalized_string(self) -> str:
        """Render the range in NuGet's normalized notation, e.g. ``[1.0.0, 2.0.0)``."""
        if self.is_exact:
            return f"[{format_version(self.min_version)}]"  # type: ignore[arg-type]
        low = format_version(self.min_version) if self.min_version is not None else ""
        high = format_version(self.max_version) if self.max_version is not None else ""
        opening = "[" if self.include_min and self.min_version is not None else "("
        closing = "]" if self.include_max and self.max_version is not None else ")"
        return f"{opening}{low}, {high}{closing}"

    def __str__(self) -> str:
        """Return the normalized range notation."""
        return self.to_normalized_string()
