"""Target framework monikers.

A :class:`FrameworkTag` is parsed from either a folder moniker
(``net8.0``, ``net472``, ``netstandard2.0``) or the long form found in
nuspec files (``.NETStandard2.0``, ``.NETFramework,Version=v4.7.2``).
Both spellings of the same framework compare equal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import InvalidIdentity

NET_FRAMEWORK = ".NETFramework"
NET_CORE_APP = ".NETCoreApp"
NET_STANDARD = ".NETStandard"
ANY = "Any"
UNSUPPORTED = "Unsupported"

# lower-cased identifier (short or long form) -> canonical identifier
_IDENTIFIERS: dict[str, str] = {
    "net": NET_FRAMEWORK,
    ".netframework": NET_FRAMEWORK,
    "netframework": NET_FRAMEWORK,
    "netcoreapp": NET_CORE_APP,
    ".netcoreapp": NET_CORE_APP,
    "netstandard": NET_STANDARD,
    ".netstandard": NET_STANDARD,
    "uap": "UAP",
    "monoandroid": "MonoAndroid",
    "xamarinios": "Xamarin.iOS",
    "xamarin.ios": "Xamarin.iOS",
    "xamarinmac": "Xamarin.Mac",
    "xamarin.mac": "Xamarin.Mac",
    "tizen": "Tizen",
}

# canonical identifier -> short folder prefix
_SHORT_NAMES: dict[str, str] = {
    NET_FRAMEWORK: "net",
    NET_CORE_APP: "netcoreapp",
    NET_STANDARD: "netstandard",
    "UAP": "uap",
    "MonoAndroid": "monoandroid",
    "Xamarin.iOS": "xamarinios",
    "Xamarin.Mac": "xamarinmac",
    "Tizen": "tizen",
}

# .NET 5 and later use the `net` prefix but are .NETCoreApp frameworks
_NET5_MAJOR = 5

_MONIKER_RE = re.compile(r"^(?P<identifier>[A-Za-z.]+?)(?P<version>\d[\d.]*)?(?:-(?P<platform>[A-Za-z][\w.]*))?$")


def _parse_framework_version(text: str) -> tuple[int, ...]:
    """Parse ``4.7.2``/``8.0`` or the dotless folder form ``472`` into a four-part tuple."""
    text = text.strip().lstrip("vV")
    if not text:
        return (0, 0, 0, 0)
    parts = text.split(".") if "." in text else list(text)
    if not all(p.isdigit() for p in parts) or len(parts) > 4:  # noqa: PLR2004
        msg = f"Invalid framework version: {text!r}"
        raise InvalidIdentity(msg)
    numbers = tuple(int(p) for p in parts)
    return numbers + (0,) * (4 - len(numbers))


@dataclass(frozen=True)
class FrameworkTag:
    """An opaque, comparable target framework."""

    identifier: str
    version: tuple[int, ...] = (0, 0, 0, 0)
    platform: str = ""

    @classmethod
    def parse(cls, text: str) -> FrameworkTag:
        """Parse a framework moniker.

        Args:
            text: A folder moniker (``net8.0``, ``net472``, ``net8.0-windows``),
                a long nuspec name (``.NETStandard2.0``,
                ``.NETCoreApp,Version=v3.1``), or ``any``

        Returns:
            The parsed framework

        Raises:
            InvalidIdentity: If the moniker is empty or names an unknown framework

        """
        if not isinstance(text, str) or not text.strip():
            msg = f"Invalid target framework: {text!r}"
            raise InvalidIdentity(msg)
        s = text.strip()
        if s.lower() in {"any", "agnostic"}:
            return ANY_FRAMEWORK

        if "," in s:
            # .NETFramework,Version=v4.7.2[,Profile=Client]
            name, *properties = (part.strip() for part in s.split(","))
            version_text = ""
            for prop in properties:
                key, _, value = prop.partition("=")
                if key.strip().lower() == "version":
                    version_text = value
            identifier = _IDENTIFIERS.get(name.lower())
            if identifier is None:
                msg = f"Unknown target framework: {text!r}"
                raise InvalidIdentity(msg)
            return cls._build(identifier, _parse_framework_version(version_text), "")

        match = _MONIKER_RE.match(s)
        if match is None:
            msg = f"Invalid target framework: {text!r}"
            raise InvalidIdentity(msg)
        identifier = _IDENTIFIERS.get(match.group("identifier").lower())
        if identifier is None:
            msg = f"Unknown target framework: {text!r}"
            raise InvalidIdentity(msg)
        version = _parse_framework_version(match.group("version") or "")
        return cls._build(identifier, version, (match.group("platform") or "").lower())

    @classmethod
    def _build(cls, identifier: str, version: tuple[int, ...], platform: str) -> FrameworkTag:
        if identifier == NET_FRAMEWORK and version[0] >= _NET5_MAJOR:
            identifier = NET_CORE_APP
        return cls(identifier=identifier, version=version, platform=platform)

    @classmethod
    def unsupported(cls, text: str) -> FrameworkTag:
        """Return a tag for a moniker this library does not understand; it is compatible with nothing."""
        return cls(identifier=UNSUPPORTED, version=(0, 0, 0, 0), platform=text.strip().lower())

    @property
    def is_any(self) -> bool:
        """Check whether this is the wildcard framework."""
        return self.identifier == ANY

    def is_compatible(self, target: FrameworkTag) -> bool:
        """Check whether a dependency group tagged with this framework applies to ``target``."""
        if self.identifier == UNSUPPORTED:
            return False
        return self.is_any or self == target

    @property
    def short_folder_name(self) -> str:
        """Render the canonical folder moniker, e.g. ``net8.0``, ``net472``, ``netstandard2.0``."""
        if self.is_any:
            return "any"
        if self.identifier == UNSUPPORTED:
            return self.platform
        significant = list(self.version)
        while len(significant) > 2 and significant[-1] == 0:  # noqa: PLR2004
            significant.pop()
        if self.identifier == NET_FRAMEWORK:
            # net472, net48, net40
            name = "net" + "".join(str(v) for v in significant)
        elif self.identifier == NET_CORE_APP and self.version[0] >= _NET5_MAJOR:
            name = "net" + ".".join(str(v) for v in significant)
        else:
            name = _SHORT_NAMES.get(self.identifier, self.identifier.lower()) + ".".join(str(v) for v in significant)
        if self.platform:
            name += f"-{self.platform}"
        return name

    def __str__(self) -> str:
        """Return the short folder name."""
        return self.short_folder_name


ANY_FRAMEWORK = FrameworkTag(identifier=ANY)
