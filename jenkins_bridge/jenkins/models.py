"""Data models for Jenkins API responses."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Build:
    """A single build of a job."""

    number: int
    url: str
    building: bool = False
    result: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "Build":
        """Create Build from a ``/api/json`` build document.

        Args:
            data: Decoded JSON body

        Returns:
            Build instance
        """
        return cls(
            number=int(data.get("number", 0)),
            url=data.get("url", ""),
            building=bool(data.get("building", False)),
            result=data.get("result"),
        )


@dataclass
class Artifact:
    """A file archived by a build."""

    file_name: str
    relative_path: str
    url: str

    @classmethod
    def from_api(cls, build_url: str, data: dict) -> "Artifact":
        relative_path = data.get("relativePath", "")
        return cls(
            file_name=data.get("fileName", ""),
            relative_path=relative_path,
            url=f"{build_url.rstrip('/')}/artifact/{relative_path}",
        )


@dataclass
class JobParameter:
    """A parameter declared by a parameterized job."""

    name: str
    type: str
    default: Any = None
    description: str = ""
    choices: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "JobParameter":
        """Create JobParameter from a ``parameterDefinitions`` entry.

        Args:
            data: One parameter definition

        Returns:
            JobParameter instance
        """
        default = data.get("defaultParameterValue") or {}
        return cls(
            name=data.get("name", ""),
            type=data.get("type", ""),
            default=default.get("value"),
            description=data.get("description") or "",
            choices=list(data.get("choices") or []),
        )


@dataclass
class PluginInfo:
    """An installed Jenkins plugin."""

    short_name: str
    long_name: str
    version: str
    active: bool = True

    @classmethod
    def from_api(cls, data: dict) -> "PluginInfo":
        return cls(
            short_name=data.get("shortName", ""),
            long_name=data.get("longName", ""),
            version=data.get("version", ""),
            active=bool(data.get("active", True)),
        )


@dataclass
class BuildTestResults:
    """Summary of the test results recorded by a build."""

    url: str
    pass_count: int = 0
    fail_count: int = 0
    skip_count: int = 0

    @classmethod
    def from_api(cls, build_url: str, data: dict) -> "BuildTestResults":
        return cls(
            url=f"{build_url.rstrip('/')}/testReport",
            pass_count=int(data.get("passCount", 0)),
            fail_count=int(data.get("failCount", 0)),
            skip_count=int(data.get("skipCount", 0)),
        )
