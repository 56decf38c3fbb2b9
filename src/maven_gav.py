"""Maven Group:Artifact:Version coordinates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

PLACEHOLDER_TOKEN = '${'


@dataclass(frozen=True)
class MavenGAV:
    """An immutable groupId/artifactId/version triple.

    Two coordinates describe the same dependency when ``ga_key`` matches; the
    version is the axis the aggregator unifies.
    """
    group_id: str
    artifact_id: str
    version: str

    @property
    def key(self) -> str:
        return f"{self.group_id}:{self.artifact_id}:{self.version}"

    @property
    def ga_key(self) -> str:
        return f"{self.group_id}:{self.artifact_id}"

    def __str__(self) -> str:
        return self.key

    @staticmethod
    def is_complete(group_id: str | None, artifact_id: str | None, version: str | None) -> bool:
        """True when all three values are non-empty and free of property placeholders."""
        values = (group_id, artifact_id, version)
        return all(v and v.strip() and PLACEHOLDER_TOKEN not in v for v in values)


def dedupe_coordinates(coordinates: Iterable[MavenGAV]) -> list[MavenGAV]:
    """Drop repeated group:artifact:version triples, keeping the first occurrence.

    Input order is preserved, so the first coordinate seen in traversal order wins.
    """
    seen: dict[str, MavenGAV] = {}
    for gav in coordinates:
        seen.setdefault(gav.key, gav)
    return list(seen.values())


def versions_by_artifact(coordinates: Iterable[MavenGAV]) -> dict[str, str]:
    """Map 'groupId:artifactId' to a version; the first coordinate for a pair wins."""
    versions: dict[str, str] = {}
    for gav in coordinates:
        versions.setdefault(gav.ga_key, gav.version)
    return versions
