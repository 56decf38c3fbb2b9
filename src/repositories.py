"""Find the repositories an aggregator POM will list.

Two sources: a directory laid out as <root>/<owner>/<repo> (a repository
directly under <root> is accepted too), or the JSON list printed by
`validate-repos --json`, whose `valid` entries are taken as they are.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

import pydantic
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

MISSING_POM = 'Missing pom.xml'


class RepositoryOwner(BaseModel):
    model_config = ConfigDict(extra='allow')

    login: str


class ValidatedRepository(BaseModel):
    """One entry of the repository list exchanged between the CLI steps."""
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    name: str
    owner: RepositoryOwner
    path: str
    valid: bool = False
    has_pom: bool | None = Field(default=None, alias='hasPom')


class InvalidRepositoryInput(Exception):
    """Piped repository JSON could not be parsed or did not match the expected shape."""


@dataclass(frozen=True)
class RepositoryDescriptor:
    path: Path
    relative_path: str
    owner: str
    name: str


@dataclass(frozen=True)
class SkippedRepository:
    path: Path
    relative_path: str
    reason: str


@dataclass
class RepositoryScan:
    scan_root: Path
    repositories: list[RepositoryDescriptor] = field(default_factory=list)
    skipped: list[SkippedRepository] = field(default_factory=list)
    total_scanned: int = 0


def has_pom(path: Path) -> bool:
    return (path / 'pom.xml').is_file()


def scan_repositories(directory: Path | str) -> RepositoryScan:
    """Collect Maven repositories one or two levels below `directory`.

    A first-level directory with a pom.xml is a repository on its own; otherwise
    each of its subdirectories is a candidate (the owner/repo convention) and
    candidates without a pom.xml are recorded as skipped.
    """
    root = Path(directory)
    scan = RepositoryScan(scan_root=root)
    for entry in sorted(p for p in root.iterdir() if p.is_dir()):
        logger.debug("Examining: %s", entry.name)
        scan.total_scanned += 1
        if has_pom(entry):
            scan.repositories.append(RepositoryDescriptor(entry, entry.name, root.name, entry.name))
            continue
        try:
            sub_entries = sorted(p for p in entry.iterdir() if p.is_dir())
        except OSError as e:
            scan.skipped.append(SkippedRepository(entry, entry.name, f"Error reading directory: {e}"))
            continue
        for sub in sub_entries:
            scan.total_scanned += 1
            relative_path = f"{entry.name}/{sub.name}"
            if has_pom(sub):
                scan.repositories.append(RepositoryDescriptor(sub, relative_path, entry.name, sub.name))
            else:
                scan.skipped.append(SkippedRepository(sub, relative_path, MISSING_POM))
    return scan


def parse_repository_list(text: str) -> list[ValidatedRepository]:
    """Parse piped JSON: a list of repositories, or an object holding one under 'validRepos'."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidRepositoryInput(f"Invalid JSON input: {e}") from e
    if isinstance(data, dict):
        data = data.get('validRepos', data)
    try:
        return pydantic.TypeAdapter(list[ValidatedRepository]).validate_python(data)
    except pydantic.ValidationError as e:
        raise InvalidRepositoryInput(f"Unexpected repository list format: {e}") from e


def repositories_from_list(entries: list[ValidatedRepository]) -> RepositoryScan:
    """Turn the valid entries of a repository list into descriptors.

    The scan root is the directory above the first repository's owner directory.
    Valid entries whose pom.xml has since disappeared are skipped.
    """
    valid = [e for e in entries if e.valid]
    if not valid:
        raise InvalidRepositoryInput('No valid repositories found in input')

    scan_root = Path(valid[0].path).resolve().parent.parent
    scan = RepositoryScan(scan_root=scan_root, total_scanned=len(valid))
    for entry in valid:
        path = Path(entry.path)
        relative_path = f"{entry.owner.login}/{entry.name}"
        if has_pom(path):
            scan.repositories.append(RepositoryDescriptor(path, relative_path, entry.owner.login, entry.name))
        else:
            scan.skipped.append(SkippedRepository(path, relative_path, MISSING_POM))
    return scan
