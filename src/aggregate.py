"""Collect the GAV coordinates of every module in a set of repositories.

Each module POM is read structurally first; Maven is only consulted for POMs
the parser cannot settle. Modules Maven cannot resolve either are skipped and
reported, they never abort the run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from concurrency import bounded_map
from evaluate_mvn import MavenEvaluationError, Runner, get_maven_project_attribute
from maven_gav import MavenGAV, dedupe_coordinates
from module_discovery import DiscoveryResult, discover_modules
from mvn_runner import MVN_TIMEOUT_SECONDS, ProcessError, run_process
from parse_pom import parse_for_gav
from repositories import RepositoryDescriptor

module_logger = logging.getLogger(__name__)

LIBRARY_PACKAGING = ('jar', 'bundle')


class AggregationMode(Enum):
    REACTOR = 'reactor'
    LIBRARY = 'library'

    def includes(self, packaging: str) -> bool:
        return self is AggregationMode.REACTOR or packaging in LIBRARY_PACKAGING


@dataclass(frozen=True)
class SkippedModule:
    path: str
    reason: str
    expected: bool


@dataclass
class AggregationResult:
    coordinates: list[MavenGAV] = field(default_factory=list)
    discoveries: dict[str, DiscoveryResult] = field(default_factory=dict)
    skipped_modules: list[SkippedModule] = field(default_factory=list)
    pom_paths: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Candidate:
    pom: Path
    label: str


async def resolve_gav(pom: Path | str, label: str | None = None, runner: Runner = run_process,
                      timeout: float | None = MVN_TIMEOUT_SECONDS,
                      logger: logging.Logger = module_logger) -> tuple[Optional[MavenGAV], Optional[SkippedModule]]:
    """Resolve one POM's coordinates: structural parse, then Maven for whatever is left.

    Returns (gav, None) on success and (None, skipped) when the module has to be left out.
    """
    label = label or str(pom)
    parsed = await asyncio.to_thread(parse_for_gav, pom)
    if not parsed.needs_fallback:
        logger.debug("%s: fast XML parsing", label)
        return MavenGAV(parsed.gav['groupId'], parsed.gav['artifactId'], parsed.gav['version']), None

    logger.info("%s: Maven fallback: %s", label, parsed.reason)
    values = []
    try:
        for expression in ('project.groupId', 'project.artifactId', 'project.version'):
            values.append(await get_maven_project_attribute(pom, expression, runner=runner, timeout=timeout))
    except MavenEvaluationError as e:
        if e.failure.is_skippable:
            logger.warning("Could not process %s due to parent POM resolution issues: %s", label, e)
            return None, SkippedModule(label, str(e), expected=True)
        logger.error("Failed to collect GAV from %s: %s", label, e)
        return None, SkippedModule(label, str(e), expected=False)
    except ProcessError as e:
        logger.error("Failed to collect GAV from %s: %s", label, e)
        return None, SkippedModule(label, str(e), expected=False)

    if not MavenGAV.is_complete(*values):
        reason = f"Maven returned incomplete coordinates {':'.join(values)}"
        logger.error("Failed to collect GAV from %s: %s", label, reason)
        return None, SkippedModule(label, reason, expected=False)
    return MavenGAV(*values), None


async def aggregate(repositories: list[RepositoryDescriptor], mode: AggregationMode = AggregationMode.REACTOR,
                    parallel: bool = True, concurrency: int | None = None, runner: Runner = run_process,
                    timeout: float | None = MVN_TIMEOUT_SECONDS,
                    logger: logging.Logger = module_logger) -> AggregationResult:
    """Discover every module of every repository and resolve the selected ones to GAVs.

    With parallel=False everything runs one at a time in declared order. The
    coordinate list is de-duplicated on group:artifact:version; the first
    occurrence in repository order, then module discovery order, is kept, so
    the outcome is the same in both modes.
    """
    width = concurrency if parallel else 1
    result = AggregationResult()

    async def _discover(repo: RepositoryDescriptor) -> DiscoveryResult:
        return await discover_modules(repo.path, parallel=parallel, logger=logger)

    discoveries = await bounded_map(_discover, repositories, width)

    candidates: list[_Candidate] = []
    for repo, discovery in zip(repositories, discoveries):
        result.discoveries[repo.relative_path] = discovery
        for pom_path in discovery.pom_paths:
            label = f"{repo.relative_path}/{pom_path}"
            result.pom_paths.append(label)
            packaging = discovery.descriptors[pom_path].packaging
            if mode.includes(packaging):
                candidates.append(_Candidate(repo.path / pom_path, label))
            else:
                logger.debug("%s: skipping %s packaging", label, packaging)

    logger.info("Processing %d POM files for the dependencyManagement section", len(candidates))

    async def _resolve(candidate: _Candidate):
        return await resolve_gav(candidate.pom, candidate.label, runner=runner, timeout=timeout, logger=logger)

    resolved = await bounded_map(_resolve, candidates, width)
    gavs = []
    for gav, skipped in resolved:
        if gav is not None:
            gavs.append(gav)
        else:
            result.skipped_modules.append(skipped)

    result.coordinates = dedupe_coordinates(gavs)
    if result.coordinates:
        for gav in result.coordinates:
            logger.info("Adding %s to the dependencyManagement section", gav)
    else:
        logger.info("No GAVs found to add to the dependencyManagement section")
    return result
