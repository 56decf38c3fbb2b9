"""
Ask Maven for the values static POM parsing cannot settle, and classify its failures.

Maven only reports *why* it failed through its console output, so the error text
is sorted into a few categories here and nowhere else. The rest of the pipeline
branches on ResolutionFailure, never on raw strings.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

from maven_gav import MavenGAV
from mvn_runner import MVN_TIMEOUT_SECONDS, ProcessError, ProcessResult, mvn_executable, run_process

logger = logging.getLogger(__name__)

Runner = Callable[..., Awaitable[ProcessResult]]

NO_MATCHING_DEPENDENCIES = 'No matching dependencies found'
_NULL_EVALUATION = 'null object or invalid expression'


class ResolutionFailure(Enum):
    PARENT_UNRESOLVABLE = 'parent-unresolvable'
    RELATIVE_PATH_BROKEN = 'relative-path-broken'
    ARTIFACT_NOT_FOUND = 'artifact-not-found'
    GENERIC = 'generic'

    @property
    def is_skippable(self) -> bool:
        """Known, expected failures: skip the module quietly rather than report an error."""
        return self is not ResolutionFailure.GENERIC


# Checked in order; the first match wins.
_FAILURE_MARKERS = [
    ('Non-resolvable parent POM', ResolutionFailure.PARENT_UNRESOLVABLE),
    ('parent.relativePath', ResolutionFailure.RELATIVE_PATH_BROKEN),
    ('Could not find artifact', ResolutionFailure.ARTIFACT_NOT_FOUND),
]


def classify_mvn_error(text: str) -> ResolutionFailure:
    """Map Maven's error output to a ResolutionFailure."""
    for marker, failure in _FAILURE_MARKERS:
        if marker in text:
            return failure
    return ResolutionFailure.GENERIC


class MavenEvaluationError(Exception):
    """`mvn help:evaluate` did not produce a usable value."""

    def __init__(self, message: str, failure: ResolutionFailure):
        super().__init__(message)
        self.failure = failure


def _trim_error_block(text: str) -> str:
    """Drop Maven's trailing stack-trace and help hints from an error block.

    Also strips leading timestamps (HH:MM:SS,mmm, optionally dated) before [ERROR] tags.
    """
    kept = []
    for line in text.splitlines():
        if 'To see the full stack trace of the errors' in line or '-> [Help 1]' in line:
            break
        line = re.sub(r'^(?:\d{4}-\d{2}-\d{2}[ T])?\d{2}:\d{2}:\d{2}[.,]\d{3}\s+(?=\[ERROR])', '', line.strip())
        if line:
            kept.append(line)
    return '\n'.join(kept)


async def get_maven_project_attribute(pom_path: Path | str, expression: str, runner: Runner = run_process,
                                      timeout: float | None = MVN_TIMEOUT_SECONDS) -> str:
    """Evaluate a project expression (e.g. 'project.groupId') for one POM with Maven.

    Raises MavenEvaluationError, classified, on a non-zero exit, timeout or empty result.
    """
    args = ['-f', str(pom_path), 'help:evaluate', f'-Dexpression={expression}', '--quiet', '-DforceStdout']
    try:
        result = await runner(mvn_executable(), args, timeout=timeout)
    except ProcessError as e:
        diagnostic = _trim_error_block(e.diagnostic) or str(e)
        logger.debug("Maven error evaluating %s in %s: %s", expression, pom_path, diagnostic)
        raise MavenEvaluationError(
            f"Failed to get Maven attribute {expression} from {pom_path}: {diagnostic}",
            classify_mvn_error(diagnostic),
        ) from e

    value = result.stdout.strip()
    if not value or _NULL_EVALUATION in value or value.startswith('[ERROR]'):
        diagnostic = _trim_error_block(f"{value}\n{result.stderr}") or 'empty output'
        raise MavenEvaluationError(
            f"Failed to evaluate Maven expression {expression} in {pom_path}: {diagnostic}",
            classify_mvn_error(diagnostic),
        )
    return value


async def validate_maven_repo(repo_path: Path | str, runner: Runner = run_process,
                              timeout: float | None = MVN_TIMEOUT_SECONDS) -> tuple[bool, str | None]:
    """Check a repository is a directory with a pom.xml whose effective POM Maven can build.

    Returns (valid, reason); reason is None for valid repositories.
    """
    repo = Path(repo_path).resolve()
    if not repo.is_dir():
        return False, 'Not a directory'
    pom = repo / 'pom.xml'
    if not pom.is_file():
        logger.info("No pom.xml found at: %s", pom)
        return False, 'Missing pom.xml'
    try:
        await runner(mvn_executable(), ['help:effective-pom', '--quiet', '--file', str(pom)], timeout=timeout)
    except ProcessError as e:
        if e.result is None:
            logger.warning("Maven could not be run: %s", e)
        return False, _trim_error_block(e.diagnostic) or str(e)
    return True, None


async def use_dep_version(module_dir: Path | str, gav: MavenGAV, runner: Runner = run_process,
                          timeout: float | None = MVN_TIMEOUT_SECONDS) -> bool:
    """Set every dependency on gav's group:artifact in one module to gav's version via versions-maven-plugin.

    Returns True when Maven updated the POM, False when the coordinate does not
    apply to this module. Other failures raise MavenEvaluationError.
    """
    args = [
        '-f', str(module_dir),
        'versions:use-dep-version',
        f'-Dincludes={gav.ga_key}',
        f'-DdepVersion={gav.version}',
        '-DgenerateBackupPoms=false',
        '--quiet',
    ]
    result = await runner(mvn_executable(), args, timeout=timeout, check=False)
    output = f"{result.stdout}\n{result.stderr}"
    if NO_MATCHING_DEPENDENCIES in output:
        return False
    if result.exit_code != 0:
        diagnostic = _trim_error_block(output) or f"exit {result.exit_code}"
        raise MavenEvaluationError(f"Could not update {gav.ga_key}: {diagnostic}", classify_mvn_error(diagnostic))
    return True


def cleanup_backup_poms(aggregator_root: Path | str, modules: list[str]) -> list[Path]:
    """Remove pom.xml.versionsBackup files versions-maven-plugin may leave behind."""
    removed = []
    for module in modules:
        backup = Path(aggregator_root) / module / 'pom.xml.versionsBackup'
        if backup.exists():
            backup.unlink()
            logger.debug("Removed %s", backup)
            removed.append(backup)
    return removed
