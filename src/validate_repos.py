"""Check which repositories Maven can build, and print the list aggregator-create reads.

  validate-repos ./repos --json | aggregator-create --yes
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Iterable

from concurrency import bounded_map
from evaluate_mvn import Runner, validate_maven_repo
from log_config import configure_logging
from mvn_runner import MVN_TIMEOUT_SECONDS, run_process
from repositories import MISSING_POM, RepositoryOwner, ValidatedRepository, has_pom, scan_repositories

logger = logging.getLogger(__name__)


def find_candidates(directory: Path) -> list[ValidatedRepository]:
    """Repositories below `directory`, or `directory` itself when it holds a pom.xml."""
    directory = directory.resolve()
    if has_pom(directory):
        return [ValidatedRepository(name=directory.name, owner=RepositoryOwner(login=directory.parent.name),
                                    path=str(directory), has_pom=True)]
    scan = scan_repositories(directory)
    candidates = [ValidatedRepository(name=r.name, owner=RepositoryOwner(login=r.owner), path=str(r.path),
                                      has_pom=True)
                  for r in scan.repositories]
    for skipped in scan.skipped:
        if skipped.reason != MISSING_POM:
            logger.warning("Skipping %s: %s", skipped.relative_path, skipped.reason)
            continue
        owner, _, name = skipped.relative_path.rpartition('/')
        candidates.append(ValidatedRepository(name=name, owner=RepositoryOwner(login=owner or directory.name),
                                              path=str(skipped.path), has_pom=False))
    return candidates


async def validate_all(candidates: list[ValidatedRepository], concurrency: int | None = None,
                       runner: Runner = run_process,
                       timeout: float | None = MVN_TIMEOUT_SECONDS) -> list[ValidatedRepository]:
    """Set `valid` on every candidate; those without a pom.xml are not handed to Maven."""

    async def _validate(repo: ValidatedRepository) -> ValidatedRepository:
        full_name = f"{repo.owner.login}/{repo.name}"
        if not repo.has_pom:
            logger.info("Skipping non-Maven repository: %s", full_name)
            return repo.model_copy(update={'valid': False})
        valid, reason = await validate_maven_repo(repo.path, runner=runner, timeout=timeout)
        if valid:
            logger.info("Validation successful: %s", full_name)
        else:
            logger.warning("Validation failed: %s: %s", full_name, reason)
        return repo.model_copy(update={'valid': valid})

    return await bounded_map(_validate, candidates, concurrency)


def parse_args(argv: Iterable[str] | None = None):
    p = argparse.ArgumentParser(description="Validate Maven repositories with `mvn help:effective-pom`.")
    p.add_argument('directory', help='a repository, or a directory of repositories (owner/repo layout)')
    p.add_argument('--output', '-o', help='write the owner/name of each valid repository to this file')
    p.add_argument('--concurrency', type=int, default=1, help='repositories validated at once (default: 1)')
    p.add_argument('--mvn-timeout', type=float, default=MVN_TIMEOUT_SECONDS,
                   help='seconds before a single Maven invocation is abandoned')
    p.add_argument('--json', action='store_true', help='print the validated list as JSON on stdout')
    p.add_argument('--verbose', '-v', action='store_true', help='debug logging on stderr')
    return p.parse_args(argv)


def main(argv: Iterable[str] | None = None):
    """Main entry point. Accepts argv (list of strings) for programmatic invocation."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    directory = Path(args.directory)
    if not directory.is_dir():
        print(f"Error: directory does not exist: {directory}", file=sys.stderr)
        sys.exit(1)

    repos = asyncio.run(validate_all(find_candidates(directory), args.concurrency, runner=run_process,
                                     timeout=args.mvn_timeout))
    valid_repos = [r for r in repos if r.valid]

    if args.output and valid_repos:
        Path(args.output).write_text('\n'.join(f"{r.owner.login}/{r.name}" for r in valid_repos), encoding='utf-8')
        logger.info("Validated repository list written to: %s", Path(args.output).resolve())

    if args.json:
        data = {'validRepos': [r.model_dump(mode='json', by_alias=True) for r in repos], 'validCount': len(valid_repos)}
        print(json.dumps(data, indent=2))
    else:
        noun = 'repository' if len(valid_repos) == 1 else 'repositories'
        print(f"Found {len(valid_repos)} validated Maven {noun}")
        for r in valid_repos:
            print(f"  {r.owner.login}/{r.name}")


if __name__ == "__main__":
    main()
