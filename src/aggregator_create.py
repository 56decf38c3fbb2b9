"""Create an aggregator pom.xml for a set of Maven repositories.

The repositories come from a directory (owner/repo layout) or from the JSON list
printed by `validate-repos --json` on stdin. Every module reachable from each
repository's root POM is resolved to a GAV, the coordinates go into the
aggregator's dependencyManagement, and the module POMs are then aligned with it.

Example:
  validate-repos ./repos --json | aggregator-create --yes
  aggregator-create ./repos --groupId org.example --mode library --no-parent
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import posixpath
import sys
import time
from pathlib import Path
from typing import Iterable

from aggregate import AggregationMode, AggregationResult, aggregate
from aggregator_pom import ParentLookupError, PomWriteError, fetch_latest_version, synthesize, write_pom
from log_config import configure_logging
from maven_gav import MavenGAV
from mod_deps import RewriteResult, rewrite_dependencies, rewrite_with_maven
from module_discovery import merge_module_graphs, module_graph_json
from mvn_runner import MVN_TIMEOUT_SECONDS
from repositories import InvalidRepositoryInput, RepositoryScan, parse_repository_list, repositories_from_list, scan_repositories

logger = logging.getLogger(__name__)

DEFAULT_GROUP_ID = 'com.example'
DEFAULT_ARTIFACT_ID = 'aggregator'
DEFAULT_POM_VERSION = '1.0.0-SNAPSHOT'
DEFAULT_PARENT = 'io.liftwizard:liftwizard-profile-parent'

NO_INPUT = 'No input provided. Provide a directory path or pipe JSON data from stdin.'
NO_REPOSITORIES = 'No Maven repositories found. Each repository must contain a pom.xml file.'
NO_MODULES = 'No module POMs were found.'


def parse_parent(text: str) -> tuple[str, str, str | None]:
    """'g:a' or 'g:a:v' -> (g, a, v or None)."""
    parts = text.split(':')
    if len(parts) not in (2, 3) or not all(parts):
        raise argparse.ArgumentTypeError(f"expected groupId:artifactId[:version], got {text!r}")
    return parts[0], parts[1], parts[2] if len(parts) == 3 else None


def parse_args(argv: Iterable[str] | None = None):
    p = argparse.ArgumentParser(description="Create an aggregator POM listing Maven repositories as modules "
                                            "with a shared dependencyManagement section.")
    p.add_argument('directory', nargs='?', help='directory containing the repositories (omit to read JSON from stdin)')
    p.add_argument('--groupId', '-g', dest='group_id', default=DEFAULT_GROUP_ID, help='groupId of the aggregator POM')
    p.add_argument('--artifactId', '-a', dest='artifact_id', default=DEFAULT_ARTIFACT_ID,
                   help='artifactId of the aggregator POM')
    p.add_argument('--pomVersion', '-v', dest='pom_version', default=DEFAULT_POM_VERSION,
                   help='version of the aggregator POM')
    p.add_argument('--yes', '-y', action='store_true', help='do not ask for confirmation before writing')
    p.add_argument('--parallel', action=argparse.BooleanOptionalAction, default=True,
                   help='read POMs and run Maven concurrently (default: on)')
    p.add_argument('--concurrency', type=int, default=None,
                   help='maximum concurrent Maven invocations when parallel (default: unbounded)')
    p.add_argument('--mode', choices=[m.value for m in AggregationMode], default=AggregationMode.REACTOR.value,
                   help='reactor: every module; library: only jar/bundle modules')
    p.add_argument('--parent', type=parse_parent, default=parse_parent(DEFAULT_PARENT),
                   help=f'parent POM as groupId:artifactId[:version]; without a version the latest release '
                        f'is looked up on Maven Central (default: {DEFAULT_PARENT})')
    p.add_argument('--no-parent', action='store_true', help='write the aggregator POM without a <parent>')
    p.add_argument('--rewrite', action=argparse.BooleanOptionalAction, default=True,
                   help='align module dependency versions with the aggregated ones (default: on)')
    p.add_argument('--maven-fallback', action=argparse.BooleanOptionalAction, default=True,
                   help='use versions:use-dep-version for POMs the XML rewriter cannot handle (default: on)')
    p.add_argument('--mvn-timeout', type=float, default=MVN_TIMEOUT_SECONDS,
                   help='seconds before a single Maven invocation is abandoned')
    p.add_argument('--graph-out', help='write the module graph as node-link JSON to this file')
    p.add_argument('--json', action='store_true', help='print the result as JSON on stdout')
    p.add_argument('--verbose', action='store_true', help='debug logging on stderr')
    args = p.parse_args(argv)
    if args.concurrency is not None and args.concurrency < 1:
        p.error('--concurrency must be at least 1')
    return args


def load_repositories(directory: str | None, stdin=None) -> RepositoryScan:
    """Repository set from a directory scan, or from JSON piped on stdin."""
    if directory:
        path = Path(directory).resolve()
        if not path.is_dir():
            raise InvalidRepositoryInput(f"Failed to access directory: {path}")
        logger.info("Scanning for Maven repositories in %s...", path)
        return scan_repositories(path)

    stdin = stdin or sys.stdin
    if stdin.isatty():
        raise InvalidRepositoryInput(NO_INPUT)
    text = stdin.read()
    if not text.strip():
        raise InvalidRepositoryInput(NO_INPUT)
    scan = repositories_from_list(parse_repository_list(text))
    logger.info("Using %d validated repositories from input...", len(scan.repositories))
    return scan


def confirm(question: str, assume_yes: bool) -> bool:
    """Ask on the terminal; without one (piped input, CI) the answer is yes."""
    if assume_yes or not sys.stdin.isatty():
        return True
    answer = input(f"{question} [y/N] ")
    return answer.strip().lower() in ('y', 'yes')


def module_directories(pom_paths: Iterable[str]) -> list[str]:
    """Directories of the discovered POMs, relative to the scan root, first occurrence first."""
    return list(dict.fromkeys(posixpath.dirname(p) for p in pom_paths if posixpath.dirname(p)))


def build_result(args, scan: RepositoryScan | None, started: float, success: bool, pom_path: str = '',
                 error: str | None = None) -> dict:
    modules = []
    if scan is not None:
        modules = [{'path': r.relative_path, 'valid': True} for r in scan.repositories]
        modules += [{'path': s.relative_path, 'valid': False, 'reason': s.reason} for s in scan.skipped]
    result = {
        'success': success,
        'pomPath': pom_path,
        'modules': modules,
        'stats': {
            'totalScanned': scan.total_scanned if scan else 0,
            'validRepositories': len(scan.repositories) if scan else 0,
            'skippedRepositories': len(scan.skipped) if scan else 0,
            'elapsedTimeMs': int((time.monotonic() - started) * 1000),
        },
        'mavenCoordinates': {
            'groupId': args.group_id,
            'artifactId': args.artifact_id,
            'version': args.pom_version,
        },
    }
    if error:
        result['error'] = error
    return result


def resolve_parent(args) -> MavenGAV | None:
    if args.no_parent:
        return None
    group_id, artifact_id, version = args.parent
    if version is None:
        version = fetch_latest_version(group_id, artifact_id)
    return MavenGAV(group_id, artifact_id, version)


def run_rewrite(args, scan_root: Path, aggregation: AggregationResult) -> RewriteResult:
    modules = module_directories(aggregation.pom_paths)
    result = rewrite_dependencies(scan_root, aggregation.coordinates, modules)
    if result.unresolved_modules and args.maven_fallback:
        fallback = asyncio.run(rewrite_with_maven(scan_root, aggregation.coordinates, result.unresolved_modules,
                                                  timeout=args.mvn_timeout))
        result.rewritten_modules.extend(m for m in fallback.rewritten_modules if m not in result.rewritten_modules)
    return result


def emit(args, result: dict) -> None:
    if args.json:
        print(json.dumps(result, indent=2))
    elif result.get('error'):
        print(f"Error: {result['error']}", file=sys.stderr)


def main(argv: Iterable[str] | None = None):
    """Main entry point. Accepts argv (list of strings) for programmatic invocation."""
    started = time.monotonic()
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        scan = load_repositories(args.directory)
    except (InvalidRepositoryInput, OSError) as e:
        emit(args, build_result(args, None, started, False, error=str(e)))
        sys.exit(1)

    if not scan.repositories:
        emit(args, build_result(args, scan, started, False, error=NO_REPOSITORIES))
        sys.exit(1)
    for repo in scan.repositories:
        logger.info("Found valid Maven repository: %s", repo.relative_path)

    aggregation = asyncio.run(aggregate(scan.repositories, mode=AggregationMode(args.mode), parallel=args.parallel,
                                        concurrency=args.concurrency, timeout=args.mvn_timeout))
    if not aggregation.pom_paths:
        emit(args, build_result(args, scan, started, False, error=NO_MODULES))
        sys.exit(1)
    logger.info("Found %d valid Maven repositories", len(scan.repositories))
    logger.info("Found %d GAVs to add to the dependencyManagement section of the POM", len(aggregation.coordinates))
    for skipped in scan.skipped:
        logger.warning("Skipped %s: %s", skipped.relative_path, skipped.reason)

    if args.graph_out:
        graphs = {repo: d.graph for repo, d in aggregation.discoveries.items()}
        Path(args.graph_out).write_text(module_graph_json(merge_module_graphs(graphs)), encoding='utf-8')

    try:
        parent = resolve_parent(args)
    except ParentLookupError as e:
        emit(args, build_result(args, scan, started, False, error=f"Failed to fetch parent version: {e}"))
        sys.exit(1)

    modules = [repo.relative_path for repo in scan.repositories]
    if not args.json:
        print("Ready to create aggregator POM with the following settings:")
        print(f"  - groupId: {args.group_id}")
        print(f"  - artifactId: {args.artifact_id}")
        print(f"  - version: {args.pom_version}")
        if parent is not None:
            print(f"  - parent: {parent}")
        print(f"  - modules: {len(modules)} Maven repositories")
    if not confirm('Do you want to create the aggregator POM?', args.yes):
        logger.warning("Operation canceled by user.")
        emit(args, build_result(args, scan, started, False))
        return

    xml_text = synthesize(args.group_id, args.artifact_id, args.pom_version, modules, aggregation.coordinates,
                          parent=parent)
    pom_path = scan.scan_root / 'pom.xml'
    try:
        write_pom(pom_path, xml_text)
    except PomWriteError as e:
        emit(args, build_result(args, scan, started, False, error=f"Failed to write aggregator POM: {e}"))
        sys.exit(1)
    logger.info("Created aggregator POM at %s with %d modules", pom_path, len(modules))

    rewrite = run_rewrite(args, scan.scan_root, aggregation) if args.rewrite else None
    result = build_result(args, scan, started, True, pom_path=str(pom_path))
    if rewrite is not None:
        result['rewrite'] = {
            'rewritten': rewrite.rewritten_modules,
            'mavenFallbacks': rewrite.unresolved_modules,
            'errors': [{'module': m, 'error': err} for m, err in rewrite.errors],
        }

    if args.json:
        emit(args, result)
    else:
        print(f"Successfully created aggregator POM at: {pom_path}")
        if rewrite is not None:
            print(f"Aligned dependency versions in {len(rewrite.rewritten_modules)} module POM(s)")
            for module, error in rewrite.errors:
                print(f"Error: {module}: {error}", file=sys.stderr)
    if rewrite is not None and not rewrite.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
