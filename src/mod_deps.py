# Align dependency versions in module POMs with an aggregator's dependencyManagement

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from evaluate_mvn import MavenEvaluationError, Runner, cleanup_backup_poms, use_dep_version
from log_config import configure_logging
from maven_gav import PLACEHOLDER_TOKEN, MavenGAV, versions_by_artifact
from mvn_runner import MVN_TIMEOUT_SECONDS, ProcessError, run_process
from parse_pom import read_properties, resolve_property
from pom_utils import child_text, get_qn_lambda, local_name, read_pom, read_pom_document, serialize_pom

module_logger = logging.getLogger(__name__)


class UnsafeRewrite(Exception):
    """The POM holds a structure the XML rewriter will not edit; Maven has to do it."""


@dataclass(frozen=True)
class VersionChange:
    location: str
    ga_key: str
    old_version: str
    new_version: str


@dataclass
class RewriteResult:
    rewritten_modules: list[str] = field(default_factory=list)
    unresolved_modules: list[str] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)
    skipped_modules: list[str] = field(default_factory=list)
    changes: dict[str, list[VersionChange]] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


def _deps_of(container: ET.Element | None, qn) -> list[ET.Element]:
    if container is None:
        return []
    deps = container.find(qn('dependencies'))
    return deps.findall(qn('dependency')) if deps is not None else []


def _plugins_of(build: ET.Element | None, qn) -> Iterator[tuple[str, ET.Element]]:
    if build is None:
        return
    for prefix, plugins in (('build', build.find(qn('plugins'))),
                            ('pluginManagement', build.find(qn('pluginManagement') + '/' + qn('plugins')))):
        if plugins is None:
            continue
        for plugin in plugins.findall(qn('plugin')):
            name = child_text(plugin, qn, 'artifactId') or '?'
            for dep in _deps_of(plugin, qn):
                yield f"{prefix} plugin {name}", dep


def _model_entries(model: ET.Element, qn, where: str) -> Iterator[tuple[str, ET.Element]]:
    for dep in _deps_of(model, qn):
        yield f"{where}dependencies", dep
    for dep in _deps_of(model.find(qn('dependencyManagement')), qn):
        yield f"{where}dependencyManagement", dep
    for location, dep in _plugins_of(model.find(qn('build')), qn):
        yield f"{where}{location}", dep


def iter_version_holders(root: ET.Element) -> Iterator[tuple[str, ET.Element]]:
    """Yield (location, element) for every element whose <version> may be aligned.

    Covers <parent>, <dependencies>, <dependencyManagement>, plugin dependencies
    under <build> and <pluginManagement>, and the same sections inside each profile.
    """
    qn = get_qn_lambda(root)
    parent = root.find(qn('parent'))
    if parent is not None:
        yield 'parent', parent
    yield from _model_entries(root, qn, '')
    profiles = root.find(qn('profiles'))
    if profiles is not None:
        for profile in profiles.findall(qn('profile')):
            profile_id = child_text(profile, qn, 'id') or '?'
            yield from _model_entries(profile, qn, f"profile {profile_id} ")


def _coordinate_elem(entry: ET.Element, qn, local: str, location: str) -> ET.Element | None:
    found = entry.findall(qn(local))
    if len(found) > 1:
        raise UnsafeRewrite(f"{location}: more than one <{local}>")
    if found and len(found[0]):
        raise UnsafeRewrite(f"{location}: <{local}> contains markup")
    return found[0] if found else None


def _resolved_text(elem: ET.Element | None, properties: dict[str, str]) -> str | None:
    if elem is None or elem.text is None or not elem.text.strip():
        return None
    return resolve_property(elem.text.strip(), properties)


def update_versions(root: ET.Element, versions: dict[str, str],
                    logger: logging.Logger = module_logger) -> list[VersionChange]:
    """Set the version of every entry whose group:artifact is in `versions` and differs.

    A version written as a property reference is replaced by the literal version;
    the property definition itself is left alone. Raises UnsafeRewrite, before
    touching anything, when an entry's identity cannot be determined.
    """
    if local_name(root) != 'project':
        raise ValueError('Invalid POM: no project element found')
    qn = get_qn_lambda(root)
    properties = read_properties(root)

    planned: list[tuple[ET.Element, VersionChange]] = []
    for location, entry in iter_version_holders(root):
        group_elem = _coordinate_elem(entry, qn, 'groupId', location)
        artifact_elem = _coordinate_elem(entry, qn, 'artifactId', location)
        version_elem = _coordinate_elem(entry, qn, 'version', location)
        current = version_elem.text.strip() if version_elem is not None and version_elem.text else ''
        if not current:
            # versionless entries are managed elsewhere
            continue
        group_id = _resolved_text(group_elem, properties)
        artifact_id = _resolved_text(artifact_elem, properties)
        if not group_id or not artifact_id:
            continue
        if PLACEHOLDER_TOKEN in group_id or PLACEHOLDER_TOKEN in artifact_id:
            raise UnsafeRewrite(f"{location}: cannot resolve {group_id}:{artifact_id}")

        ga_key = f"{group_id}:{artifact_id}"
        new_version = versions.get(ga_key)
        if new_version is None or resolve_property(current, properties) == new_version:
            continue
        planned.append((version_elem, VersionChange(location, ga_key, current, new_version)))

    for version_elem, change in planned:
        version_elem.text = change.new_version
        logger.debug("Updated %s %s from %s to %s", change.location, change.ga_key,
                     change.old_version, change.new_version)
    return [change for _, change in planned]


def rewrite_pom(pom_path: Path | str, versions: dict[str, str], write: bool = True,
                logger: logging.Logger = module_logger) -> list[VersionChange]:
    """Align one POM file; the file is rewritten only when some version changed."""
    doc = read_pom_document(pom_path)
    changes = update_versions(doc.root, versions, logger=logger)
    if changes and write:
        with open(pom_path, 'w', encoding='utf-8') as f:
            f.write(serialize_pom(doc))
    return changes


def rewrite_dependencies(aggregator_root: Path | str, coordinates: Iterable[MavenGAV], modules: Iterable[str],
                         write: bool = True, logger: logging.Logger = module_logger) -> RewriteResult:
    """Rewrite <module>/pom.xml under aggregator_root for each module.

    Missing POMs are skipped, POMs the XML rewriter will not touch are listed
    in `unresolved_modules` for rewrite_with_maven, unreadable or unwritable
    POMs end up in `errors`. Nothing stops at the first failure.
    """
    result = RewriteResult()
    versions = versions_by_artifact(coordinates)
    if not versions:
        return result

    logger.info("Rewriting child pom dependencies using direct XML editing...")
    for module in modules:
        pom = Path(aggregator_root) / module / 'pom.xml'
        if not pom.is_file():
            logger.warning("Skipping %s: pom.xml not found", module)
            result.skipped_modules.append(module)
            continue
        try:
            changes = rewrite_pom(pom, versions, write=write, logger=logger)
        except UnsafeRewrite as e:
            logger.warning("%s requires Maven fallback: %s", module, e)
            result.unresolved_modules.append(module)
            continue
        except (ET.ParseError, ValueError, OSError) as e:
            logger.error("Failed to update %s: %s", module, e)
            result.errors.append((module, str(e)))
            continue
        if changes:
            result.rewritten_modules.append(module)
            result.changes[module] = changes
            logger.info("Updated %d dependencies in %s", len(changes), module)
        else:
            logger.debug("No updates needed for %s", module)
    return result


async def rewrite_with_maven(aggregator_root: Path | str, coordinates: Iterable[MavenGAV], modules: Iterable[str],
                             runner: Runner = run_process, timeout: float | None = MVN_TIMEOUT_SECONDS,
                             logger: logging.Logger = module_logger) -> RewriteResult:
    """Fallback: let versions-maven-plugin set each coordinate's version, module by module.

    A coordinate that does not apply to a module is not an error. One Maven run
    at a time, since every run for a module edits the same file.
    """
    result = RewriteResult()
    coordinates = list(coordinates)
    modules = list(modules)
    for module in modules:
        module_dir = Path(aggregator_root) / module
        updated = False
        for gav in coordinates:
            try:
                updated = await use_dep_version(module_dir, gav, runner=runner, timeout=timeout) or updated
            except (MavenEvaluationError, ProcessError) as e:
                logger.warning("Could not update %s in %s: %s", gav.ga_key, module, e)
        if updated:
            result.rewritten_modules.append(module)
            logger.info("Updated dependencies in %s with Maven", module)
    cleanup_backup_poms(aggregator_root, modules)
    return result


def read_aggregator(aggregator_root: Path | str) -> tuple[list[str], list[MavenGAV]]:
    """<modules> and complete dependencyManagement coordinates of an aggregator pom.xml."""
    root = read_pom(str(Path(aggregator_root) / 'pom.xml'))
    qn = get_qn_lambda(root)
    modules_elem = root.find(qn('modules'))
    modules = []
    if modules_elem is not None:
        modules = [m.text.strip() for m in modules_elem.findall(qn('module')) if m.text and m.text.strip()]
    coordinates = []
    for dep in _deps_of(root.find(qn('dependencyManagement')), qn):
        values = [child_text(dep, qn, local) for local in ('groupId', 'artifactId', 'version')]
        if MavenGAV.is_complete(*values):
            coordinates.append(MavenGAV(*values))
    return modules, coordinates


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Align module dependency versions with an aggregator pom.xml's dependencyManagement")
    p.add_argument('aggregator', help='directory holding the aggregator pom.xml')
    p.add_argument('--module', '-m', nargs='+', metavar='MODULE',
                   help='module directories to rewrite (default: the aggregator\'s <modules>)')
    p.add_argument('--write', '-w', action='store_true', help='persist changes (otherwise show a dry-run summary)')
    p.add_argument('--maven-fallback', action='store_true',
                   help='run versions:use-dep-version for POMs the XML rewriter cannot handle (needs --write)')
    p.add_argument('--mvn-timeout', type=float, default=MVN_TIMEOUT_SECONDS,
                   help='seconds before a single Maven invocation is abandoned')
    p.add_argument('--verbose', '-v', action='store_true', help='log every version change')
    return p.parse_args(argv)


def main(argv=None):
    """Main entry point. Accepts argv (list of strings) for programmatic invocation."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    aggregator_root = Path(args.aggregator)
    try:
        modules, coordinates = read_aggregator(aggregator_root)
    except (ET.ParseError, OSError) as e:
        print(f"Error: cannot read aggregator POM in {aggregator_root}: {e}", file=sys.stderr)
        sys.exit(1)
    if args.module:
        modules = args.module

    result = rewrite_dependencies(aggregator_root, coordinates, modules, write=args.write)
    if args.maven_fallback and args.write and result.unresolved_modules:
        fallback = asyncio.run(rewrite_with_maven(aggregator_root, coordinates, result.unresolved_modules,
                                                  timeout=args.mvn_timeout))
        result.rewritten_modules.extend(fallback.rewritten_modules)

    verb = 'Updated' if args.write else 'Dry-run: would update'
    for module in result.rewritten_modules:
        print(f"{verb} {module}")
        for change in result.changes.get(module, []):
            print(f"  {change.location} {change.ga_key} : {change.old_version} -> {change.new_version}")
    for module in result.unresolved_modules:
        print(f"Needs Maven fallback: {module}")
    for module, error in result.errors:
        print(f"Error: {module}: {error}", file=sys.stderr)
    if not result.rewritten_modules:
        print("No dependency versions needed updating.")
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
