"""Follow <modules> declarations from a repository's root POM to every reachable module POM.

The walk is breadth-first. Each round reads the whole frontier through
bounded_map, so with parallel=True up to `batch_width` POMs are read at once,
and the next round only starts when the current one is finished. Modules are
recorded as nodes of a networkx DiGraph keyed by their POM path relative to the
repository root, which makes a module reached twice (or a declaration cycle)
a no-op instead of another trip round the loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path

import networkx as nx

from concurrency import bounded_map
from parse_pom import parse_for_modules, parse_for_packaging

DISCOVERY_BATCH_WIDTH = 10
ROOT_POM = 'pom.xml'

module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PomDescriptor:
    relative_path: str
    packaging: str
    modules: tuple[str, ...] = ()


@dataclass
class DiscoveryResult:
    pom_paths: list[str] = field(default_factory=list)
    descriptors: dict[str, PomDescriptor] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    graph: nx.DiGraph = field(default_factory=nx.DiGraph)


@dataclass
class _PomScan:
    descriptor: PomDescriptor
    modules_ok: bool
    # (module name, child POM path relative to the repository root, exists)
    children: list[tuple[str, str, bool]]


def module_pom_path(module_dir: str, module: str) -> str:
    """POSIX path of a declared module's pom.xml relative to the repository root.

    './a', 'a/' and 'x/../a' all name the same module directory 'a'.
    """
    directory = posixpath.normpath(posixpath.join(module_dir or '.', module))
    if directory == '.':
        return ROOT_POM
    return posixpath.join(directory, ROOT_POM)


def _scan_pom(repo_root: Path, relative_path: str) -> _PomScan:
    pom = repo_root / relative_path
    modules_result = parse_for_modules(pom)
    packaging = parse_for_packaging(pom)
    module_dir = posixpath.dirname(relative_path)
    children = []
    for module in modules_result.modules:
        child = module_pom_path(module_dir, module)
        children.append((module, child, (repo_root / child).is_file()))
    descriptor = PomDescriptor(relative_path, packaging, tuple(modules_result.modules))
    return _PomScan(descriptor=descriptor, modules_ok=modules_result.success, children=children)


async def discover_modules(repo_root: Path | str, parallel: bool = True,
                           batch_width: int = DISCOVERY_BATCH_WIDTH,
                           logger: logging.Logger = module_logger) -> DiscoveryResult:
    """Enumerate every module POM transitively reachable from repo_root/pom.xml.

    A repository without a root pom.xml yields an empty result. A module that is
    declared but has no pom.xml on disk is reported in `warnings` and its branch
    ends there.
    """
    repo_root = Path(repo_root)
    result = DiscoveryResult()
    if not (repo_root / ROOT_POM).is_file():
        return result

    result.pom_paths.append(ROOT_POM)
    result.graph.add_node(ROOT_POM)
    frontier = [ROOT_POM]
    width = batch_width if parallel else 1

    async def _scan(relative_path: str) -> _PomScan:
        return await asyncio.to_thread(_scan_pom, repo_root, relative_path)

    while frontier:
        scans = await bounded_map(_scan, frontier, width)
        next_frontier = []
        for scan in scans:
            parent = scan.descriptor.relative_path
            result.descriptors[parent] = scan.descriptor
            result.graph.nodes[parent]['packaging'] = scan.descriptor.packaging
            if not scan.modules_ok:
                message = f"Could not read modules from {parent}"
                logger.warning(message)
                result.warnings.append(message)
                continue
            if scan.children:
                logger.info("Found %d modules in %s POM", len(scan.children), parent)
            for module, child, exists in scan.children:
                if not exists:
                    message = f"Module {module} declared but POM not found at {child}"
                    logger.warning(message)
                    result.warnings.append(message)
                    continue
                already_known = child in result.graph
                result.graph.add_edge(parent, child)
                if already_known:
                    continue
                result.pom_paths.append(child)
                next_frontier.append(child)
        frontier = next_frontier

    logger.info("Total POMs found in %s: %d", repo_root, len(result.pom_paths))
    return result


def merge_module_graphs(graphs: dict[str, nx.DiGraph]) -> nx.DiGraph:
    """One graph for several repositories, nodes prefixed with each repository's relative path."""
    merged = nx.DiGraph()
    for repo, graph in graphs.items():
        relabeled = nx.relabel_nodes(graph, lambda node, repo=repo: f"{repo}/{node}")
        nx.set_node_attributes(relabeled, repo, 'repository')
        merged = nx.compose(merged, relabeled)
    return merged


def module_graph_json(graph: nx.DiGraph) -> str:
    """JSON node-link representation of a module graph."""
    data = nx.readwrite.json_graph.node_link_data(graph, edges="edges")
    return json.dumps(data, indent=2)
