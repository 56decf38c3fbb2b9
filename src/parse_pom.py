"""Read Maven coordinates, modules and packaging straight from pom.xml.

Nothing here invokes Maven. When a value cannot be settled by looking at the
XML alone (missing fields, `${...}` placeholders, unreadable files) the result
says so and the caller falls back to `mvn help:evaluate`.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

from maven_gav import PLACEHOLDER_TOKEN
from pom_utils import child_text, get_qn_lambda, local_name, read_pom

DEFAULT_PACKAGING = 'jar'

_SINGLE_PROPERTY = re.compile(r'^\$\{([^}]+)\}$')


@dataclass
class ParsePomResult:
    gav: dict[str, str] = field(default_factory=dict)
    needs_fallback: bool = False
    reason: str | None = None


@dataclass
class ModulesResult:
    modules: list[str] = field(default_factory=list)
    success: bool = True


def _read_project(pom_path: Path | str) -> ET.Element:
    root = read_pom(str(pom_path))
    if local_name(root) != 'project':
        raise ValueError('No project element found in POM')
    return root


def parse_for_gav(pom_path: Path | str) -> ParsePomResult:
    """Extract groupId/artifactId/version without invoking Maven.

    groupId and version fall back to the <parent> block when the project omits
    them; artifactId is never inherited. Never raises.
    """
    try:
        root = _read_project(pom_path)
    except ValueError as e:
        return ParsePomResult(needs_fallback=True, reason=str(e))
    except (ET.ParseError, OSError) as e:
        return ParsePomResult(needs_fallback=True, reason=f"XML parsing failed: {e}")

    qn = get_qn_lambda(root)
    parent = root.find(qn('parent'))

    gav: dict[str, str] = {}
    group_id = child_text(root, qn, 'groupId')
    version = child_text(root, qn, 'version')
    if parent is not None:
        group_id = group_id or child_text(parent, qn, 'groupId')
        version = version or child_text(parent, qn, 'version')
    artifact_id = child_text(root, qn, 'artifactId')

    for key, value in (('groupId', group_id), ('artifactId', artifact_id), ('version', version)):
        if value:
            gav[key] = value

    missing = [key for key in ('groupId', 'artifactId', 'version') if key not in gav]
    if missing:
        return ParsePomResult(gav=gav, needs_fallback=True,
                              reason=f"Missing coordinates: {' '.join(missing)}")

    if any(PLACEHOLDER_TOKEN in value for value in gav.values()):
        return ParsePomResult(gav=gav, needs_fallback=True,
                              reason='Contains property placeholders that need Maven resolution')

    return ParsePomResult(gav=gav)


def parse_for_modules(pom_path: Path | str) -> ModulesResult:
    """Ordered <modules><module> values; an absent <modules> block is an empty list."""
    try:
        root = _read_project(pom_path)
    except (ValueError, ET.ParseError, OSError):
        return ModulesResult(success=False)

    qn = get_qn_lambda(root)
    modules_elem = root.find(qn('modules'))
    if modules_elem is None:
        return ModulesResult()
    modules = [m.text.strip() for m in modules_elem.findall(qn('module')) if m.text and m.text.strip()]
    return ModulesResult(modules=modules)


def parse_for_packaging(pom_path: Path | str) -> str:
    """Declared <packaging>, or Maven's implicit 'jar' when absent or unreadable."""
    try:
        root = _read_project(pom_path)
    except (ValueError, ET.ParseError, OSError):
        return DEFAULT_PACKAGING
    return child_text(root, get_qn_lambda(root), 'packaging') or DEFAULT_PACKAGING


def read_properties(root: ET.Element) -> dict[str, str]:
    """<properties> of the project plus the project.* values Maven derives from the POM."""
    qn = get_qn_lambda(root)
    properties: dict[str, str] = {}
    props_elem = root.find(qn('properties'))
    if props_elem is not None:
        for child in props_elem:
            name = local_name(child)
            if name and child.text is not None:
                properties[name] = child.text.strip()

    parent = root.find(qn('parent'))
    parent_group = parent_version = None
    if parent is not None:
        parent_group = child_text(parent, qn, 'groupId')
        parent_version = child_text(parent, qn, 'version')
        if parent_group:
            properties.setdefault('project.parent.groupId', parent_group)
        if parent_version:
            properties.setdefault('project.parent.version', parent_version)

    derived = {
        'project.groupId': child_text(root, qn, 'groupId') or parent_group,
        'project.artifactId': child_text(root, qn, 'artifactId'),
        'project.version': child_text(root, qn, 'version') or parent_version,
    }
    for name, value in derived.items():
        if value:
            properties.setdefault(name, value)
            # Maven 2 style ${pom.version} still shows up in old POMs
            properties.setdefault('pom.' + name.split('.', 1)[1], value)
    return properties


def resolve_property(value: str | None, properties: dict[str, str], _depth: int = 0) -> str | None:
    """Resolve a value that is exactly one ``${name}`` reference.

    Chains like ``${a}`` -> ``${b}`` -> ``1.0`` are followed up to depth 10.
    Anything else (literal text, concatenations, unknown names) comes back unchanged.
    """
    if not value or _depth > 10:
        return value
    match = _SINGLE_PROPERTY.match(value.strip())
    if match is None:
        return value
    name = match.group(1)
    if name not in properties:
        return value
    resolved = properties[name]
    if PLACEHOLDER_TOKEN in resolved:
        return resolve_property(resolved, properties, _depth + 1)
    return resolved
