"""Build the aggregator pom.xml: modules plus a shared dependencyManagement block."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable, Optional

import requests

from maven_gav import MavenGAV, dedupe_coordinates
from pom_utils import MAVEN_NS

logger = logging.getLogger(__name__)

XSI_NS = 'http://www.w3.org/2001/XMLSchema-instance'
SCHEMA_LOCATION = f'{MAVEN_NS} http://maven.apache.org/xsd/maven-4.0.0.xsd'
MODEL_VERSION = '4.0.0'
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

MAVEN_CENTRAL_SEARCH_URL = 'https://search.maven.org/solrsearch/select'
USER_AGENT = 'pom-aggregator/1.0'


class PomWriteError(Exception):
    def __init__(self, path: Path, error: OSError):
        super().__init__(f"Failed to write {path}: {error}")
        self.path = path
        self.error = error


class ParentLookupError(Exception):
    """The latest version of a parent POM could not be fetched from Maven Central."""


def _qn(local: str) -> str:
    return f"{{{MAVEN_NS}}}{local}"


def _text_child(parent: ET.Element, local: str, text: str) -> ET.Element:
    elem = ET.SubElement(parent, _qn(local))
    elem.text = text
    return elem


def _gav_children(parent: ET.Element, gav: MavenGAV) -> None:
    _text_child(parent, 'groupId', gav.group_id)
    _text_child(parent, 'artifactId', gav.artifact_id)
    _text_child(parent, 'version', gav.version)


def synthesize(group_id: str, artifact_id: str, version: str, modules: Iterable[str],
               coordinates: Iterable[MavenGAV], parent: Optional[MavenGAV] = None,
               default_goal: Optional[str] = 'verify') -> str:
    """Render the aggregator POM as pretty-printed XML.

    Modules keep the order given; coordinates keep aggregation order with repeated
    group:artifact:version triples dropped. Identical input gives identical output.
    """
    ET.register_namespace('', MAVEN_NS)
    ET.register_namespace('xsi', XSI_NS)

    project = ET.Element(_qn('project'), {f'{{{XSI_NS}}}schemaLocation': SCHEMA_LOCATION})
    _text_child(project, 'modelVersion', MODEL_VERSION)
    if parent is not None:
        _gav_children(ET.SubElement(project, _qn('parent')), parent)
    _gav_children(project, MavenGAV(group_id, artifact_id, version))
    _text_child(project, 'packaging', 'pom')
    _text_child(project, 'name', f"{artifact_id} Aggregator POM")
    _text_child(project, 'description', 'Aggregator POM for multiple Maven repositories')

    modules_elem = ET.SubElement(project, _qn('modules'))
    for module in modules:
        _text_child(modules_elem, 'module', module)

    dependencies = ET.SubElement(ET.SubElement(project, _qn('dependencyManagement')), _qn('dependencies'))
    for gav in dedupe_coordinates(coordinates):
        _gav_children(ET.SubElement(dependencies, _qn('dependency')), gav)

    if default_goal:
        _text_child(ET.SubElement(project, _qn('build')), 'defaultGoal', default_goal)

    ET.indent(project, space='    ')
    return f"{XML_DECLARATION}\n{ET.tostring(project, encoding='unicode')}\n"


def write_pom(path: Path | str, xml_text: str) -> Path:
    """Write a POM as UTF-8; an OS failure becomes PomWriteError naming the path."""
    path = Path(path)
    try:
        with open(path, 'w', encoding='utf-8') as f:
            f.write(xml_text)
    except OSError as e:
        raise PomWriteError(path, e) from e
    return path


def fetch_latest_version(group_id: str, artifact_id: str, url: str = MAVEN_CENTRAL_SEARCH_URL,
                         timeout: float = 30.0) -> str:
    """Latest released version of group_id:artifact_id according to Maven Central search."""
    logger.info("Fetching latest %s:%s version from Maven Central...", group_id, artifact_id)
    params = {'q': f'g:{group_id} AND a:{artifact_id}', 'rows': 1, 'wt': 'json'}
    try:
        res = requests.get(url, params=params, headers={'User-Agent': USER_AGENT}, timeout=timeout)
    except requests.RequestException as e:
        raise ParentLookupError(f"Request failed: {e}") from e
    if res.status_code != 200:
        raise ParentLookupError(f"HTTP error! status: {res.status_code}")
    try:
        docs = res.json()['response']['docs']
    except (ValueError, KeyError, TypeError) as e:
        raise ParentLookupError(f"Failed to parse JSON response: {e}") from e
    latest = (docs[0].get('latestVersion') or docs[0].get('v')) if docs else None
    if not latest:
        raise ParentLookupError('Could not find latest version in Maven Central response')
    logger.info("Found latest %s:%s version: %s", group_id, artifact_id, latest)
    return latest
