import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

import pytest

from maven_gav import MavenGAV, dedupe_coordinates, versions_by_artifact


def test_keys_and_str():
    gav = MavenGAV('io.liftwizard', 'liftwizard-bom', '2.1.34')
    assert gav.key == 'io.liftwizard:liftwizard-bom:2.1.34'
    assert gav.ga_key == 'io.liftwizard:liftwizard-bom'
    assert str(gav) == gav.key


def test_equality_is_by_value():
    assert MavenGAV('g', 'a', '1') == MavenGAV('g', 'a', '1')
    assert MavenGAV('g', 'a', '1') != MavenGAV('g', 'a', '2')
    assert len({MavenGAV('g', 'a', '1'), MavenGAV('g', 'a', '1')}) == 1


@pytest.mark.parametrize('values', [
    ('g', 'a', ''),
    ('g', None, '1'),
    ('  ', 'a', '1'),
    ('g', 'a', '${revision}'),
    ('${project.groupId}', 'a', '1'),
])
def test_is_complete_rejects_missing_or_placeholder(values):
    assert not MavenGAV.is_complete(*values)


def test_is_complete_accepts_literal_values():
    assert MavenGAV.is_complete('org.example', 'core', '1.0.0-SNAPSHOT')


def test_dedupe_keeps_first_occurrence_in_order():
    a1 = MavenGAV('g', 'a', '1')
    b1 = MavenGAV('g', 'b', '1')
    a2 = MavenGAV('g', 'a', '2')
    result = dedupe_coordinates([a1, b1, MavenGAV('g', 'a', '1'), a2, b1])
    assert result == [a1, b1, a2]
    assert result[0] is a1


def test_versions_by_artifact_first_version_wins():
    versions = versions_by_artifact([MavenGAV('g', 'a', '1'), MavenGAV('g', 'b', '3'), MavenGAV('g', 'a', '2')])
    assert versions == {'g:a': '1', 'g:b': '3'}
