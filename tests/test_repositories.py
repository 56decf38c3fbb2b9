import sys
import json
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

import pytest

import repositories as rp


def make_repo(path: Path, pom=True):
    path.mkdir(parents=True, exist_ok=True)
    if pom:
        (path / 'pom.xml').write_text('<project/>', encoding='utf-8')
    return path


def test_scan_owner_repo_layout(tmp_path):
    make_repo(tmp_path / 'octo' / 'beta')
    make_repo(tmp_path / 'octo' / 'alpha')
    make_repo(tmp_path / 'octo' / 'docs', pom=False)
    make_repo(tmp_path / 'standalone')
    (tmp_path / 'pom.xml').write_text('<project/>', encoding='utf-8')

    scan = rp.scan_repositories(tmp_path)
    assert [r.relative_path for r in scan.repositories] == ['octo/alpha', 'octo/beta', 'standalone']
    assert scan.repositories[0].owner == 'octo'
    assert scan.repositories[0].name == 'alpha'
    assert [(s.relative_path, s.reason) for s in scan.skipped] == [('octo/docs', 'Missing pom.xml')]
    # octo, standalone, and the three directories below octo
    assert scan.total_scanned == 5


def test_scan_empty_directory(tmp_path):
    scan = rp.scan_repositories(tmp_path)
    assert scan.repositories == []
    assert scan.total_scanned == 0


def entry(path, name, owner='octo', valid=True, **extra):
    return {'name': name, 'owner': {'login': owner, 'type': 'User'}, 'path': str(path), 'valid': valid,
            'hasPom': True, **extra}


def test_parse_list_and_wrapped_object(tmp_path):
    data = [entry(tmp_path / 'octo' / 'a', 'a', fork=False)]
    parsed = rp.parse_repository_list(json.dumps(data))
    assert parsed[0].owner.login == 'octo'
    assert parsed[0].has_pom is True

    wrapped = rp.parse_repository_list(json.dumps({'validRepos': data, 'validCount': 1}))
    assert wrapped[0].name == 'a'


@pytest.mark.parametrize('text', ['not json', '[{"name": "a"}]', '{"validRepos": 3}'])
def test_parse_list_rejects_bad_input(text):
    with pytest.raises(rp.InvalidRepositoryInput):
        rp.parse_repository_list(text)


def test_repositories_from_list_filters_valid(tmp_path):
    good = make_repo(tmp_path / 'octo' / 'good')
    gone = make_repo(tmp_path / 'octo' / 'gone', pom=False)
    bad = make_repo(tmp_path / 'octo' / 'bad')
    entries = rp.parse_repository_list(json.dumps([
        entry(good, 'good'), entry(gone, 'gone'), entry(bad, 'bad', valid=False)]))

    scan = rp.repositories_from_list(entries)
    assert scan.scan_root == tmp_path.resolve()
    assert [r.relative_path for r in scan.repositories] == ['octo/good']
    assert [s.relative_path for s in scan.skipped] == ['octo/gone']
    assert scan.total_scanned == 2


def test_repositories_from_list_without_valid_entries(tmp_path):
    entries = rp.parse_repository_list(json.dumps([entry(tmp_path / 'x', 'x', valid=False)]))
    with pytest.raises(rp.InvalidRepositoryInput, match='No valid repositories'):
        rp.repositories_from_list(entries)
