import sys
import asyncio
import json
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

import pytest

import module_discovery as md


def write_pom(directory: Path, artifact_id: str, packaging: str = 'jar', modules=()) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    module_xml = ''.join(f'<module>{m}</module>' for m in modules)
    (directory / 'pom.xml').write_text(f"""<project xmlns="http://maven.apache.org/POM/4.0.0">
    <groupId>org.example</groupId>
    <artifactId>{artifact_id}</artifactId>
    <version>1.0</version>
    <packaging>{packaging}</packaging>
    <modules>{module_xml}</modules>
</project>
""", encoding='utf-8')
    return directory / 'pom.xml'


@pytest.mark.parametrize('module_dir, module, expected', [
    ('', 'core', 'core/pom.xml'),
    ('', './core/', 'core/pom.xml'),
    ('parent', '../sibling', 'sibling/pom.xml'),
    ('a/b', 'c', 'a/b/c/pom.xml'),
    ('core', '..', 'pom.xml'),
])
def test_module_pom_path(module_dir, module, expected):
    assert md.module_pom_path(module_dir, module) == expected


def test_no_root_pom_is_empty(tmp_path):
    result = asyncio.run(md.discover_modules(tmp_path))
    assert result.pom_paths == []
    assert result.warnings == []


def test_nested_modules_breadth_first(tmp_path):
    write_pom(tmp_path, 'root', 'pom', ['a', 'b'])
    write_pom(tmp_path / 'a', 'a', 'pom', ['a1'])
    write_pom(tmp_path / 'a' / 'a1', 'a1')
    write_pom(tmp_path / 'b', 'b', 'bundle')

    result = asyncio.run(md.discover_modules(tmp_path))
    assert result.pom_paths == ['pom.xml', 'a/pom.xml', 'b/pom.xml', 'a/a1/pom.xml']
    assert result.descriptors['b/pom.xml'].packaging == 'bundle'
    assert result.descriptors['a/pom.xml'].modules == ('a1',)
    assert set(result.graph.edges) == {('pom.xml', 'a/pom.xml'), ('pom.xml', 'b/pom.xml'),
                                       ('a/pom.xml', 'a/a1/pom.xml')}
    assert result.warnings == []


def test_missing_module_is_a_warning(tmp_path):
    write_pom(tmp_path, 'root', 'pom', ['present', 'ghost'])
    write_pom(tmp_path / 'present', 'present')

    result = asyncio.run(md.discover_modules(tmp_path))
    assert result.pom_paths == ['pom.xml', 'present/pom.xml']
    assert result.warnings == ['Module ghost declared but POM not found at ghost/pom.xml']
    assert 'ghost/pom.xml' not in result.graph


def test_cycle_terminates_and_visits_once(tmp_path):
    write_pom(tmp_path, 'root', 'pom', ['a'])
    write_pom(tmp_path / 'a', 'a', 'pom', ['../b'])
    write_pom(tmp_path / 'b', 'b', 'pom', ['../a', '..'])

    result = asyncio.run(md.discover_modules(tmp_path))
    assert result.pom_paths == ['pom.xml', 'a/pom.xml', 'b/pom.xml']
    assert len(result.pom_paths) == len(set(result.pom_paths))
    assert result.graph.has_edge('b/pom.xml', 'a/pom.xml')
    assert result.graph.has_edge('b/pom.xml', 'pom.xml')


def test_module_declared_by_two_parents(tmp_path):
    write_pom(tmp_path, 'root', 'pom', ['a', 'b'])
    write_pom(tmp_path / 'a', 'a', 'pom', ['../shared'])
    write_pom(tmp_path / 'b', 'b', 'pom', ['../shared'])
    write_pom(tmp_path / 'shared', 'shared')

    result = asyncio.run(md.discover_modules(tmp_path))
    assert result.pom_paths.count('shared/pom.xml') == 1
    assert result.graph.in_degree('shared/pom.xml') == 2


def test_parallel_and_sequential_agree(tmp_path):
    write_pom(tmp_path, 'root', 'pom', [f'm{i}' for i in range(15)])
    for i in range(15):
        write_pom(tmp_path / f'm{i}', f'm{i}', 'pom' if i % 3 == 0 else 'jar', ['sub'] if i % 3 == 0 else [])
        if i % 3 == 0:
            write_pom(tmp_path / f'm{i}' / 'sub', f'm{i}-sub')

    parallel = asyncio.run(md.discover_modules(tmp_path, parallel=True, batch_width=4))
    sequential = asyncio.run(md.discover_modules(tmp_path, parallel=False))
    assert parallel.pom_paths == sequential.pom_paths
    assert parallel.descriptors == sequential.descriptors


def test_unreadable_module_pom_is_reported(tmp_path):
    write_pom(tmp_path, 'root', 'pom', ['broken'])
    (tmp_path / 'broken').mkdir()
    (tmp_path / 'broken' / 'pom.xml').write_text('<project><modules>', encoding='utf-8')

    result = asyncio.run(md.discover_modules(tmp_path))
    assert 'broken/pom.xml' in result.pom_paths
    assert result.warnings == ['Could not read modules from broken/pom.xml']
    # unreadable POMs fall back to Maven's default packaging
    assert result.descriptors['broken/pom.xml'].packaging == 'jar'


def test_graph_json_and_merge(tmp_path):
    write_pom(tmp_path / 'one', 'one', 'pom', ['core'])
    write_pom(tmp_path / 'one' / 'core', 'core')
    write_pom(tmp_path / 'two', 'two')
    one = asyncio.run(md.discover_modules(tmp_path / 'one'))
    two = asyncio.run(md.discover_modules(tmp_path / 'two'))

    merged = md.merge_module_graphs({'org/one': one.graph, 'org/two': two.graph})
    assert set(merged.nodes) == {'org/one/pom.xml', 'org/one/core/pom.xml', 'org/two/pom.xml'}
    assert merged.nodes['org/one/core/pom.xml']['repository'] == 'org/one'

    data = json.loads(md.module_graph_json(merged))
    assert {n['id'] for n in data['nodes']} == set(merged.nodes)
    assert data['edges'] == [{'source': 'org/one/pom.xml', 'target': 'org/one/core/pom.xml'}]
