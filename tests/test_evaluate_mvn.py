import sys
import asyncio
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

import pytest

import evaluate_mvn as ev
from maven_gav import MavenGAV
from mvn_runner import ProcessError, ProcessResult


PARENT_FAILURE = """[ERROR] [ERROR] Some problems were encountered while processing the POMs:
[FATAL] Non-resolvable parent POM for org.example:child:1.0: Could not find artifact org.example:parent:pom:1.0
[ERROR] -> [Help 1]
[ERROR] To see the full stack trace of the errors, re-run Maven with the -e switch."""


class FakeRunner:
    """Stands in for run_process: returns canned results and records the calls."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    async def __call__(self, command, args, timeout=None, check=True, cwd=None):
        self.calls.append((command, list(args), check))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        if check and result.exit_code != 0:
            raise ProcessError(f"Command failed (exit {result.exit_code})", result)
        return result


@pytest.mark.parametrize('text, expected', [
    (PARENT_FAILURE, ev.ResolutionFailure.PARENT_UNRESOLVABLE),
    ("'parent.relativePath' of POM org.example:child points at org.example:other",
     ev.ResolutionFailure.RELATIVE_PATH_BROKEN),
    ('Could not find artifact org.example:lib:jar:1.0 in central', ev.ResolutionFailure.ARTIFACT_NOT_FOUND),
    ('BUILD FAILURE: compilation error', ev.ResolutionFailure.GENERIC),
    ('', ev.ResolutionFailure.GENERIC),
])
def test_classify_mvn_error(text, expected):
    assert ev.classify_mvn_error(text) is expected


def test_only_generic_failures_are_reported_as_errors():
    assert ev.ResolutionFailure.PARENT_UNRESOLVABLE.is_skippable
    assert ev.ResolutionFailure.RELATIVE_PATH_BROKEN.is_skippable
    assert ev.ResolutionFailure.ARTIFACT_NOT_FOUND.is_skippable
    assert not ev.ResolutionFailure.GENERIC.is_skippable


def test_trim_error_block_drops_help_and_timestamps():
    text = "12:01:02,345 [ERROR] first line\n[ERROR] second\n[ERROR] -> [Help 1]\n[ERROR] ignored"
    assert ev._trim_error_block(text) == '[ERROR] first line\n[ERROR] second'


def test_get_attribute_returns_trimmed_stdout(monkeypatch):
    monkeypatch.setenv('MVN', '/opt/maven/bin/mvn')
    runner = FakeRunner([ProcessResult(0, 'org.example\n', '')])
    value = asyncio.run(ev.get_maven_project_attribute('repo/pom.xml', 'project.groupId', runner=runner))
    assert value == 'org.example'
    command, args, _ = runner.calls[0]
    assert command == '/opt/maven/bin/mvn'
    assert args == ['-f', 'repo/pom.xml', 'help:evaluate', '-Dexpression=project.groupId', '--quiet',
                    '-DforceStdout']


def test_get_attribute_classifies_process_failure():
    runner = FakeRunner([ProcessResult(1, '', PARENT_FAILURE)])
    with pytest.raises(ev.MavenEvaluationError) as excinfo:
        asyncio.run(ev.get_maven_project_attribute('pom.xml', 'project.version', runner=runner))
    assert excinfo.value.failure is ev.ResolutionFailure.PARENT_UNRESOLVABLE
    assert 'To see the full stack trace' not in str(excinfo.value)


def test_get_attribute_classifies_error_on_stdout_despite_jvm_warning():
    jvm_warning = 'WARNING: A terminally deprecated method in sun.misc.Unsafe has been called'
    runner = FakeRunner([ProcessResult(1, PARENT_FAILURE, jvm_warning)])
    with pytest.raises(ev.MavenEvaluationError) as excinfo:
        asyncio.run(ev.get_maven_project_attribute('pom.xml', 'project.groupId', runner=runner))
    assert excinfo.value.failure is ev.ResolutionFailure.PARENT_UNRESOLVABLE
    assert 'Non-resolvable parent POM' in str(excinfo.value)
    assert excinfo.value.failure.is_skippable


@pytest.mark.parametrize('stdout', ['', '   \n', 'null object or invalid expression'])
def test_get_attribute_rejects_empty_or_null_output(stdout):
    runner = FakeRunner([ProcessResult(0, stdout, '')])
    with pytest.raises(ev.MavenEvaluationError) as excinfo:
        asyncio.run(ev.get_maven_project_attribute('pom.xml', 'project.version', runner=runner))
    assert excinfo.value.failure is ev.ResolutionFailure.GENERIC


def test_get_attribute_timeout_is_generic_failure():
    runner = FakeRunner([ProcessError('Command timed out after 1s: mvn')])
    with pytest.raises(ev.MavenEvaluationError) as excinfo:
        asyncio.run(ev.get_maven_project_attribute('pom.xml', 'project.version', runner=runner, timeout=1))
    assert excinfo.value.failure is ev.ResolutionFailure.GENERIC
    assert 'timed out' in str(excinfo.value)


def test_validate_repo_without_pom(tmp_path):
    runner = FakeRunner([])
    assert asyncio.run(ev.validate_maven_repo(tmp_path, runner=runner)) == (False, 'Missing pom.xml')
    assert asyncio.run(ev.validate_maven_repo(tmp_path / 'absent', runner=runner)) == (False, 'Not a directory')
    assert runner.calls == []


def test_validate_repo_runs_effective_pom(tmp_path):
    (tmp_path / 'pom.xml').write_text('<project/>', encoding='utf-8')
    ok = FakeRunner([ProcessResult(0, '', '')])
    assert asyncio.run(ev.validate_maven_repo(tmp_path, runner=ok)) == (True, None)
    assert 'help:effective-pom' in ok.calls[0][1]

    failing = FakeRunner([ProcessResult(1, '', '[ERROR] Non-resolvable parent POM')])
    valid, reason = asyncio.run(ev.validate_maven_repo(tmp_path, runner=failing))
    assert not valid
    assert 'Non-resolvable parent POM' in reason


def test_use_dep_version_no_matching_dependency_is_not_an_error():
    runner = FakeRunner([ProcessResult(0, '[INFO] No matching dependencies found', '')])
    gav = MavenGAV('org.example', 'lib', '2.0')
    assert asyncio.run(ev.use_dep_version('repo/module', gav, runner=runner)) is False
    _, args, check = runner.calls[0]
    assert check is False
    assert '-Dincludes=org.example:lib' in args
    assert '-DdepVersion=2.0' in args


def test_use_dep_version_success_and_failure():
    gav = MavenGAV('org.example', 'lib', '2.0')
    assert asyncio.run(ev.use_dep_version('m', gav, runner=FakeRunner([ProcessResult(0, '', '')]))) is True
    with pytest.raises(ev.MavenEvaluationError):
        asyncio.run(ev.use_dep_version('m', gav, runner=FakeRunner([ProcessResult(1, '', '[ERROR] boom')])))


def test_cleanup_backup_poms(tmp_path):
    (tmp_path / 'a').mkdir()
    (tmp_path / 'b').mkdir()
    backup = tmp_path / 'a' / 'pom.xml.versionsBackup'
    backup.write_text('old', encoding='utf-8')
    removed = ev.cleanup_backup_poms(tmp_path, ['a', 'b'])
    assert removed == [backup]
    assert not backup.exists()
