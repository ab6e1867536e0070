"""Tests for the compatibility stage and the default oracle."""

from unittest.mock import MagicMock

import pytest

from repocurate.domain import (
    CompatibilityOracle,
    MatchSpec,
    RemovalEntry,
    RemovalReason,
    RemovalSet,
    Selection,
    Unsatisfiable,
    parse_matchspec,
)
from repocurate.errors import OracleError
from repocurate.infra import ResolvelibOracle
from repocurate.services import CompatibilityService


def specs(*texts):
    return [parse_matchspec(text) for text in texts]


class TestResolvelibOracle:
    """Tests for ResolvelibOracle.solve."""

    def test_satisfies_protocol(self):
        assert isinstance(ResolvelibOracle(), CompatibilityOracle)

    def test_newest_candidate_first(self, record):
        pool = [record('python', '3.8.18', 'h0_0'), record('python', '3.11.6', 'h0_0')]
        result = ResolvelibOracle().solve(specs('python'), pool)
        assert isinstance(result, Selection)
        assert result.to_dict() == {'python': 'python-3.11.6-h0_0.conda'}

    def test_follows_depends_inside_pool(self, record):
        pool = [
            record('numpy', '1.21.0', 'py27_0', depends=['python 2.7.*']),
            record('python', '3.9.18', 'h2_1', 1),
        ]
        result = ResolvelibOracle().solve(specs('numpy', 'python'), pool)
        assert isinstance(result, Unsatisfiable)
        assert 'numpy' in result.reason

    def test_ignores_depends_outside_pool(self, record):
        pool = [record('app', '1.0', 'x_0', depends=['libfoo >=2', 'libbar >='])]
        assert isinstance(ResolvelibOracle().solve(specs('app'), pool), Selection)

    def test_unparsable_dependency_inside_pool(self, record):
        pool = [record('app', '1.0', 'x_0', depends=['lib >=']), record('lib', '1.0', 'x_0')]
        assert isinstance(ResolvelibOracle().solve(specs('app'), pool), Unsatisfiable)

    def test_backtracks_to_older_build(self, record):
        pool = [
            record('app', '2.0', 'x_0', depends=['lib >=2']),
            record('app', '1.0', 'x_0', depends=['lib']),
            record('lib', '1.0', 'x_0'),
        ]
        result = ResolvelibOracle().solve(specs('app'), pool)
        assert result.to_dict() == {'app': 'app-1.0-x_0.conda', 'lib': 'lib-1.0-x_0.conda'}

    def test_candidate_constrains_selected(self, record):
        pool = [record('pkg', '1.0', 'x_0', constrains=['python <3']), record('python', '3.9.18', 'h0_0')]
        assert isinstance(ResolvelibOracle().solve(specs('pkg', 'python'), pool), Unsatisfiable)

    def test_selected_constrains_candidate(self, record):
        pool = [
            record('python', '3.9.18', 'h0_0', constrains=['pypy <0']),
            record('pypy', '7.3', 'x_0'),
        ]
        assert isinstance(ResolvelibOracle().solve(specs('python', 'pypy'), pool), Unsatisfiable)
        assert isinstance(ResolvelibOracle().solve(specs('python'), pool), Selection)

    def test_requested_name_without_candidates(self, record):
        result = ResolvelibOracle().solve(specs('ruby'), [record('python', '3.9.18', 'h0_0')])
        assert isinstance(result, Unsatisfiable)
        assert result.reason == 'no candidates for ruby'
        assert result.conflicts == ('ruby',)

    def test_round_budget(self, record):
        pool = [record('python', '3.11.6', 'h0_0'), record('python', '3.8.18', 'h0_0')]
        with pytest.raises(OracleError):
            ResolvelibOracle(max_rounds=1).solve(specs('python <3.10'), pool)

    def test_two_anchors_with_many_builds(self, record):
        pool = [record('python', f'3.{minor}.{patch}', 'h0_0') for minor in range(6, 12) for patch in range(50)]
        pool += [record('openssl', f'{major}.{minor}.{patch}', 'h0_0')
                 for major in (1, 3) for minor in range(10) for patch in range(20)]
        app = record('app', '1.0', 'x_0', depends=['python >=3.9', 'openssl <1'])
        tool = record('tool', '1.0', 'x_0', depends=['python >=3.9,<3.10', 'openssl 1.*'])
        oracle = ResolvelibOracle()

        result = oracle.solve(specs('app', 'openssl', 'python'), [app] + pool)
        assert isinstance(result, Unsatisfiable)
        assert 'openssl <1' in result.conflicts

        result = oracle.solve(specs('tool', 'openssl', 'python'), [tool] + pool)
        assert result.to_dict() == {
            'openssl': 'openssl-1.9.19-h0_0.conda',
            'python': 'python-3.9.49-h0_0.conda',
            'tool': 'tool-1.0-x_0.conda',
        }


class TestCompatibilityService:
    """Tests for CompatibilityService.run."""

    @pytest.fixture
    def scenario(self, make_index, example_entries):
        index = make_index(linux=example_entries)
        removals = RemovalSet()
        for key in [('linux-64', 'python-2.7.18-h1_0.conda'), ('linux-64', 'python-3.9.18-h2_0.conda')]:
            removals.add(RemovalEntry.for_record(index.get(key), RemovalReason.POLICY_MISMATCH))
        return index, removals

    def test_removes_incompatible_records(self, scenario):
        index, removals = scenario
        service = CompatibilityService(ResolvelibOracle(), max_workers=2)
        added = service.run(index, removals, ['python'])
        assert [e.filename for e in added] == ['numpy-1.21.0-py27_0.conda']
        assert added[0].reason is RemovalReason.INCOMPATIBLE
        assert added[0].detail == 'cannot be installed with python'
        assert service.diagnostics == []

    def test_unrelated_records_are_not_queried(self, make_index, raw_record):
        index = make_index(linux=[raw_record('python', '3.9.18', 'h0_0'), raw_record('zlib', '1.3', 'h0_0')])
        service = CompatibilityService(ResolvelibOracle())
        assert service.run(index, RemovalSet(), ['python']) == []
        assert service.queries == 1

    def test_queries_are_memoized(self, make_index, raw_record):
        index = make_index(linux=[
            raw_record('python', '3.9.18', 'h0_0'),
            raw_record('six', '1.15.0', 'py_0', depends=['python >=3']),
            raw_record('six', '1.16.0', 'py_0', depends=['python >=3']),
            raw_record('attrs', '23.1.0', 'py_0', depends=['python >=3']),
        ])
        service = CompatibilityService(ResolvelibOracle())
        service.run(index, RemovalSet(), ['python'])
        # anchor check, six once, attrs once
        assert service.queries == 3
        assert service.cache_hits == 1

    def test_anchor_constrains_distinguish_versions(self, make_index, raw_record):
        index = make_index(linux=[
            raw_record('python', '3.9.18', 'h0_0', constrains=['pypy >=7.3']),
            raw_record('pypy', '7.2', 'x_0'),
            raw_record('pypy', '7.3', 'x_0'),
        ])
        removals = RemovalSet()
        added = CompatibilityService(ResolvelibOracle()).run(index, removals, ['python'])
        assert [e.filename for e in added] == ['pypy-7.2-x_0.conda']

    def test_missing_anchor(self, scenario):
        index, removals = scenario
        service = CompatibilityService(ResolvelibOracle())
        added = service.run(index, removals, ['ruby', 'python'])
        assert len(added) == 1
        assert [(d.kind, d.subject) for d in service.diagnostics] == [('missing-anchor', 'ruby')]

    def test_no_surviving_anchor(self, scenario):
        index, removals = scenario
        oracle = MagicMock()
        service = CompatibilityService(oracle)
        assert service.run(index, removals, ['ruby']) == []
        oracle.solve.assert_not_called()

    def test_anchors_not_jointly_installable(self, make_index, raw_record):
        index = make_index(linux=[
            raw_record('python', '3.9.18', 'h0_0'),
            raw_record('legacy', '1.0', 'x_0', depends=['python <3']),
            raw_record('six', '1.16.0', 'py_0', depends=['python']),
        ])
        service = CompatibilityService(ResolvelibOracle())
        removals = RemovalSet()
        assert service.run(index, removals, ['python', 'legacy']) == []
        assert len(removals) == 0
        assert service.diagnostics[0].kind == 'anchors-unsatisfiable'
        assert service.queries == 1

    def test_two_anchors_with_many_builds(self, make_index, raw_record):
        pythons = [raw_record('python', f'3.{minor}.{patch}', 'h0_0') for minor in range(6, 12) for patch in range(50)]
        openssls = [raw_record('openssl', f'{major}.{minor}.{patch}', 'h0_0')
                    for major in (1, 3) for minor in range(10) for patch in range(20)]
        index = make_index(linux=pythons + openssls + [
            raw_record('app', '1.0', 'x_0', depends=['python >=3.9', 'openssl <1']),
            raw_record('tool', '1.0', 'x_0', depends=['python >=3.9', 'openssl >=3']),
        ])
        service = CompatibilityService(ResolvelibOracle(), max_workers=2)
        added = service.run(index, RemovalSet(), ['python', 'openssl'])
        assert [e.filename for e in added] == ['app-1.0-x_0.conda']
        assert service.diagnostics == []

    def test_removed_records_are_not_candidates(self, scenario):
        index, removals = scenario
        oracle = MagicMock()
        oracle.solve.return_value = Selection({})
        CompatibilityService(oracle).run(index, removals, ['python'])
        for call in oracle.solve.call_args_list:
            requested, pool = call.args
            assert all(r.key not in removals for r in pool)
            assert all(isinstance(spec, MatchSpec) for spec in requested)

    def test_oracle_error_propagates(self, scenario):
        index, removals = scenario
        oracle = MagicMock()
        oracle.solve.side_effect = OracleError("solver crashed")
        before = removals.snapshot()
        with pytest.raises(OracleError, match="solver crashed"):
            CompatibilityService(oracle).run(index, removals, ['python'])
        assert removals.snapshot() == before

    def test_unexpected_exception_is_wrapped(self, scenario):
        index, removals = scenario
        oracle = MagicMock()
        oracle.solve.side_effect = RuntimeError("boom")
        with pytest.raises(OracleError, match="boom"):
            CompatibilityService(oracle).run(index, removals, ['python'])

    def test_missing_result_is_an_error(self, scenario):
        index, removals = scenario
        oracle = MagicMock()
        oracle.solve.return_value = None
        with pytest.raises(OracleError):
            CompatibilityService(oracle).run(index, removals, ['python'])
