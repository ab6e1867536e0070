"""Tests for the closure engine."""

import pytest

from repocurate.domain import Policy, RemovalEntry, RemovalReason, RemovalSet, parse_matchspec
from repocurate.errors import ClosureNonConvergenceError
from repocurate.services import ClosureService, FilterService
from repocurate.services.closure_service import unsatisfied_dependencies


def remove(index, removals, name, reason=RemovalReason.POLICY_MISMATCH):
    for record in index.candidates(name):
        removals.add(RemovalEntry.for_record(record, reason))


@pytest.fixture
def chain(make_index, raw_record):
    """c -> b -> a"""
    return make_index(linux=[
        raw_record('a', '1.0', 'x_0'),
        raw_record('b', '1.0', 'x_0', depends=['a >=1']),
        raw_record('c', '1.0', 'x_0', depends=['b']),
    ])


class TestClosure:
    """Tests for ClosureService.run."""

    def test_example_scenario(self, make_index, example_entries):
        index = make_index(linux=example_entries)
        removals = RemovalSet()
        policy = Policy.build(allow_list={'python': [parse_matchspec('python >=3.9')]})
        FilterService(policy).run(index, removals)

        result = ClosureService().run(index, removals)

        assert result.passes == 2
        assert [e.filename for e in result.removed] == ['numpy-1.21.0-py27_0.conda']
        entry = removals.get(('linux-64', 'numpy-1.21.0-py27_0.conda'))
        assert entry.reason is RemovalReason.ORPHANED
        assert entry.detail == ("dependency python 2.7.* unsatisfiable after removal of "
                                "python-2.7.18-h1_0.conda")
        assert removals.get(('linux-64', 'python-2.7.18-h1_0.conda')).reason is RemovalReason.POLICY_MISMATCH
        assert removals.get(('linux-64', 'python-3.9.18-h2_0.conda')).reason is RemovalReason.SUPERSEDED
        assert ('linux-64', 'python-3.9.18-h2_1.conda') not in removals

    def test_chain_removed_one_pass_at_a_time(self, chain):
        removals = RemovalSet()
        remove(chain, removals, 'a')
        result = ClosureService().run(chain, removals)
        assert result.passes == 3
        assert [e.name for e in result.removed] == ['b', 'c']

    def test_scan_reads_snapshot_only(self, chain):
        removals = RemovalSet()
        remove(chain, removals, 'a')
        found = ClosureService().scan(chain, removals.snapshot())
        assert [e.name for e in found] == ['b']
        assert len(removals) == 1

    def test_nothing_to_do(self, chain):
        result = ClosureService().run(chain, RemovalSet())
        assert result.passes == 1
        assert result.removed == []

    def test_absent_package_counts_as_satisfied(self, make_index, raw_record):
        index = make_index(linux=[raw_record('a', '1.0', 'x_0', depends=['ghost >=1', '__glibc >=2.17'])])
        assert ClosureService().run(index, RemovalSet()).removed == []

    def test_unparsable_dependency_is_unsatisfiable(self, make_index, raw_record):
        index = make_index(linux=[raw_record('a', '1.0', 'x_0', depends=['python >='])])
        removals = RemovalSet()
        ClosureService().run(index, removals)
        assert removals.get(('linux-64', 'a-1.0-x_0.conda')).detail == 'dependency python >= unparsable'

    def test_unsatisfiable_without_removal(self, make_index, raw_record):
        index = make_index(linux=[
            raw_record('a', '1.0', 'x_0'),
            raw_record('b', '1.0', 'x_0', depends=['a >=2']),
        ])
        removals = RemovalSet()
        ClosureService().run(index, removals)
        assert removals.get(('linux-64', 'b-1.0-x_0.conda')).detail == 'dependency a >=2 unsatisfiable'

    def test_dependency_satisfied_from_other_subdir(self, make_index, raw_record):
        index = make_index(
            linux=[raw_record('app', '1.0', 'x_0', depends=['six'])],
            noarch=[raw_record('six', '1.16.0', 'pyh_0')],
        )
        assert ClosureService().run(index, RemovalSet()).removed == []

    def test_cycle_survives(self, make_index, raw_record):
        index = make_index(linux=[
            raw_record('x', '1.0', 'x_0', depends=['y']),
            raw_record('y', '1.0', 'x_0', depends=['x']),
        ])
        result = ClosureService().run(index, RemovalSet())
        assert result.removed == []

    def test_cycle_collapses(self, make_index, raw_record):
        index = make_index(linux=[
            raw_record('x', '1.0', 'x_0', depends=['y', 'z']),
            raw_record('y', '1.0', 'x_0', depends=['x']),
            raw_record('z', '1.0', 'x_0'),
        ])
        removals = RemovalSet()
        remove(index, removals, 'z')
        result = ClosureService().run(index, removals)
        assert [e.name for e in result.removed] == ['x', 'y']
        assert result.passes == 3

    def test_non_convergence(self, chain):
        removals = RemovalSet()
        remove(chain, removals, 'a')
        with pytest.raises(ClosureNonConvergenceError) as excinfo:
            ClosureService(max_passes=2).run(chain, removals)
        assert excinfo.value.passes == 2

    def test_invalid_pass_budget(self):
        with pytest.raises(ValueError):
            ClosureService(max_passes=0)


class TestClosureProperties:
    """Soundness and completeness of a converged closure."""

    @pytest.fixture
    def closed(self, make_index, raw_record):
        index = make_index(
            linux=[
                raw_record('python', '3.8.18', 'h0_0'),
                raw_record('python', '3.11.6', 'h0_0'),
                raw_record('numpy', '1.24.0', 'py38_0', depends=['python >=3.8,<3.9']),
                raw_record('numpy', '1.26.0', 'py311_0', depends=['python >=3.11,<3.12']),
                raw_record('scipy', '1.10.0', 'py38_0', depends=['numpy >=1.24,<1.25', 'python 3.8.*']),
                raw_record('pandas', '2.1.0', 'py311_0', depends=['numpy >=1.26', 'python 3.11.*']),
                raw_record('statsmodels', '0.14.0', 'py38_0', depends=['scipy', 'pandas']),
            ],
            noarch=[raw_record('seaborn', '0.13.0', 'pyhd_0', depends=['statsmodels', 'ghost'])],
        )
        removals = RemovalSet()
        remove(index, removals, 'python')
        result = ClosureService().run(index, removals)
        return index, removals, result

    def test_sound(self, closed):
        index, removals, _ = closed
        assert unsatisfied_dependencies(index, removals.snapshot()) == []

    def test_complete(self, closed):
        index, removals, result = closed
        snapshot = removals.snapshot()
        checker = ClosureService()
        for entry in result.removed:
            record = index.get(entry.key)
            restored = snapshot - {entry.key}
            assert any(checker.check_dependency(d, index, restored) is not None for d in record.depends)

    def test_everything_depending_on_python_goes(self, closed):
        index, removals, result = closed
        assert len(removals) == len(index)
        assert result.passes == 4
