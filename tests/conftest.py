"""Shared fixtures: builders for raw repodata, records and indexes."""

import logging

import pytest

from repocurate.config import get_default_config
from repocurate.domain import Section, Subdir, parse_record
from repocurate.services import load


def filename_for(raw, ext='.conda'):
    return f"{raw['name']}-{raw['version']}-{raw['build']}{ext}"


@pytest.fixture
def raw_record():
    """Factory for one raw repodata entry."""
    def _make(name, version, build, build_number=0, depends=(), constrains=(), **extra):
        raw = {
            'name': name,
            'version': version,
            'build': build,
            'build_number': build_number,
            'depends': list(depends),
            'constrains': list(constrains),
        }
        raw.update(extra)
        return raw
    return _make


@pytest.fixture
def repodata():
    """Factory for a repodata document from raw entries."""
    def _make(subdir, records=(), tarbz2=(), base_url=None, removed=None):
        info = {'subdir': subdir}
        if base_url is not None:
            info['base_url'] = base_url
        document = {
            'info': info,
            'packages': {filename_for(raw, '.tar.bz2'): raw for raw in tarbz2},
            'packages.conda': {filename_for(raw): raw for raw in records},
        }
        if removed is not None:
            document['removed'] = list(removed)
        return document
    return _make


@pytest.fixture
def make_index(repodata):
    """Factory for a RepositoryIndex over linux-64 and noarch entries."""
    def _make(linux=(), noarch=(), policy=None):
        return load({
            'noarch': repodata('noarch', noarch),
            'linux-64': repodata('linux-64', linux),
        }, policy)
    return _make


@pytest.fixture
def record(raw_record):
    """Factory for a parsed linux-64 PackageRecord."""
    def _make(name, version, build, build_number=0, depends=(), constrains=(), subdir='linux-64', **extra):
        raw = raw_record(name, version, build, build_number, depends, constrains, **extra)
        return parse_record(Subdir(subdir), filename_for(raw), raw, Section.CONDA)
    return _make


@pytest.fixture
def example_entries(raw_record):
    """python 2.7 / 3.9 builds and a numpy that needs python 2.7."""
    return [
        raw_record('python', '2.7.18', 'h1_0', 0),
        raw_record('python', '3.9.18', 'h2_0', 0),
        raw_record('python', '3.9.18', 'h2_1', 1),
        raw_record('numpy', '1.21.0', 'py27_0', 0, depends=['python 2.7.*']),
    ]


@pytest.fixture
def config():
    """Default configuration, independent of the user's config file."""
    return get_default_config()


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo configure_logging() calls made by CLI tests."""
    logger = logging.getLogger('repocurate')
    handlers, level, propagate = logger.handlers[:], logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
