"""
Unit tests for repocurate.config module
"""
import unittest
import tempfile
import os
import shutil
import json
import logging
from pathlib import Path
from unittest.mock import patch

import yaml

from repocurate.config import (
    apply_env_overrides,
    configure_logging,
    get_config_path,
    get_default_config,
    load_config,
    merge_configs,
    save_config,
)


class ConfigTestCase(unittest.TestCase):
    """Runs each test with an empty HOME and no REPOCURATE_* variables."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        env = {k: v for k, v in os.environ.items() if not k.startswith('REPOCURATE_')}
        env['HOME'] = self.temp_dir
        self.env_patcher = patch.dict(os.environ, env, clear=True)
        self.env_patcher.start()
        self.config_dir = Path(self.temp_dir) / '.repocurate'

    def tearDown(self):
        self.env_patcher.stop()
        shutil.rmtree(self.temp_dir)


class TestConfigManagement(ConfigTestCase):
    """Test configuration management functionality"""

    def test_get_default_config(self):
        """Test default configuration structure"""
        config = get_default_config()

        for section in ('curation', 'oracle', 'workers', 'logging'):
            self.assertIn(section, config)

        self.assertEqual(config['curation']['subdirs'], ['linux-64', 'noarch'])
        self.assertEqual(config['curation']['ban_features'], ['pypy'])
        self.assertEqual(config['curation']['compatible_with'], ['python'])
        self.assertTrue(config['curation']['exclude_prerelease'])
        self.assertEqual(config['curation']['max_closure_passes'], 1000)
        self.assertIn('level', config['logging'])

    def test_load_config_no_file(self):
        """Test loading config when no file exists"""
        self.assertEqual(load_config(), get_default_config())

    def test_load_json_config(self):
        self.config_dir.mkdir()
        (self.config_dir / 'config.json').write_text(json.dumps({'curation': {'max_closure_passes': 50}}))

        config = load_config()
        self.assertEqual(config['curation']['max_closure_passes'], 50)
        # untouched defaults survive the merge
        self.assertEqual(config['curation']['ban_features'], ['pypy'])

    def test_load_yaml_config(self):
        self.config_dir.mkdir()
        (self.config_dir / 'config.yaml').write_text("oracle:\n  max_workers: 2\n")
        self.assertEqual(load_config()['oracle']['max_workers'], 2)

    def test_load_toml_config(self):
        path = Path(self.temp_dir) / 'custom.toml'
        path.write_text('[curation]\nchannel_alias = "https://mirror.example/cf/"\n')
        config = load_config(path)
        self.assertEqual(config['curation']['channel_alias'], 'https://mirror.example/cf/')

    def test_invalid_config_falls_back_to_defaults(self):
        self.config_dir.mkdir()
        (self.config_dir / 'config.json').write_text('{not json')
        with self.assertLogs('repocurate', level='ERROR'):
            config = load_config()
        self.assertEqual(config, get_default_config())

    def test_non_mapping_config_is_rejected(self):
        path = Path(self.temp_dir) / 'list.yaml'
        path.write_text('- a\n- b\n')
        with self.assertLogs('repocurate', level='ERROR'):
            self.assertEqual(load_config(path), get_default_config())

    def test_save_and_reload(self):
        config = get_default_config()
        config['workers']['max_workers'] = 16
        path = save_config(config)
        self.assertEqual(path, self.config_dir / 'config.json')
        self.assertEqual(load_config()['workers']['max_workers'], 16)

    def test_save_yaml(self):
        path = save_config({'curation': {'subdirs': ['noarch']}}, Path(self.temp_dir) / 'out.yaml')
        self.assertEqual(yaml.safe_load(path.read_text()), {'curation': {'subdirs': ['noarch']}})

    def test_save_toml(self):
        config = get_default_config()
        config['curation']['subdirs'] = ['osx-arm64', 'noarch']
        path = save_config(config, Path(self.temp_dir) / 'out.toml')
        self.assertEqual(path.suffix, '.toml')
        self.assertIn('[curation]', path.read_text())
        self.assertEqual(load_config(path), config)


class TestConfigPath(ConfigTestCase):

    def test_default_path(self):
        self.assertEqual(get_config_path(), self.config_dir / 'config.json')

    def test_env_variable_wins(self):
        path = Path(self.temp_dir) / 'elsewhere.yaml'
        path.write_text('workers:\n  max_workers: 1\n')
        with patch.dict(os.environ, {'REPOCURATE_CONFIG': str(path)}):
            self.assertEqual(get_config_path(), path)
            self.assertEqual(load_config()['workers']['max_workers'], 1)

    def test_missing_env_file_is_ignored(self):
        with patch.dict(os.environ, {'REPOCURATE_CONFIG': str(Path(self.temp_dir) / 'nope.json')}):
            self.assertEqual(get_config_path(), self.config_dir / 'config.json')

    def test_empty_files_are_skipped(self):
        self.config_dir.mkdir()
        (self.config_dir / 'config.json').write_text('')
        (self.config_dir / 'config.yaml').write_text('oracle:\n  max_rounds: 10\n')
        self.assertEqual(get_config_path(), self.config_dir / 'config.yaml')


class TestEnvOverrides(ConfigTestCase):
    """Test REPOCURATE_* environment overrides"""

    def test_int_override(self):
        with patch.dict(os.environ, {'REPOCURATE_CURATION_MAX_CLOSURE_PASSES': '25'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config['curation']['max_closure_passes'], 25)

    def test_bool_override(self):
        with patch.dict(os.environ, {'REPOCURATE_CURATION_EXCLUDE_PRERELEASE': 'false'}):
            config = apply_env_overrides(get_default_config())
        self.assertIs(config['curation']['exclude_prerelease'], False)

    def test_list_override(self):
        with patch.dict(os.environ, {'REPOCURATE_CURATION_BAN_FEATURES': 'pypy, debug'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config['curation']['ban_features'], ['pypy', 'debug'])

    def test_string_override(self):
        with patch.dict(os.environ, {'REPOCURATE_LOGGING_LEVEL': 'DEBUG'}):
            self.assertEqual(load_config()['logging']['level'], 'DEBUG')

    def test_unknown_keys_are_ignored(self):
        with patch.dict(os.environ, {'REPOCURATE_NOPE_VALUE': '1', 'REPOCURATE_CURATION': 'x'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config, get_default_config())

    def test_env_beats_file(self):
        self.config_dir.mkdir()
        (self.config_dir / 'config.json').write_text(json.dumps({'oracle': {'max_rounds': 5}}))
        with patch.dict(os.environ, {'REPOCURATE_ORACLE_MAX_ROUNDS': '7'}):
            self.assertEqual(load_config()['oracle']['max_rounds'], 7)


class TestMergeAndLogging(unittest.TestCase):

    def test_merge_configs_is_recursive(self):
        base = {'a': {'x': 1, 'y': 2}, 'b': [1]}
        merged = merge_configs(base, {'a': {'y': 3}, 'b': [2]})
        self.assertEqual(merged, {'a': {'x': 1, 'y': 3}, 'b': [2]})
        self.assertEqual(base['a']['y'], 2)

    def test_configure_logging_replaces_handlers(self):
        logger = configure_logging('DEBUG')
        configure_logging('warning')
        self.assertEqual(len(logger.handlers), 1)
        self.assertEqual(logger.level, logging.WARNING)
        self.assertFalse(logger.propagate)

    def test_configure_logging_unknown_level(self):
        self.assertEqual(configure_logging('LOUD').level, logging.INFO)


if __name__ == '__main__':
    unittest.main()
