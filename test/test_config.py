#!/usr/bin/env python3
"""
test/test_config.py
Configuration Management Tests for the Topic Clustering Engine
"""

import pytest
import os
import sys
import tempfile
import yaml
import time

# Add parent directory to path to import modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config import ConfigManager, configure_argument_parser, ConfigurationError


class TestConfigManager:
    """Test suite for ConfigManager class."""

    def setup_method(self):
        """Setup test environment."""
        self.start_time = time.time()
        self.temp_files = []

    def teardown_method(self):
        """Cleanup and timing."""
        for path in self.temp_files:
            if os.path.exists(path):
                os.remove(path)
        execution_time = time.time() - self.start_time
        print(f"\n⏱️  Test execution time: {execution_time:.3f}s")

    def write_config(self, content):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump(content, f)
        self.temp_files.append(f.name)
        return f.name

    def test_default_config_loading(self):
        """Test loading default configuration."""
        print("\n🧪 Testing default configuration loading...")

        config = ConfigManager()

        assert config.get_kmeans_config()['max_k'] == 8
        assert config.get_hdbscan_config()['min_cluster_size'] == 3
        assert config.get_louvain_config()['resolution'] == 1.0
        assert config.get_semantic_config()['min_similarity'] == 0.7
        assert config.get_strategy_config()['small_dataset_threshold'] == 8
        assert config.get_themes_config()['min_cluster_size'] == 2
        assert config.get_quality_config()['min_silhouette'] == 0.3
        assert config.get_options()['seed'] == 42
        assert config.get_results_dir() == 'results'

        print("✅ Default configuration loaded successfully")

    def test_yaml_config_loading(self):
        """Test loading configuration from a YAML file."""
        print("\n🧪 Testing YAML configuration loading...")

        path = self.write_config({
            'input_file': 'articles.jsonl',
            'results_dir': 'out',
            'kmeans': {'max_k': 5},
            'quality': {'block_on_failure': True},
        })
        config = ConfigManager(path)

        base_dir = os.path.dirname(os.path.abspath(path))
        assert config.get_input_file_path() == os.path.join(base_dir, 'articles.jsonl')
        assert config.get_results_dir() == os.path.join(base_dir, 'out')
        assert config.get_kmeans_config()['max_k'] == 5
        # untouched defaults survive the merge
        assert config.get_kmeans_config()['min_k'] == 2
        assert config.get_quality_config()['block_on_failure'] is True

        print("✅ YAML configuration merged over defaults")

    def test_missing_required_parameter(self):
        path = self.write_config({'kmeans': {'max_k': 5}})
        with pytest.raises(ConfigurationError):
            ConfigManager(path)

    def test_missing_file(self):
        with pytest.raises(ConfigurationError):
            ConfigManager('/nonexistent/config.yaml')

    def test_range_validation(self):
        """Every invalid range is reported together."""
        print("\n🧪 Testing range validation...")

        path = self.write_config({
            'input_file': 'articles.jsonl',
            'kmeans': {'min_k': 5, 'max_k': 3},
            'hdbscan': {'min_cluster_size': 1},
            'louvain': {'min_similarity': 1.5, 'resolution': 0},
            'strategy': {'default': 'spectral'},
        })
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(path)

        message = str(exc_info.value)
        assert 'kmeans.max_k' in message
        assert 'hdbscan.min_cluster_size' in message
        assert 'louvain.min_similarity' in message
        assert 'louvain.resolution' in message
        assert 'strategy.default' in message

        print("✅ Invalid ranges reported")

    def test_cli_overrides(self):
        """Test command line argument merging."""
        print("\n🧪 Testing CLI overrides...")

        parser = configure_argument_parser()
        args = parser.parse_args([
            '--input', 'articles.json',
            '--seed', '7',
            '--strategy', 'hdbscan',
            '--log-level', 'debug',
            '--theme-aware',
        ])
        config = ConfigManager(cli_args=args)

        assert config.get_input_file_path() == 'articles.json'
        assert config.get_options()['seed'] == 7
        assert config.get_config_value('strategy.default') == 'hdbscan'
        assert config.get_logging_config()['level'] == 'DEBUG'
        for section in ('kmeans', 'hdbscan', 'louvain', 'semantic'):
            assert config.get_config_value(f'{section}.tag_aware') is True

        print("✅ CLI arguments merged")

    def test_dotted_cli_keys(self):
        config = ConfigManager(cli_args={'kmeans.max_k': 4, 'hdbscan.max_clusters': 10})
        assert config.get_config_value('kmeans.max_k') == 4
        assert config.get_config_value('hdbscan.max_clusters') == 10

    def test_config_value_access(self):
        print("\n🧪 Testing dotted access and updates...")

        config = ConfigManager()
        assert config.get_config_value('quality.grade_thresholds.A') == 0.5
        assert config.get_config_value('missing.key', 'fallback') == 'fallback'

        config.update_config_value('louvain.resolution', 1.5)
        assert config.get_louvain_config()['resolution'] == 1.5

        config.update_config({'kmeans': {'max_k': 6}})
        assert config.get_kmeans_config()['max_k'] == 6
        assert config.get_kmeans_config()['min_k'] == 2

        with pytest.raises(ConfigurationError):
            config.update_config({'kmeans': {'max_k': 0}})

        exported = config.as_dict()
        exported['kmeans']['max_k'] = 99
        assert config.get_kmeans_config()['max_k'] != 99

        print("✅ Configuration access working")


class TestArgumentParser:
    """Test suite for the command line parser."""

    def test_defaults(self):
        args = configure_argument_parser().parse_args([])
        assert args.config_file is None
        assert args.theme_aware is None
        assert args.compare is False

    def test_rejects_unknown_strategy(self):
        with pytest.raises(SystemExit):
            configure_argument_parser().parse_args(['--strategy', 'spectral'])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
