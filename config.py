import os
import yaml
import argparse
import copy
import logging


class ConfigurationError(Exception):
    """Exception raised for errors in the configuration."""
    pass


STRATEGY_CHOICES = ['auto', 'kmeans', 'hdbscan', 'louvain', 'semantic']


class ConfigManager:
    """
    Configuration manager for the topic clustering engine.

    Loads a YAML file on top of ``DEFAULT_CONFIG``, applies command line
    overrides, validates parameter ranges and gives access to each section.

    Attributes:
        config_file (str): Path to the configuration file
        config (dict): The loaded configuration
    """

    DEFAULT_CONFIG = {
        'kmeans': {
            'min_k': 2,
            'max_k': 8,
            'max_iterations': 100,
            'tolerance': 1e-6,
            'min_silhouette': 0.3,
            'use_optimal_k': True,
            'tag_aware': False
        },
        'hdbscan': {
            'min_cluster_size': 3,
            'min_samples': 1,
            'max_clusters': 50,
            'cluster_selection_method': 'eom',
            'cluster_selection_epsilon': 0.0,
            'allow_single_cluster': False,
            'tag_aware': False
        },
        'louvain': {
            'resolution': 1.0,
            'min_similarity': 0.3,
            'max_neighbors': 10,
            'min_cluster_size': 2,
            'search_workers': 4,
            'search_timeout': None,
            'tag_aware': False
        },
        'semantic': {
            'min_similarity': 0.7,
            'max_neighbors': 5,
            'min_cluster_size': 2,
            'search_workers': 4,
            'search_timeout': None,
            'tag_aware': False
        },
        'strategy': {
            'default': 'auto',
            'small_dataset_threshold': 8,
            'large_dataset_threshold': 15,
            'diversity_threshold': 0.6,
            'draw_margin': 0.05
        },
        'themes': {
            'min_cluster_size': 2
        },
        'quality': {
            'gate_enabled': True,
            'min_silhouette': 0.3,
            'min_intra_cluster_similarity': 0.5,
            'min_inter_cluster_distance': 0.3,
            'block_on_failure': False,
            'grade_thresholds': {'A': 0.5, 'B': 0.4, 'C': 0.3}
        },
        'logging': {
            'level': 'INFO',
            'console_output': True,
            'log_file': None
        },
        'options': {
            'seed': 42
        },
        'results_dir': 'results'
    }

    # Required parameters when a configuration file drives a run
    REQUIRED_PARAMS = [
        'input_file'
    ]

    def __init__(self, config_file=None, cli_args=None):
        """
        Initializes the configuration manager.

        Args:
            config_file (str, optional): Path to the YAML configuration file.
            cli_args (argparse.Namespace or dict, optional): Command line arguments.
        """
        self.config_file = config_file
        self.cli_args = cli_args
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        self.logger = logging.getLogger(__name__)

        try:
            if config_file:
                self.load_config()
                self.validate_config()
            elif cli_args:
                self._merge_cli_args()
                self.validate_ranges()
        except Exception as e:
            if not isinstance(e, ConfigurationError):
                raise ConfigurationError(f"Configuration error: {str(e)}") from e
            raise

    def load_config(self):
        """
        Loads the configuration file, merges it over the defaults, then
        applies CLI arguments and resolves relative paths.

        Returns:
            dict: The loaded and merged configuration

        Raises:
            FileNotFoundError: If the configuration file is not found
            ConfigurationError: If the configuration file cannot be parsed
        """
        try:
            if not os.path.exists(self.config_file):
                raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

            with open(self.config_file, 'r', encoding='utf-8') as file:
                file_config = yaml.safe_load(file)

            if not file_config:
                raise ConfigurationError("Configuration file is empty")

            self._deep_merge(self.config, file_config)

            if self.cli_args:
                self._merge_cli_args()

            self._resolve_paths()

            self.logger.debug(f"Configuration loaded from {self.config_file}")
            return self.config

        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {str(e)}") from e

    def _deep_merge(self, base_dict, override_dict):
        """
        Deep merges override_dict into base_dict in place.

        Args:
            base_dict (dict): Base dictionary to merge into
            override_dict (dict): Dictionary with values to override
        """
        if not isinstance(override_dict, dict):
            return

        for key, value in override_dict.items():
            if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = copy.deepcopy(value)

    def _merge_cli_args(self):
        """
        Merges command line arguments into the configuration.

        Known flags map onto their sections; any other key is treated as a
        dotted path (e.g. 'kmeans.max_k').
        """
        cli_dict = vars(self.cli_args) if hasattr(self.cli_args, '__dict__') else self.cli_args

        for key, value in cli_dict.items():
            if value is None:
                continue

            if key == 'log_level':
                self._set_nested_config(['logging', 'level'], value.upper())
            elif key == 'seed':
                self._set_nested_config(['options', 'seed'], value)
            elif key == 'strategy':
                self._set_nested_config(['strategy', 'default'], value)
            elif key == 'theme_aware':
                if value:
                    for section in ('kmeans', 'hdbscan', 'louvain', 'semantic'):
                        self._set_nested_config([section, 'tag_aware'], True)
            elif key in ('config_file', 'compare', 'export_config'):
                continue
            elif '.' in key:
                self._set_nested_config(key.split('.'), value)
            else:
                self.config[key] = value

    def _set_nested_config(self, key_parts, value):
        current = self.config
        for part in key_parts[:-1]:
            if part not in current or not isinstance(current[part], dict):
                current[part] = {}
            current = current[part]
        current[key_parts[-1]] = value

    def _resolve_paths(self):
        """Resolves relative paths against the configuration file's directory."""
        base_dir = os.path.dirname(os.path.abspath(self.config_file)) if self.config_file else os.getcwd()

        for path_key in ['input_file', 'results_dir']:
            path = self.config.get(path_key)
            if path and not os.path.isabs(path):
                self.config[path_key] = os.path.normpath(os.path.join(base_dir, path))

        log_file = self.config.get('logging', {}).get('log_file')
        if log_file and not os.path.isabs(log_file):
            self.config['logging']['log_file'] = os.path.normpath(os.path.join(base_dir, log_file))

    def get_input_file_path(self):
        return self.config.get('input_file')

    def get_results_dir(self):
        return self.config.get('results_dir')

    def get_kmeans_config(self):
        """
        Gets the K-means configuration.

        Returns:
            dict: K-means configuration
        """
        return self.config.get('kmeans', {})

    def get_hdbscan_config(self):
        """
        Gets the HDBSCAN configuration.

        Returns:
            dict: HDBSCAN configuration
        """
        return self.config.get('hdbscan', {})

    def get_louvain_config(self):
        return self.config.get('louvain', {})

    def get_semantic_config(self):
        return self.config.get('semantic', {})

    def get_strategy_config(self):
        """
        Gets the strategy selection configuration.

        Returns:
            dict: Strategy configuration
        """
        return self.config.get('strategy', {})

    def get_themes_config(self):
        return self.config.get('themes', {})

    def get_quality_config(self):
        """
        Gets the quality evaluation and gate configuration.

        Returns:
            dict: Quality configuration
        """
        return self.config.get('quality', {})

    def get_logging_config(self):
        """
        Gets logging configuration.

        Returns:
            dict: Logging configuration
        """
        return self.config.get('logging', {})

    def get_options(self):
        """
        Gets miscellaneous options.

        Returns:
            dict: Miscellaneous options
        """
        return self.config.get('options', {})

    def get_config_value(self, key_path, default=None):
        """
        Gets a configuration value using a dotted key path.

        Args:
            key_path (str): Dotted path to the value (e.g., 'kmeans.max_k')
            default: Value returned if the key is not found

        Returns:
            The configuration value or the default if not found
        """
        value = self.config
        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def update_config(self, updates):
        """
        Deep merges updates into the configuration and re-validates ranges.

        Args:
            updates (dict): Dictionary with updates to apply

        Returns:
            ConfigManager: Self for method chaining
        """
        self._deep_merge(self.config, updates)
        self.validate_ranges()
        return self

    def update_config_value(self, key_path, value):
        """
        Updates a single configuration value using a dotted key path.

        Returns:
            ConfigManager: Self for method chaining
        """
        self._set_nested_config(key_path.split('.'), value)
        return self

    def as_dict(self):
        return copy.deepcopy(self.config)

    def validate_config(self):
        """
        Validates required parameters and parameter ranges.

        Raises:
            ConfigurationError: Listing every problem found
        """
        if not self.config:
            raise ConfigurationError("Configuration is empty or not loaded")

        missing_params = [p for p in self.REQUIRED_PARAMS if self.config.get(p) is None]
        if missing_params:
            raise ConfigurationError(f"Required parameters missing in configuration: {', '.join(missing_params)}")

        self.validate_ranges()
        return True

    def validate_ranges(self):
        """Checks every clustering parameter against its allowed range."""
        errors = []

        kmeans = self.get_kmeans_config()
        min_k = kmeans.get('min_k', 2)
        max_k = kmeans.get('max_k', 8)
        if not isinstance(min_k, int) or min_k < 1:
            errors.append("kmeans.min_k must be a positive integer")
        if not isinstance(max_k, int) or max_k < 1:
            errors.append("kmeans.max_k must be a positive integer")
        elif isinstance(min_k, int) and max_k < min_k:
            errors.append("kmeans.max_k must be greater than or equal to kmeans.min_k")
        if kmeans.get('max_iterations', 100) < 1:
            errors.append("kmeans.max_iterations must be at least 1")

        hdbscan_config = self.get_hdbscan_config()
        if hdbscan_config.get('min_cluster_size', 3) < 2:
            errors.append("hdbscan.min_cluster_size must be at least 2")
        if hdbscan_config.get('min_samples', 1) < 1:
            errors.append("hdbscan.min_samples must be at least 1")
        if hdbscan_config.get('cluster_selection_method', 'eom') not in ('eom', 'leaf'):
            errors.append("hdbscan.cluster_selection_method must be 'eom' or 'leaf'")

        for section in ('louvain', 'semantic'):
            graph_config = self.config.get(section, {})
            similarity = graph_config.get('min_similarity', 0.5)
            if not 0.0 <= similarity <= 1.0:
                errors.append(f"{section}.min_similarity must be between 0.0 and 1.0")
            if graph_config.get('max_neighbors', 1) < 1:
                errors.append(f"{section}.max_neighbors must be at least 1")
            if graph_config.get('min_cluster_size', 2) < 1:
                errors.append(f"{section}.min_cluster_size must be at least 1")
            if graph_config.get('search_workers', 1) < 1:
                errors.append(f"{section}.search_workers must be at least 1")
        if self.get_louvain_config().get('resolution', 1.0) <= 0:
            errors.append("louvain.resolution must be positive")

        strategy = self.get_strategy_config()
        if str(strategy.get('default', 'auto')).lower() not in STRATEGY_CHOICES:
            errors.append(f"strategy.default must be one of: {', '.join(STRATEGY_CHOICES)}")

        quality = self.get_quality_config()
        if not -1.0 <= quality.get('min_silhouette', 0.3) <= 1.0:
            errors.append("quality.min_silhouette must be between -1.0 and 1.0")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(errors))
        return True


def configure_argument_parser():
    """
    Configures an argument parser whose options map onto the configuration.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(description='Adaptive Topic Clustering Engine')

    parser.add_argument('--config', dest='config_file',
                        help='Path to the configuration file')

    parser.add_argument('--input', dest='input_file',
                        help='Path to the input documents (.json or .jsonl)')

    parser.add_argument('--results-dir', dest='results_dir',
                        help='Directory for cluster files and reports')

    parser.add_argument('--log-level', dest='log_level',
                        choices=['debug', 'info', 'warning', 'error'],
                        help='Logging level')

    parser.add_argument('--seed', dest='seed', type=int,
                        help='Random seed for reproducibility')

    parser.add_argument('--strategy', dest='strategy', choices=STRATEGY_CHOICES,
                        help='Clustering strategy (default: auto)')

    parser.add_argument('--theme-aware', dest='theme_aware', action='store_true', default=None,
                        help='Cluster within each theme separately')

    parser.add_argument('--compare', dest='compare', action='store_true',
                        help='Compare K-means and HDBSCAN instead of clustering')

    parser.add_argument('--export-config', dest='export_config',
                        help='Write the effective configuration to this YAML file')

    return parser
