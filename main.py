#!/usr/bin/env python3
"""
Main entry point for the topic clustering engine.

Loads documents with embeddings, clusters them with the adaptive strategy (or
an explicitly requested one), checks the result against the quality gate and
writes cluster files and a markdown report.
"""

import os
import sys
import time
import traceback
from datetime import datetime

import yaml

from config import ConfigManager, ConfigurationError, configure_argument_parser
from topic_clustering.evaluation import ClusterCoherenceEvaluator, ClusteringQualityGate, EvaluationReporter
from topic_clustering.exceptions import ClusteringError
from topic_clustering.search import InMemorySimilaritySearcher
from topic_clustering.strategy import AdaptiveClusterer
from topic_clustering.utilities import FileOperationUtilities, Logger, PerformanceMonitor


class ClusteringPipeline:
    """Pipeline for one clustering run."""

    def __init__(self, config_file=None, cli_args=None):
        """
        Initializes the clustering pipeline.

        Args:
            config_file: Path to the configuration file
            cli_args: Command line arguments
        """
        self.config_file = config_file
        self.cli_args = cli_args
        self.config = None
        self.logger = None
        self.performance_monitor = None
        self.reporter = None
        self.documents = []
        self.results = {}
        self.start_time = datetime.now()

    def setup(self):
        """Sets up configuration, logging and reporting."""
        self.config = ConfigManager(self.config_file, self.cli_args)
        self.logger = Logger(self.config).logger
        self.logger.info(f"Clustering pipeline setup started at {self.start_time}")

        self.performance_monitor = PerformanceMonitor()
        results_dir = FileOperationUtilities.create_directory_if_not_exists(self.config.get_results_dir())
        self.reporter = EvaluationReporter(self.config, self.logger, results_dir)
        return True

    def load_documents(self):
        input_file = self.config.get_input_file_path()
        if not input_file:
            raise ConfigurationError("No input file configured (use --input or input_file)")

        self.performance_monitor.start_timer('load_documents')
        self.documents = FileOperationUtilities.load_documents(input_file)
        duration = self.performance_monitor.stop_timer('load_documents')
        self.logger.info(f"Loaded {len(self.documents)} documents from {input_file} in {duration:.2f} seconds")
        return self.documents

    def run(self):
        """
        Runs the pipeline.

        Returns:
            bool: True if the run completed and passed a blocking quality gate
        """
        try:
            self.setup()
            self.load_documents()

            searcher = InMemorySimilaritySearcher(self.documents)
            clusterer = AdaptiveClusterer(self.config, self.logger, searcher=searcher)

            if self.cli_args is not None and getattr(self.cli_args, 'compare', False):
                return self.compare(clusterer)

            strategy = self.config.get_config_value('strategy.default', 'auto')
            self.performance_monitor.start_timer('clustering')
            clusters, analysis, used_strategy = clusterer.cluster_with_strategy(self.documents, strategy)
            self.performance_monitor.stop_timer('clustering')

            embeddings_by_id = {d.id: d.embedding for d in self.documents if d.has_embedding}
            gate = ClusteringQualityGate(self.config, self.logger)
            gate.validate(clusters, embeddings_by_id)
            coherence = gate.last_metrics
            if coherence is None:
                coherence = ClusterCoherenceEvaluator(self.config, self.logger).evaluate(clusters, embeddings_by_id)

            clustered = {i for c in clusters for i in c.document_ids}
            noise_ids = [i for i in embeddings_by_id if i not in clustered]

            self.results = {
                'strategy': used_strategy.value,
                'clusters': clusters,
                'analysis': analysis,
                'coherence': coherence,
            }
            self.reporter.save_clusters('topics', clusters, analysis, used_strategy.value, noise_ids)
            self.reporter.generate_report('topics', clusters, analysis, coherence,
                                          used_strategy.value, noise_count=len(noise_ids))

            self.logger.info(f"Performance: {self.performance_monitor.report_performance()['operations']}")
            return True

        except (ConfigurationError, ClusteringError, ValueError) as e:
            if self.logger:
                self.logger.error(f"Clustering pipeline failed: {str(e)}")
            else:
                print(f"Clustering pipeline failed: {str(e)}")
            return False

    def compare(self, clusterer):
        comparison = clusterer.compare_strategies(self.documents)
        report = comparison.format_report()
        print(report)

        report_path = os.path.join(self.config.get_results_dir(), 'strategy_comparison.txt')
        with open(report_path, 'w', encoding='utf-8') as f:
            f.write(report + '\n')
        self.logger.info(f"Strategy comparison saved: {report_path}")
        self.results = {'comparison': comparison}
        return True


def main():
    parser = configure_argument_parser()
    args = parser.parse_args()

    if not args.config_file and os.path.exists('config.yaml'):
        args.config_file = 'config.yaml'

    if not args.config_file and not args.input_file:
        print("Error: provide a configuration file with --config or an input file with --input.")
        return 1

    start_time = time.time()
    print(f"Starting clustering at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    try:
        pipeline = ClusteringPipeline(args.config_file, args)
        success = pipeline.run()

        if args.export_config and pipeline.config:
            with open(args.export_config, 'w', encoding='utf-8') as f:
                yaml.dump(pipeline.config.as_dict(), f, default_flow_style=False)
            print(f"Complete configuration exported to {args.export_config}")

        print(f"Clustering completed in {time.time() - start_time:.2f} seconds")
        print(f"Status: {'Success' if success else 'Failed'}")
        return 0 if success else 1

    except KeyboardInterrupt:
        print("\nProcess interrupted by user.")
        return 130
    except Exception as e:
        print(f"Error in main process: {str(e)}")
        print(traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
