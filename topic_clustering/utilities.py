import datetime
import logging
import os
import sys
import time
from collections import defaultdict

import numpy as np
import pandas as pd
import psutil

from .models import Document

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR
}


class Logger:
    """Application logger configured from the ``logging`` config section."""

    def __init__(self, config, name='topic_clustering'):
        """
        Initializes the logger with the specified configuration.

        Args:
            config: Configuration manager containing logging configuration
            name (str): Name of the logger to configure
        """
        self.logger = logging.getLogger(name)
        self.logger.handlers = []
        self.logger.propagate = False
        formatter = logging.Formatter(LOG_FORMAT)

        try:
            log_config = config.get_logging_config()
            level = LEVELS.get(str(log_config.get('level', 'INFO')).upper(), logging.INFO)
            handlers = self._build_handlers(log_config)
        except Exception as e:
            # Fall back to console logging at INFO
            level = logging.INFO
            handlers = [logging.StreamHandler(sys.stdout)]
            self._attach(handlers, level, formatter)
            self.logger.error(f"Failed to initialize logger with config: {str(e)}")
            return

        self._attach(handlers, level, formatter)
        self.logger.debug(f"Logger '{name}' initialized at level {logging.getLevelName(level)}")

    def _attach(self, handlers, level, formatter):
        self.logger.setLevel(level)
        for handler in handlers:
            handler.setLevel(level)
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    @staticmethod
    def _build_handlers(log_config):
        handlers = []
        if log_config.get('console_output', True):
            handlers.append(logging.StreamHandler(sys.stdout))

        log_file = log_config.get('log_file')
        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
        return handlers

    def info(self, message):
        self.logger.info(message)

    def warning(self, message):
        self.logger.warning(message)

    def error(self, message):
        self.logger.error(message)

    def debug(self, message):
        self.logger.debug(message)


class FileOperationUtilities:
    """Utilities for file operations."""

    @staticmethod
    def validate_file_path(file_path):
        """
        Validates that a file path exists.

        Raises:
            ValueError: If the file does not exist
        """
        if not file_path or not os.path.isfile(file_path):
            raise ValueError(f"File does not exist or is not a valid file: {file_path}")
        return True

    @staticmethod
    def create_directory_if_not_exists(directory_path):
        if directory_path and not os.path.exists(directory_path):
            os.makedirs(directory_path, exist_ok=True)
        return directory_path

    @staticmethod
    def load_documents(file_path):
        """
        Loads documents from a JSON array or JSON Lines file.

        Each record needs an ``id``; ``title``, ``body``, ``embedding`` and
        ``theme`` are optional.

        Args:
            file_path (str): Path to a .json or .jsonl file

        Returns:
            list: Document objects in file order
        """
        FileOperationUtilities.validate_file_path(file_path)
        lines = file_path.endswith('.jsonl')
        dataframe = pd.read_json(file_path, lines=lines, orient='records', dtype=False)
        if 'id' not in dataframe.columns:
            raise ValueError(f"Input file {file_path} has no 'id' column")

        documents = []
        for record in dataframe.to_dict(orient='records'):
            embedding = record.get('embedding')
            if not isinstance(embedding, (list, np.ndarray)):
                record['embedding'] = None
            documents.append(Document.from_dict(record))
        return documents


class PerformanceMonitor:
    """Per-phase timings and memory usage of a run."""

    def __init__(self):
        self.timers = {}
        self.memory_usage_records = []
        self.operation_durations = defaultdict(list)
        self.start_time = datetime.datetime.now()

    def _record_memory(self, operation):
        memory_info = psutil.Process(os.getpid()).memory_info()
        self.memory_usage_records.append({
            'timestamp': datetime.datetime.now().isoformat(),
            'operation': operation,
            'rss_mb': memory_info.rss / (1024 * 1024),
            'vms_mb': memory_info.vms / (1024 * 1024)
        })

    def start_timer(self, operation_name):
        self.timers[operation_name] = time.time()
        self._record_memory(f"start_{operation_name}")

    def stop_timer(self, operation_name):
        """
        Stops a timer.

        Returns:
            float: Duration in seconds or None if the timer was never started
        """
        if operation_name not in self.timers:
            return None

        duration = time.time() - self.timers.pop(operation_name)
        self.operation_durations[operation_name].append(duration)
        self._record_memory(f"end_{operation_name}")
        return duration

    def memory_usage(self):
        process = psutil.Process(os.getpid())
        memory_info = process.memory_info()
        return {
            'rss_mb': memory_info.rss / (1024 * 1024),
            'vms_mb': memory_info.vms / (1024 * 1024),
            'percent': process.memory_percent(),
            'timestamp': datetime.datetime.now().isoformat()
        }

    def report_performance(self):
        """
        Summarizes timings per operation plus current memory usage.

        Returns:
            dict: Performance report
        """
        operation_stats = {}
        for operation, durations in self.operation_durations.items():
            operation_stats[operation] = {
                'total_seconds': sum(durations),
                'avg_seconds': sum(durations) / len(durations),
                'min_seconds': min(durations),
                'max_seconds': max(durations),
                'count': len(durations)
            }

        return {
            'operations': operation_stats,
            'memory': self.memory_usage(),
            'overall_duration_seconds': (datetime.datetime.now() - self.start_time).total_seconds(),
            'generated_at': datetime.datetime.now().isoformat()
        }
