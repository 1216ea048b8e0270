#!/usr/bin/env python3
"""
System Monitoring Module

Synchronous snapshots of process memory and CPU usage, logged around
long-running operations such as training a chain on large corpora.
"""

import os
import time
import platform
import psutil
from datetime import datetime


class ResourceMonitor:
    """
    Takes resource usage snapshots and logs them with elapsed time for the
    operation being tracked. No background thread is started; a snapshot is
    taken whenever start(), log_progress() or stop() is called.
    """

    def __init__(self, logger):
        """
        Initialize the resource monitor.

        Args:
            logger: Logger instance for recording resource metrics
        """
        self.logger = logger
        self.process = psutil.Process(os.getpid())
        self.total_system_memory_mb = psutil.virtual_memory().total / (1024 * 1024)

        self.current_operation = None
        self.operation_start_time = None

    def get_memory_usage(self):
        """
        Get current process memory usage.

        Returns:
            dict: current_mb, percent_used (of system memory) and
            system_percent_used
        """
        current_memory_mb = self.process.memory_info().rss / (1024 * 1024)
        return {
            "current_mb": current_memory_mb,
            "percent_used": (current_memory_mb / self.total_system_memory_mb) * 100,
            "system_percent_used": psutil.virtual_memory().percent
        }

    def get_resource_usage(self):
        """
        Get resource usage statistics.

        Returns:
            dict: Resource usage metrics for memory, CPU and the process
        """
        return {
            "timestamp": datetime.now().isoformat(),
            "memory": self.get_memory_usage(),
            "cpu": {
                # Percent since the previous call on this process object
                "process_percent": self.process.cpu_percent(interval=None),
                "cores": psutil.cpu_count()
            },
            "platform": platform.platform(),
            "process_id": os.getpid()
        }

    def start(self, operation_name=None):
        """
        Begin tracking an operation and log the initial resource usage.

        Args:
            operation_name (str, optional): Name of the operation being monitored
        """
        self.current_operation = operation_name
        self.operation_start_time = time.time()

        self.logger.info(f"Resource monitoring started for operation: {operation_name}", extra={
            "metrics": self.get_resource_usage(),
            "operation": operation_name
        })

    def log_progress(self, message, extra_metrics=None):
        """
        Log progress of the tracked operation with current resource metrics.

        Args:
            message (str): Progress message to log
            extra_metrics (dict, optional): Additional metrics to include in the log
        """
        metrics = {"system_resources": self.get_resource_usage()}
        if extra_metrics:
            metrics.update(extra_metrics)

        if self.operation_start_time:
            metrics["elapsed_time"] = time.time() - self.operation_start_time

        self.logger.info(message, extra={
            "metrics": metrics,
            "operation": self.current_operation
        })

    def stop(self):
        """
        Stop tracking and log the final resource usage and duration.

        Returns:
            float or None: Duration of the operation in seconds, None if
            start() was never called
        """
        if self.operation_start_time is None:
            return None

        duration = time.time() - self.operation_start_time
        metrics = self.get_resource_usage()
        metrics["duration"] = duration

        self.logger.info("Resource monitoring stopped", extra={
            "metrics": metrics,
            "operation": self.current_operation
        })

        self.current_operation = None
        self.operation_start_time = None
        return duration
