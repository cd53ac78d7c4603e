#!/usr/bin/env python3
"""
Kubernetes Secret Watcher - Main Application
"""

import sys
import time
import logging

from prometheus_client import start_http_server

from secret_watcher import __version__
from secret_watcher.config import config
from secret_watcher.kubernetes_client import ClientBootstrapError, KubernetesClient
from secret_watcher.logger import SecretWatcherLogger, setup_logging
from secret_watcher.secret_watcher import SecretWatcher


def watch_until_next_scan(k8s_client, watcher, cfg, sleep_fn=time.sleep, clock=time.monotonic):
    """Feed secret events to the watcher until the poll interval is used up.

    A failed or early-ended watch falls back to sleeping out the interval;
    the next scan re-lists every secret anyway.
    """
    logger = logging.getLogger('main')
    started = clock()
    try:
        for event_type, secret in k8s_client.watch_secrets(cfg.namespace_scope, cfg.poll_interval_seconds):
            watcher.handle_secret_event(event_type, secret)
    except Exception as e:
        logger.warning(f"Secret watch failed, falling back to polling: {e}")

    remaining = cfg.poll_interval_seconds - (clock() - started)
    if remaining > 0:
        sleep_fn(remaining)


def main(cfg=None, sleep_fn=time.sleep):
    """Main application entry point"""
    cfg = cfg or config
    setup_logging(cfg.log_level, cfg.log_format)
    logger = logging.getLogger('main')

    report_logger = SecretWatcherLogger()
    report_logger.log_startup(cfg.to_dict(), __version__)

    if cfg.mock_mode:
        logger.info("🔧 Running in MOCK MODE - no actual Kubernetes operations")

    try:
        k8s_client = KubernetesClient(
            use_mock=cfg.mock_mode,
            kubeconfig_path=cfg.kube_config_path,
            in_cluster=cfg.in_cluster,
            request_timeout=cfg.request_timeout_seconds,
        )
    except ClientBootstrapError as e:
        logger.error(f"Application failed to start: {e}")
        return 1

    if not cfg.mock_mode and not k8s_client.test_connection():
        logger.info("Continuing with limited functionality...")

    if cfg.metrics_port:
        start_http_server(cfg.metrics_port)
        logger.info(f"Serving Prometheus metrics on :{cfg.metrics_port}")

    watcher = SecretWatcher(k8s_client, cfg, report_logger=report_logger)
    logger.info("Secret Watcher initialized successfully")

    # Test mode - run once and exit (for local testing)
    if cfg.test_mode:
        logger.info("Running in test mode - single execution")
        watcher.run_scan()
        return 0

    logger.info(f"Starting main loop ({cfg.poll_interval_seconds} second intervals)")
    cycle_count = 0
    try:
        while True:
            cycle_count += 1
            logger.info(f"Starting scan cycle #{cycle_count}")
            watcher.run_scan()

            if cfg.watch_events:
                logger.info(f"Watching secrets for {cfg.poll_interval_seconds} seconds until next run...")
                watch_until_next_scan(k8s_client, watcher, cfg, sleep_fn)
            else:
                logger.info(f"Waiting {cfg.poll_interval_seconds} seconds until next run...")
                sleep_fn(cfg.poll_interval_seconds)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")

    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
