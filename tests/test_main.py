"""
Tests for the application entry point
"""

import os
import sys
from unittest.mock import Mock, patch

# Add the project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from secret_watcher import main as main_module
from secret_watcher.config import Config
from secret_watcher.kubernetes_client import ClientBootstrapError


def test_bootstrap_failure_exits_nonzero():
    with patch.object(main_module, "KubernetesClient", side_effect=ClientBootstrapError("no config")), \
            patch.object(main_module, "SecretWatcher") as watcher_cls:
        assert main_module.main(Config(test_mode=True)) == 1

    watcher_cls.assert_not_called()


def test_test_mode_runs_a_single_scan():
    with patch.object(main_module, "KubernetesClient") as client_cls, \
            patch.object(main_module, "SecretWatcher") as watcher_cls:
        assert main_module.main(Config(test_mode=True, namespace_scope="payments")) == 0

    client_cls.assert_called_once()
    assert client_cls.call_args[1]["use_mock"] is False
    watcher_cls.return_value.run_scan.assert_called_once_with()


def test_loop_runs_until_interrupted():
    sleep_fn = Mock(side_effect=[None, KeyboardInterrupt()])
    cfg = Config(test_mode=False, poll_interval_seconds=30)

    with patch.object(main_module, "KubernetesClient"), \
            patch.object(main_module, "SecretWatcher") as watcher_cls:
        assert main_module.main(cfg, sleep_fn=sleep_fn) == 0

    assert watcher_cls.return_value.run_scan.call_count == 2
    sleep_fn.assert_called_with(30)


def test_metrics_server_started_when_port_configured():
    with patch.object(main_module, "KubernetesClient"), \
            patch.object(main_module, "SecretWatcher"), \
            patch.object(main_module, "start_http_server") as start_http_server:
        main_module.main(Config(test_mode=True, metrics_port=9102))

    start_http_server.assert_called_once_with(9102)


def test_watch_events_are_fed_to_the_watcher_between_scans():
    k8s_client = Mock()
    k8s_client.watch_secrets.return_value = iter([("ADDED", "s1"), ("MODIFIED", "s2")])
    watcher = Mock()
    sleep_fn = Mock()
    clock = Mock(side_effect=[100.0, 112.5])

    main_module.watch_until_next_scan(k8s_client, watcher, Config(poll_interval_seconds=30, namespace_scope="payments"),
                                      sleep_fn, clock)

    k8s_client.watch_secrets.assert_called_once_with("payments", 30)
    assert [c[0] for c in watcher.handle_secret_event.call_args_list] == [("ADDED", "s1"), ("MODIFIED", "s2")]
    sleep_fn.assert_called_once_with(17.5)


def test_failed_watch_falls_back_to_sleeping():
    k8s_client = Mock()
    k8s_client.watch_secrets.side_effect = ConnectionError("refused")
    sleep_fn = Mock()

    main_module.watch_until_next_scan(k8s_client, Mock(), Config(poll_interval_seconds=30), sleep_fn,
                                      Mock(side_effect=[0.0, 1.0]))

    sleep_fn.assert_called_once_with(29.0)


def test_watch_that_used_up_the_interval_does_not_sleep():
    k8s_client = Mock()
    k8s_client.watch_secrets.return_value = iter([])
    sleep_fn = Mock()

    main_module.watch_until_next_scan(k8s_client, Mock(), Config(poll_interval_seconds=30), sleep_fn,
                                      Mock(side_effect=[0.0, 30.0]))

    sleep_fn.assert_not_called()


def test_loop_watches_instead_of_sleeping_when_enabled():
    cfg = Config(test_mode=False, watch_events=True, poll_interval_seconds=30)

    with patch.object(main_module, "KubernetesClient"), \
            patch.object(main_module, "SecretWatcher") as watcher_cls, \
            patch.object(main_module, "watch_until_next_scan", side_effect=[None, KeyboardInterrupt()]) as watch_fn:
        assert main_module.main(cfg, sleep_fn=Mock()) == 0

    assert watcher_cls.return_value.run_scan.call_count == 2
    assert watch_fn.call_count == 2
