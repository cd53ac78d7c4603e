"""
Secret Watcher - Kubernetes Secret Expiry Monitor and Deployment Restarter

A Python application that watches Kubernetes secrets carrying an expiry
annotation, finds the workloads mounting expired secrets and rolls out a
restart of their deployments so pods pick up the rotated credential.
"""

__version__ = "1.0.0"
__author__ = "Secret Watcher Team"
