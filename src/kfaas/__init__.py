"""Provisioning pipeline for serverless services on Kubernetes."""

__version__ = "0.1.0"
