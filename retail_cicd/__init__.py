"""Retail Store CI/CD — selective image builds and Helm chart updates."""

__version__ = "0.1.0"
