"""Provision and converge Redis Enterprise databases against the cluster REST API."""

__version__ = "0.1.0"
