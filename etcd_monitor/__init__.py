"""Periodic etcd health checks reported to AWS CloudWatch."""

__version__ = "0.1.0"
