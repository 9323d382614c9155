"""
deployctl - Ship container releases to EC2 over SSM and verify they came up.

This package provides a CLI and a small library for pushing a compose
release to a single instance through SSM Run Command and confirming the
service is running and answering health checks.
"""

__version__ = "0.1.0"
