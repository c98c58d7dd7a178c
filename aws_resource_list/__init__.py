"""
aws-resource-list - enumerate AWS resources by service and region.

Thin orchestration layer over the `aws` CLI: preflight checks, a fixed
catalog of listing operations, and an optional bounded fan-out across
every region.
"""

__version__ = "1.0.0"
