"""
Command-line entry point for aws-resource-list.
"""
