"""
Module entrypoint.

Run with: python3 -m aws_resource_list [options] [region] <service>
"""
import sys

from aws_resource_list.cli.main import main


if __name__ == "__main__":
    sys.exit(main())
