"""
CLI entry point for running atomcache as a module.

Usage: python -m atomcache [OPTIONS] COMMAND [ARGS]...
"""

from atomcache.cli.main import cli

if __name__ == "__main__":
    cli()
