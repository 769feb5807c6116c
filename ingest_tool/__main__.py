#!/usr/bin/env python3
"""
Entry point for the ingestion CLI.

Run with: python -m ingest_tool
"""

from .cli import cli

if __name__ == '__main__':
    cli()
