#!/usr/bin/env python3
"""
Music Server Launcher
The single entry point for the server and its setup/inspection commands.
"""
# Gevent must patch before any other imports that use socket/threading (so the API can handle multiple requests concurrently).
from gevent import monkey
monkey.patch_all()

from shared.cli import cli


def main():
    cli()


if __name__ == '__main__':
    main()
