#!/usr/bin/env python3
"""Scripted CLI for integration testing.

This script plays back a list of steps, writing to stdout/stderr with
controlled timing so tests can exercise the idle timeout deterministically.

Usage:
    python chatty_cli.py [--ignore-term] STEP [STEP ...]

Steps:
    out:TEXT      write TEXT + LF to stdout
    err:TEXT      write TEXT + LF to stderr
    raw:TEXT      write TEXT to stdout as-is; \\r, \\n and \\t escapes are decoded
    bytes:N       write N bytes of "x" to stdout without a terminator
    sleep:SECS    sleep for SECS seconds
    pid           write "pid=<pid>" to stdout
    cwd           write the working directory to stdout
    closeout      close stdout
    exit:CODE     exit immediately with CODE

Arguments:
    --ignore-term: Ignore SIGTERM so the caller has to escalate to SIGKILL
"""

from __future__ import annotations

import argparse
import os
import signal
import sys
import time
from typing import NoReturn


def write(stream, text: str) -> None:
    stream.write(text)
    stream.flush()


def run_step(step: str) -> None:
    kind, _, value = step.partition(":")

    if kind == "out":
        write(sys.stdout, value + "\n")
    elif kind == "err":
        write(sys.stderr, value + "\n")
    elif kind == "raw":
        text = value.replace("\\r", "\r").replace("\\n", "\n").replace("\\t", "\t")
        write(sys.stdout, text)
    elif kind == "bytes":
        write(sys.stdout, "x" * int(value))
    elif kind == "sleep":
        time.sleep(float(value))
    elif kind == "pid":
        write(sys.stdout, f"pid={os.getpid()}\n")
    elif kind == "cwd":
        write(sys.stdout, os.getcwd() + "\n")
    elif kind == "closeout":
        sys.stdout.flush()
        os.close(sys.stdout.fileno())
    elif kind == "exit":
        sys.stderr.flush()
        os._exit(int(value))
    else:
        raise SystemExit(f"unknown step: {step}")


def main() -> NoReturn:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Scripted CLI for testing")
    parser.add_argument("--ignore-term", action="store_true", help="Ignore SIGTERM")
    parser.add_argument("steps", nargs="*", help="Steps to play back")

    args = parser.parse_args()

    if args.ignore_term:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    for step in args.steps:
        run_step(step)

    sys.stderr.flush()
    # os._exit so a closed stdout does not raise during interpreter shutdown
    os._exit(0)


if __name__ == "__main__":
    main()
