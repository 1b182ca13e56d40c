"""Logging utilities for NVIDIA Media Setup

Everything goes to the console as colored, level-tagged lines. Nothing is
written to a log file.
"""

import os
import sys


class Colors:
    """ANSI color codes for terminal output"""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[1;31m'
    GREEN = '\033[1;32m'
    YELLOW = '\033[1;33m'
    BLUE = '\033[1;34m'
    CYAN = '\033[1;36m'


def colors_enabled() -> bool:
    """Colors are off when NO_COLOR is set or stdout is not a terminal."""
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def _paint(color: str, text: str) -> str:
    if not colors_enabled():
        return text
    return f"{color}{text}{Colors.RESET}"


def log_info(message):
    """Log info message in green"""
    print(_paint(Colors.GREEN, f"[INFO]  {message}"))


def log_warn(message):
    """Log warning message in yellow"""
    print(_paint(Colors.YELLOW, f"[WARN]  {message}"))


def log_error(message):
    """Log error message in red"""
    print(_paint(Colors.RED, f"[ERROR] {message}"))


def log_prompt(message):
    """Log prompt message in cyan, leaving the cursor on the same line"""
    print(_paint(Colors.CYAN, f"[INPUT] {message}"), end='', flush=True)


def log_step(message):
    """Log step message in blue with newline before"""
    print("\n" + _paint(Colors.BLUE, f"[STEP]  {message}"))


def log_success(message):
    """Log success message in bold green"""
    print(_paint(Colors.BOLD + Colors.GREEN, f"✓ {message}"))
