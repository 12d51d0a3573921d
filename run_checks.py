#!/usr/bin/env python3
"""
Run the formatting, lint, type and test checks for LeetStack.

With no arguments every check runs. Pass check names to run a subset:

    ./run_checks.py lint types
    ./run_checks.py --fix format
"""

import argparse
import subprocess
import sys
from typing import Dict, List, Tuple

GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"
YELLOW = "\033[93m"
CYAN = "\033[96m"

SOURCE_DIRS = ["leetstack", "config"]
TEST_DIR = "tests"


def build_checks(fix: bool, coverage: bool) -> Dict[str, List[List[str]]]:
    """Map each check name to the commands it runs."""
    format_flag = [] if fix else ["--check"]
    pytest_command = ["pytest", TEST_DIR]
    if coverage:
        pytest_command += [f"--cov={name}" for name in SOURCE_DIRS]
        pytest_command += ["--cov-report=term", "--cov-report=html"]

    return {
        "format": [
            ["black", *format_flag, *SOURCE_DIRS, TEST_DIR],
            ["isort", *format_flag, *SOURCE_DIRS, TEST_DIR],
        ],
        "lint": [["flake8", "--max-line-length=100", *SOURCE_DIRS, TEST_DIR]],
        "types": [["mypy", "--ignore-missing-imports", *SOURCE_DIRS]],
        "tests": [pytest_command],
    }


def run_command(command: List[str]) -> Tuple[bool, str]:
    """Run a command and return (success, combined output)."""
    print(f"{CYAN}$ {' '.join(command)}{RESET}")
    try:
        output = subprocess.check_output(command, stderr=subprocess.STDOUT)
        return True, output.decode("utf-8")
    except FileNotFoundError:
        return False, f"{command[0]} is not installed (pip install -e '.[dev,test]')"
    except subprocess.CalledProcessError as e:
        return False, e.output.decode("utf-8")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run code quality checks and tests")
    parser.add_argument(
        "checks",
        nargs="*",
        help="Checks to run: format, lint, types, tests (default: all)",
    )
    parser.add_argument("--fix", action="store_true", help="Reformat instead of checking format")
    parser.add_argument("--no-cov", action="store_true", help="Skip the coverage report")
    args = parser.parse_args()

    checks = build_checks(fix=args.fix, coverage=not args.no_cov)
    selected = args.checks or list(checks)
    unknown = [name for name in selected if name not in checks]
    if unknown:
        parser.error(f"unknown check(s): {', '.join(unknown)}")

    failures = []
    for name in selected:
        for command in checks[name]:
            success, output = run_command(command)
            if success:
                print(f"{GREEN}✓ {name}{RESET}")
            else:
                print(f"{RED}✗ {name}{RESET}")
                failures.append((name, output))

    print("\n" + "=" * 50)
    if not failures:
        print(f"{GREEN}All checks passed: {', '.join(selected)}{RESET}")
        return 0

    print(f"{YELLOW}DETAILS OF FAILED CHECKS:{RESET}")
    for name, output in failures:
        print(f"\n{CYAN}{name} output:{RESET}")
        print(output)
    return 1


if __name__ == "__main__":
    sys.exit(main())
