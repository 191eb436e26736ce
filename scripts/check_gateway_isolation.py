#!/usr/bin/env python3
"""Gateway isolation validation script.

Enforces the architectural rule that core/, types/, and utils/ directories
stay independent of the messaging gateway implementations. Only gateway/
may talk HTTP, and only the service composition root may import gateway
modules.

This script scans for:
- Imports of the HTTP client library (aiohttp) outside gateway/
- Imports from push_dispatch.gateway outside the composition root

Exit codes:
    0: No violations found (clean)
    1: Violations detected (architectural rule broken)
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Final

# ANSI color codes for terminal output
RED: Final[str] = "\033[91m"
GREEN: Final[str] = "\033[92m"
YELLOW: Final[str] = "\033[93m"
RESET: Final[str] = "\033[0m"

# Directories that must remain gateway-agnostic
PROTECTED_DIRS: Final[tuple[str, ...]] = ("core", "types", "utils")

# Files allowed to wire concrete gateways, relative to the package root
COMPOSITION_ROOTS: Final[frozenset[str]] = frozenset({"core/service.py"})

HTTP_IMPORT_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*(?:import\s+aiohttp\b|from\s+aiohttp\b)")

GATEWAY_IMPORT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^\s*(?:from\s+push_dispatch\.gateway\b|import\s+push_dispatch\.gateway\b)"
)


def check_file(file_path: Path, *, allow_gateway_imports: bool) -> list[tuple[int, str]]:
    """Check a single Python file for gateway isolation violations.

    Args:
        file_path: Path to the Python file to check.
        allow_gateway_imports: Whether the file is a composition root.

    Returns:
        List of (line_number, violation_description) tuples.
        Empty list if no violations found.
    """
    violations: list[tuple[int, str]] = []

    try:
        lines = file_path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        print(f"{YELLOW}Warning: Could not read {file_path}: {e}{RESET}", file=sys.stderr)
        return violations

    for line_num, line in enumerate(lines, start=1):
        if HTTP_IMPORT_PATTERN.search(line):
            violations.append((line_num, f"HTTP client import outside gateway/: {line.strip()}"))

        if not allow_gateway_imports and GATEWAY_IMPORT_PATTERN.search(line):
            violations.append((line_num, f"Gateway import outside composition root: {line.strip()}"))

    return violations


def scan_directory(package_path: Path, protected_dir: str) -> dict[Path, list[tuple[int, str]]]:
    """Scan a protected directory for violations.

    Args:
        package_path: Root path of the push_dispatch package.
        protected_dir: Name of protected directory (core, types, or utils).

    Returns:
        Dictionary mapping file paths to their violations.
    """
    dir_path = package_path / protected_dir
    if not dir_path.exists():
        print(f"{YELLOW}Warning: Protected directory {dir_path} does not exist{RESET}", file=sys.stderr)
        return {}

    violations_by_file: dict[Path, list[tuple[int, str]]] = {}
    for py_file in dir_path.rglob("*.py"):
        if "__pycache__" in py_file.parts:
            continue

        relative = py_file.relative_to(package_path).as_posix()
        file_violations = check_file(py_file, allow_gateway_imports=relative in COMPOSITION_ROOTS)
        if file_violations:
            violations_by_file[py_file] = file_violations

    return violations_by_file


def main() -> int:
    """Main entry point for gateway isolation check.

    Returns:
        Exit code: 0 if no violations, 1 if violations found.
    """
    project_root = Path(__file__).parent.parent
    package_path = project_root / "src" / "push_dispatch"

    if not package_path.exists():
        print(f"{RED}Error: Could not find src/push_dispatch directory{RESET}", file=sys.stderr)
        return 1

    print("Checking gateway isolation in core, types, and utils modules...")
    print(f"Scanning: {package_path}\n")

    all_violations: dict[Path, list[tuple[int, str]]] = {}
    for protected_dir in PROTECTED_DIRS:
        all_violations.update(scan_directory(package_path, protected_dir))

    if not all_violations:
        print(f"{GREEN}✓ No gateway isolation violations found!{RESET}")
        return 0

    total_violations = sum(len(v) for v in all_violations.values())
    print(f"{RED}✗ Found {total_violations} gateway isolation violations:{RESET}\n")

    for file_path, violations in sorted(all_violations.items()):
        print(f"{RED}{file_path.relative_to(project_root)}{RESET}")
        for line_num, description in violations:
            print(f"  {line_num}: {description}")
        print()

    print(f"{RED}Gateway isolation check failed!{RESET}")
    print("\nMove HTTP and vendor-specific code to the gateway/ package.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
