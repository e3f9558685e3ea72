"""
CLI Utilities

Small helpers shared by the vmctl commands.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import click

from vmctl.exceptions import ValidationError


def read_ssh_key(value: Optional[str]) -> Optional[str]:
    """
    Resolve an ``--ssh-key`` option value.

    ``@path`` reads the key from a file; anything else is the key itself.

    Raises:
        ValidationError: If the referenced file cannot be read
    """
    if not value or not value.startswith("@"):
        return value
    path = Path(value[1:]).expanduser()
    try:
        return path.read_text().strip()
    except OSError as e:
        raise ValidationError(f"Cannot read SSH key file {path}", context=str(e))


def format_quota_line(current: Any, maximum: Any, unit: str = "") -> str:
    suffix = f" {unit}" if unit else ""
    return f"{current}/{maximum}{suffix}"


def parse_key_values(pairs: tuple) -> Dict[str, str]:
    """
    Parse ``KEY=VALUE`` arguments.

    Raises:
        click.BadParameter: If an argument has no ``=``
    """
    values: Dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{pair}'")
        key, value = pair.split("=", 1)
        values[key.strip()] = value.strip()
    return values
