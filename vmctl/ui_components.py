"""
vmctl - UI Components
Standardized headers and UI elements
"""

from typing import Optional

from rich.console import Console

LOGO = "vmctl"

# Color scheme
BRAND_COLOR = "cyan"
SUCCESS_COLOR = "green"
WARNING_COLOR = "yellow"
ERROR_COLOR = "red"

PREFIX = f" [bold color(214)]{LOGO}[/bold color(214)] [dim]›[/dim]"


def show_header(
    title: str,
    subtitle: Optional[str] = None,
    target: Optional[str] = None,
    details: Optional[dict] = None,
    console: Optional[Console] = None,
):
    """
    Display a standardized vmctl command header.

    Args:
        title: Main title (e.g., "Deploy VM")
        subtitle: Optional subtitle line
        target: Hypervisor host the command acts on
        details: Additional key-value pairs to display
        console: Rich Console instance (creates new if None)

    Example:
        show_header(
            title="Deploy VM",
            target="ops@kvm01 (remote)",
            details={"Memory": "2048 MB", "vCPUs": 2}
        )
    """
    if console is None:
        console = Console()

    console.print(f"{PREFIX} [bold white]{title}[/bold white]")
    if subtitle:
        console.print(f"{PREFIX} [dim]{subtitle}[/dim]")
    if target:
        console.print(f"{PREFIX} Target: [cyan]{target}[/cyan]")
    if details:
        for key, value in details.items():
            console.print(f"{PREFIX} {key}: [cyan]{value}[/cyan]")

    console.print()


def usage_bar(percent: float, width: int = 20) -> str:
    """Rich-markup bar for a quota percentage."""
    filled = min(width, max(0, round(percent * width / 100)))
    if percent >= 90:
        color = ERROR_COLOR
    elif percent >= 70:
        color = WARNING_COLOR
    else:
        color = SUCCESS_COLOR
    return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * (width - filled)}[/dim] {percent:5.1f}%"
