"""Coloured terminal output for operator-facing reports."""


class Colors:
    """ANSI color codes for terminal output"""
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    END = '\033[0m'
    BOLD = '\033[1m'


def print_section(title: str):
    """Print section header"""
    print(f"\n{Colors.BOLD}{Colors.BLUE}{'='*60}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.BLUE}{title:^60}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.BLUE}{'='*60}{Colors.END}\n")


def print_check(name: str, passed: bool, message: str = ""):
    """Print check result"""
    color = Colors.GREEN if passed else Colors.RED
    mark = "✓" if passed else "✗"
    print(f"  {color}{mark}{Colors.END} {name}")
    if message:
        print(f"    {color}{message}{Colors.END}")
