"""Exception types raised by tickstack."""

from typing import List, Optional, Sequence


class TickstackError(RuntimeError):
    pass


class ManifestError(TickstackError):
    pass


class CollectorConfigError(TickstackError):
    pass


class BootstrapError(TickstackError):
    pass


class CommandError(TickstackError):
    """A command exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"Command {' '.join(self.argv)!r} failed with exit status {returncode}: {detail}")


class ReadinessTimeout(TickstackError):
    def __init__(self, message: str, results: Optional[List] = None):
        super().__init__(message)
        self.results = results or []
