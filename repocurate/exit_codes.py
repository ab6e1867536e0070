"""
Standard exit codes for repocurate commands.

Following Unix/POSIX conventions for command-line tools.
"""
from typing import Optional

# Standard POSIX exit codes
SUCCESS = 0              # Successful termination
GENERAL_ERROR = 1        # General errors
USAGE_ERROR = 2          # Misuse of shell command (wrong arguments, etc.)

# Application-specific exit codes (64-113 are typically available)
API_ERROR = 65           # Compatibility oracle failed
CONFIG_ERROR = 66        # Configuration file error
PERMISSION_ERROR = 67    # Insufficient permissions
DATA_ERROR = 70          # Repodata or matchspec format error
NOT_CONVERGED = 72       # Closure did not reach a fixpoint
INTERRUPTED = 130        # Terminated by Ctrl+C (SIGINT)

# Exit code mappings for common exceptions
EXCEPTION_EXIT_CODES = {
    'FileNotFoundError': GENERAL_ERROR,
    'PermissionError': PERMISSION_ERROR,
    'ValueError': DATA_ERROR,
    'JSONDecodeError': DATA_ERROR,
    'LoadError': DATA_ERROR,
    'MalformedRecordError': DATA_ERROR,
    'ConstraintParseError': DATA_ERROR,
    'OracleError': API_ERROR,
    'ClosureNonConvergenceError': NOT_CONVERGED,
    'KeyboardInterrupt': INTERRUPTED,
}


def get_exit_code_for_exception(exc: BaseException) -> int:
    """
    Get the appropriate exit code for an exception.

    Args:
        exc: The exception that occurred

    Returns:
        Appropriate exit code
    """
    exc_name = exc.__class__.__name__
    return EXCEPTION_EXIT_CODES.get(exc_name, GENERAL_ERROR)


def exit_with_code(code: int, message: Optional[str] = None):
    """
    Exit with a specific code and optional message.

    Args:
        code: Exit code
        message: Optional message to print to stderr
    """
    import sys
    if message:
        print(message, file=sys.stderr)
    sys.exit(code)

