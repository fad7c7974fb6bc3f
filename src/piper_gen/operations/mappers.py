"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

T = TypeVar('T')

EXIT_CODES = {
    "ValidationError": 2,
    "ValueError": 2,
    "FileNotFoundError": 2,
    "NetworkFailure": 3,
    "IOFailure": 4,
    "WriteFailure": 4,
    "EncodingFailure": 5,
    "AggregateCloseFailure": 5,
    "UnsupportedFormat": 6,
    "UnexpectedAssetFile": 7,
    "BuildCommandFailed": 8,
    "BuildFailed": 10,
    "PackagingCancelled": 130,
}

def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns:
    - 0: Success
    - 2: Invalid input (ValueError, ValidationError, missing manifest)
    - 3: Download failed (NetworkFailure)
    - 4: Local filesystem error (IOFailure, WriteFailure)
    - 5: Compression error (EncodingFailure, AggregateCloseFailure)
    - 6: Archive cannot be repackaged (UnsupportedFormat)
    - 7: Voice file with unexpected name (UnexpectedAssetFile)
    - 8: Go toolchain failed (BuildCommandFailed)
    - 10: Some assets of a build failed (BuildFailed)
    - 130: Cancelled (PackagingCancelled)
    - 1: Anything else

    Args:
        exc: Exception to map

    Returns:
        Exit code
    """
    return EXIT_CODES.get(type(exc).__name__, 1)

def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit. This centralizes error handling so
    CLI commands don't need individual try/except blocks.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except Exception as e:
        from .printers import print_error
        print_error(e)
        raise typer.Exit(code=exit_code_for(e)) from e
