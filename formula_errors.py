# formula_errors.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Span:
    """
    Half-open byte range [start, end) into the UTF-8 encoded formula.
    """
    start: int
    end: int

    def __str__(self) -> str:
        return f"{self.start}..{self.end}"


class RenderError(Exception):
    """
    Base class for everything the engine reports to its caller.

    `code` is the stable integer the FFI boundary returns for this error kind.
    """
    code = -99

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EmptyInput(RenderError):
    code = -1

    def __init__(self) -> None:
        super().__init__("formula is empty")


class InvalidUtf8(RenderError):
    code = -2

    def __init__(self, detail: str = "") -> None:
        super().__init__(f"formula is not valid UTF-8 {detail}".strip())


class InputTooLong(RenderError):
    code = -3

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"formula is {size} bytes, limit is {limit}")
        self.size = size
        self.limit = limit


class ParseError(RenderError):
    """
    A lexing or parsing failure. Always terminal for the call.
    """
    code = -99

    def __init__(self, message: str, span: Span) -> None:
        super().__init__(f"{message} (at {span})")
        self.reason = message
        self.span = span

    def relocate(self, span: Span) -> None:
        """Point the error at another span of the same input."""
        self.span = span
        self.message = f"{self.reason} (at {span})"
        self.args = (self.message,)


class UnknownCommand(ParseError):
    code = -4


class ArityMismatch(ParseError):
    code = -5


class DuplicateScript(ParseError):
    code = -6


class UnbalancedGroup(ParseError):
    code = -7


class UnbalancedEnvironment(ParseError):
    code = -8


class MissingScriptBase(ParseError):
    code = -9


class NestingTooDeep(ParseError):
    code = -14


class LayoutInvariantError(RenderError):
    """Raised when layout meets a tree the parser should never produce."""
    code = -10


class RenderFailure(RenderError):
    code = -11


class FontLoadError(RenderError):
    code = -12


class InvalidArgument(RenderError):
    code = -13


class InternalRenderError(RenderError):
    code = -99
