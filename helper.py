import sys

GRAY = "\033[90m"
RESET = "\033[0m"


def print_event_gray(text: str) -> None:
    """
    Print debug output in gray using ANSI escape codes, on stderr so that
    stdout only carries the tool's own messages.
    """
    print(f"{GRAY}{text}{RESET}", file=sys.stderr)


def print_lines_gray(lines: list[str]) -> None:
    for line in lines:
        print_event_gray(line)
