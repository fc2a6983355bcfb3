"""Split a command line into an argument vector."""

from __future__ import annotations

__all__ = ["tokenize"]

_QUOTE = '"'
_SEPARATOR = " "


def tokenize(command: str) -> list[str]:
    """Split a command string on unquoted spaces.

    Double quotes group words into one argument and are removed from the
    result. There is no escape handling and no other shell syntax: an
    unmatched quote simply keeps everything up to the end of the string in
    the current argument.

    Examples:
        >>> tokenize('ssh -i key root@h1 "ls -l /tmp"')
        ['ssh', '-i', 'key', 'root@h1', 'ls -l /tmp']
        >>> tokenize("   ")
        []
    """
    args: list[str] = []
    in_quotes = False
    start = 0

    for i, char in enumerate(command):
        if char == _QUOTE:
            in_quotes = not in_quotes
        elif char == _SEPARATOR and not in_quotes:
            _append_token(args, command[start:i])
            start = i + 1

    _append_token(args, command[start:])
    return args


def _append_token(args: list[str], raw: str) -> None:
    token = raw.strip()
    if token:
        args.append(token.replace(_QUOTE, ""))
