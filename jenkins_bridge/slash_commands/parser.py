"""Slash command parser."""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

QUOTE = '"'

# Same shape strconv.Atoi accepts: optional sign, then ASCII digits only
_INTEGER_LITERAL = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class ParseResult:
    """Job name, build number and build parameters taken from a command."""

    job_name: str
    build_number: str
    parameters: Optional[dict[str, str]]
    ok: bool


@dataclass
class ParsedCommand:
    """Parsed slash command."""

    command: str
    args: list[str]
    raw: str


def is_numeric(token: str) -> bool:
    """Return True if the token is an integer literal."""
    return _INTEGER_LITERAL.fullmatch(token) is not None


def parse_build_parameters(tokens: Sequence[str]) -> ParseResult:
    """Parse the arguments of a job command.

    The first token (or the quoted run of tokens starting with it) is the
    job name. A numeric token right after it is the build number, and any
    later ``key=value`` tokens become build parameters. Other trailing
    tokens are ignored.

    Args:
        tokens: Whitespace-split arguments; never modified

    Returns:
        ParseResult, with ``ok`` False only when ``tokens`` is empty
    """
    if not tokens:
        return ParseResult("", "", None, False)

    first = tokens[0]
    index = 1

    if first.startswith(QUOTE):
        first = first[len(QUOTE):]
        if first.endswith(QUOTE):
            job_parts = [first[: -len(QUOTE)]]
        else:
            job_parts = [first]
            closed = False
            while index < len(tokens):
                token = tokens[index]
                index += 1
                if token.endswith(QUOTE):
                    job_parts.append(token[: -len(QUOTE)])
                    closed = True
                    break
                job_parts.append(token)
            if not closed:
                logger.debug(f"Unterminated quote in job name: {' '.join(tokens)}")
    else:
        job_parts = [first]

    job_name = " ".join(job_parts)

    build_number = ""
    if index < len(tokens) and is_numeric(tokens[index]):
        build_number = tokens[index]
        index += 1

    parameters = None
    for token in tokens[index:]:
        if "=" not in token:
            continue
        key, value = token.split("=", 1)
        if parameters is None:
            parameters = {}
        parameters[key] = value

    return ParseResult(job_name, build_number, parameters, True)


class CommandParser:
    """Parser for the Jenkins slash command line."""

    DEFAULT_TRIGGER = "/jenkins"

    def __init__(self, trigger: str = DEFAULT_TRIGGER):
        self.trigger = trigger if trigger.startswith("/") else f"/{trigger}"

    def parse(self, command: str) -> Optional[ParsedCommand]:
        """Parse a slash command string.

        Args:
            command: Raw command string (e.g., "/jenkins build myjob 22")

        Returns:
            ParsedCommand or None if the text is not for this trigger
        """
        if not command:
            return None

        split = command.split()
        if not split or split[0].lower() != self.trigger.lower():
            return None

        action = split[1].lower() if len(split) > 1 else ""
        return ParsedCommand(
            command=action,
            args=split[2:],
            raw=command,
        )
