"""Slash command handling for Mattermost."""

from jenkins_bridge.slash_commands.handlers import CommandContext, CommandResult, JenkinsCommandHandler
from jenkins_bridge.slash_commands.parser import (
    CommandParser,
    ParsedCommand,
    ParseResult,
    is_numeric,
    parse_build_parameters,
)
from jenkins_bridge.slash_commands.registry import SlashCommandRegistry

__all__ = [
    "CommandParser",
    "ParsedCommand",
    "ParseResult",
    "parse_build_parameters",
    "is_numeric",
    "SlashCommandRegistry",
    "JenkinsCommandHandler",
    "CommandContext",
    "CommandResult",
]
