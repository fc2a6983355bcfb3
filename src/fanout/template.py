"""Per-host variable substitution for command templates."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

__all__ = [
    "HOME_DIRECTORY",
    "HOST_NAME",
    "HOST_USER_ID",
    "ROOT_DIRECTORY",
    "SOURCE_DIRECTORY",
    "SSH_PRIVATE_KEY",
    "HostParameters",
    "build_variables",
    "placeholder",
    "resolve",
]

HOST_NAME = "hostName"
HOST_USER_ID = "hostUserId"
SSH_PRIVATE_KEY = "sshPrivateKey"
ROOT_DIRECTORY = "rootDirectory"
HOME_DIRECTORY = "homeDirectory"
SOURCE_DIRECTORY = "sourceDirectory"


@dataclass(frozen=True)
class HostParameters:
    """Connection and directory settings shared by every host in a batch."""

    user_id: str
    root_directory: str | None = None
    home_directory: str | None = None
    ssh_private_key: Path | None = None
    source_directory: Path | None = None
    extra: Mapping[str, str] = field(default_factory=dict)


def placeholder(name: str) -> str:
    """Return the literal placeholder text for a variable name."""
    return "${" + name + "}"


def resolve(template: str, variables: Mapping[str, str]) -> str:
    """Replace every ``${name}`` in template with its value.

    Replacement is literal and done in a single pass, so a value that
    itself looks like a placeholder is left alone and the order of the
    variables never matters. Placeholders with no matching variable stay in
    the output unchanged.
    """
    parts: list[str] = []
    pos = 0
    while (start := template.find("${", pos)) >= 0:
        end = template.find("}", start + 2)
        if end < 0:
            break
        name = template[start + 2 : end]
        if name in variables:
            parts.append(template[pos:start])
            parts.append(variables[name])
            pos = end + 1
        else:
            # Keep the opener and rescan right after it, "${a${b}" may still hold ${b}
            parts.append(template[pos : start + 2])
            pos = start + 2
    parts.append(template[pos:])
    return "".join(parts)


def build_variables(host: str, params: HostParameters) -> dict[str, str]:
    """Build the variable set for one host.

    Optional settings are only present when configured, so a template that
    references them without them being set keeps the raw placeholder.
    """
    variables = dict(params.extra)
    variables[HOST_NAME] = host
    variables[HOST_USER_ID] = params.user_id

    if params.root_directory is not None:
        variables[ROOT_DIRECTORY] = params.root_directory

    if params.home_directory is not None:
        variables[HOME_DIRECTORY] = params.home_directory

    if params.ssh_private_key is not None:
        variables[SSH_PRIVATE_KEY] = str(params.ssh_private_key.expanduser().absolute())

    if params.source_directory is not None:
        variables[SOURCE_DIRECTORY] = str(params.source_directory.expanduser().absolute())

    return variables
