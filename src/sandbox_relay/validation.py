"""
Input validation for strings that end up inside shell command lines.

The sandbox only exposes a shell-string ``exec``, so repository URLs, branch
names and model identifiers are interpolated directly into commands. Every
such value must pass these checks before a command string is built from it.

Validation is two-staged: any shell metacharacter is rejected outright, then
the value must match a narrow allow-list shape.
"""

import re

SHELL_METACHARACTERS = frozenset(";&|`$(){}[]<>\\'\"!\n\r\t")

_HOST = r"[A-Za-z0-9.-]+"
_PATH = r"[A-Za-z0-9._~%-]+(?:/[A-Za-z0-9._~%-]+)*"

GIT_URL_PATTERNS = (
    re.compile(rf"^https://{_HOST}/{_PATH}$"),
    re.compile(rf"^git@{_HOST}:{_PATH}$"),
    re.compile(rf"^git://{_HOST}/{_PATH}$"),
)

BRANCH_NAME_PATTERN = re.compile(r"^(?:[A-Za-z0-9]|[A-Za-z0-9][A-Za-z0-9._/-]*[A-Za-z0-9])$")

MODEL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:/@-]*$")


class InvalidInputError(ValueError):
    """Raised when caller input is unsafe to place in a command or path."""

    pass


def _reject_metacharacters(value: str, label: str) -> None:
    if any(ch in SHELL_METACHARACTERS for ch in value):
        raise InvalidInputError(f"{label} contains unsafe characters: {value!r}")


def validate_git_url(url: str) -> None:
    """Accept https://, git@host: and git:// repository URLs only."""
    _reject_metacharacters(url, "Git URL")
    if not any(pattern.match(url) for pattern in GIT_URL_PATTERNS):
        raise InvalidInputError(f"Invalid git URL format: {url!r}")


def validate_branch_name(branch: str) -> None:
    _reject_metacharacters(branch, "Branch name")
    if not BRANCH_NAME_PATTERN.match(branch):
        raise InvalidInputError(f"Invalid branch name format: {branch!r}")


def validate_model_name(model: str) -> None:
    _reject_metacharacters(model, "Model name")
    if not MODEL_NAME_PATTERN.match(model):
        raise InvalidInputError(f"Invalid model name format: {model!r}")


def validate_workspace_path(path: str) -> None:
    """Require a relative path that stays inside the workspace root."""
    if not path or path.startswith("/"):
        raise InvalidInputError(f"Workspace path must be relative: {path!r}")
    if "\x00" in path or ".." in path.split("/"):
        raise InvalidInputError(f"Workspace path escapes the workspace: {path!r}")
