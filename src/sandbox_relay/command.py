"""Agent command line construction."""

from .validation import validate_model_name

AGENT_BINARY = "pnpm claude"
OUTPUT_FORMAT = "stream-json"
EMITTED_EVENTS = ("assistant", "result", "tool_use", "tool_result")

# Characters the shell still interprets inside a double-quoted string.
_DOUBLE_QUOTE_SPECIALS = ("\\", '"', "$", "`")


def escape_prompt(prompt: str) -> str:
    """Wrap the prompt in double quotes, escaping what the shell would expand.

    Best-effort only: the sandbox is the real boundary for untrusted prompts.
    """
    escaped = prompt
    for ch in _DOUBLE_QUOTE_SPECIALS:
        escaped = escaped.replace(ch, f"\\{ch}")
    return f'"{escaped}"'


def build_agent_command(prompt: str, model: str) -> str:
    """Build the shell command that runs the agent in structured streaming mode."""
    validate_model_name(model)
    return (
        f"{AGENT_BINARY} --output-format {OUTPUT_FORMAT}"
        f' --print "{",".join(EMITTED_EVENTS)}"'
        f" --model {model}"
        f" -p {escape_prompt(prompt)}"
    )
