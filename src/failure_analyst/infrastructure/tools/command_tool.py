"""
Command Tool

Diagnostic tool defined in the profile YAML as an argv template. Parameter
values are substituted into ``{name}`` placeholders and the command runs
without a shell, so values are never interpreted by one:

    - name: logs_tool
      type: command
      description: Search the system journal
      command: ["journalctl", "--no-pager", "-g", "{pattern}"]
      parameters:
        - {name: pattern, type: string, required: true}
      timeout: 30
      empty_result_markers: ["-- No entries --"]
"""

import asyncio
import string
from typing import Any

import structlog

from failure_analyst.core.tools.registry import ToolDefinition, ToolParameter

NO_OUTPUT = "(no output)"
DEFAULT_TIMEOUT = 30
DEFAULT_MAX_OUTPUT_CHARS = 8000


class CommandFailedError(RuntimeError):
    """The command exited with a non-zero status."""

    def __init__(self, returncode: int, stderr: str):
        super().__init__(f"Command failed with code {returncode}: {stderr.strip()[:500]}")
        self.returncode = returncode
        self.stderr = stderr


class _BlankMissing(dict):
    def __missing__(self, key: str) -> str:
        return ""


def _render_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class CommandTool:
    """Runs a configured command and returns its (truncated) stdout."""

    def __init__(
        self,
        name: str,
        description: str,
        command: list[str],
        parameters: list[ToolParameter] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
        empty_result_markers: tuple[str, ...] = (),
        cwd: str | None = None,
    ):
        if not command:
            raise ValueError(f"Command tool '{name}' needs a non-empty command")
        self.name = name
        self.description = description
        self.command = list(command)
        self.parameters = list(parameters or [])
        self.timeout = timeout
        self.max_output_chars = max_output_chars
        self.empty_result_markers = tuple(empty_result_markers) + (NO_OUTPUT,)
        self.cwd = cwd
        self.logger = structlog.get_logger().bind(component="command_tool", tool=name)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "CommandTool":
        """
        Build a tool from a profile ``tools`` entry.

        Raises:
            ValueError: If name, description or command are missing
        """
        missing = [key for key in ("name", "description", "command") if not config.get(key)]
        if missing:
            raise ValueError(f"Command tool config missing: {', '.join(missing)}")
        command = config["command"]
        if isinstance(command, str):
            raise ValueError(
                f"Command tool '{config['name']}': command must be a list of arguments"
            )
        return cls(
            name=config["name"],
            description=config["description"],
            command=[str(token) for token in command],
            parameters=[
                ToolParameter(
                    name=p["name"],
                    type=p.get("type", "string"),
                    description=p.get("description", ""),
                    required=bool(p.get("required", False)),
                )
                for p in config.get("parameters", [])
            ],
            timeout=config.get("timeout", DEFAULT_TIMEOUT),
            max_output_chars=config.get("max_output_chars", DEFAULT_MAX_OUTPUT_CHARS),
            empty_result_markers=tuple(config.get("empty_result_markers", [])),
            cwd=config.get("cwd"),
        )

    def build_argv(self, parameters: dict[str, Any]) -> list[str]:
        """Substitute parameters into the template; placeholders that end up empty are dropped."""
        values = _BlankMissing(
            {key: _render_value(value) for key, value in parameters.items() if value is not None}
        )
        argv = []
        for token in self.command:
            has_fields = any(field for _, field, _, _ in string.Formatter().parse(token))
            rendered = token.format_map(values) if has_fields else token
            if has_fields and not rendered:
                continue
            argv.append(rendered)
        return argv

    async def __call__(self, parameters: dict[str, Any]) -> str:
        argv = self.build_argv(parameters)
        self.logger.debug("command_started", argv=argv)

        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise TimeoutError(f"Command timed out after {self.timeout}s") from None

        stdout_text = stdout.decode(errors="replace") if stdout else ""
        stderr_text = stderr.decode(errors="replace") if stderr else ""
        if process.returncode != 0:
            raise CommandFailedError(process.returncode, stderr_text)

        output = stdout_text.strip()
        if not output:
            return NO_OUTPUT
        if len(output) > self.max_output_chars:
            output = (
                output[: self.max_output_chars]
                + f"\n... [truncated {len(output) - self.max_output_chars} characters]"
            )
        return output

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            execute=self,
            parameters=self.parameters,
            empty_result_markers=self.empty_result_markers,
        )
