"""Tool definitions and implementations for the agent.

Every implementation returns a string and never raises: failures come back
as text starting with ``error:`` so the model can read them and adapt.
"""

import os
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import assert_never

from .edit import replace
from .session import Mode


class Capability(str, Enum):
    """Closed set of tools the model may invoke."""

    READ_FILE = "read_file"
    LIST_DIRECTORY = "list_directory"
    EDIT_FILE = "edit_file"
    RUN_COMMAND = "run_command"


class Classification(Enum):
    READ_ONLY = "read_only"
    MUTATING = "mutating"


@dataclass(frozen=True)
class CapabilityDescriptor:
    capability: Capability
    classification: Classification
    schema: dict

    @property
    def name(self) -> str:
        return self.capability.value


READ_FILE_TOOL = {
    "type": "function",
    "function": {
        "name": "read_file",
        "description": (
            "Read the contents of a file from the filesystem. "
            "Returns the file content as a string."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "The path to the file to read. Can be relative or absolute.",
                },
            },
            "required": ["file_path"],
        },
    },
}

LIST_DIRECTORY_TOOL = {
    "type": "function",
    "function": {
        "name": "list_directory",
        "description": (
            "List the contents of a directory. Returns one line per entry, "
            "marked [dir] or [file], with the size of each file in bytes."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "directory_path": {
                    "type": "string",
                    "description": (
                        "The path to the directory to list. Can be relative or absolute. "
                        "Defaults to the current directory if not provided."
                    ),
                },
            },
            "required": [],
        },
    },
}

EDIT_FILE_TOOL = {
    "type": "function",
    "function": {
        "name": "edit_file",
        "description": (
            "Edit a file by replacing the first occurrence of old_str with new_str. "
            "If old_str is empty, creates (or overwrites) the file with new_str."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "The path to the file to edit. Can be relative or absolute.",
                },
                "old_str": {
                    "type": "string",
                    "description": (
                        "The exact string to replace in the file. "
                        "Use an empty string to create a new file."
                    ),
                },
                "new_str": {
                    "type": "string",
                    "description": "The new string to replace old_str with.",
                },
            },
            "required": ["file_path", "old_str", "new_str"],
        },
    },
}

RUN_COMMAND_TOOL = {
    "type": "function",
    "function": {
        "name": "run_command",
        "description": (
            "Execute a shell command and return its combined stdout and stderr. "
            "Use this to run tests, install dependencies, build projects, or run any CLI "
            "command. Runs in working_directory, or the current directory if not given."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to execute.",
                },
                "working_directory": {
                    "type": "string",
                    "description": (
                        "Optional directory to run the command in. "
                        "Defaults to the current directory."
                    ),
                },
            },
            "required": ["command"],
        },
    },
}

REGISTRY: dict[Capability, CapabilityDescriptor] = {
    Capability.READ_FILE: CapabilityDescriptor(
        Capability.READ_FILE, Classification.READ_ONLY, READ_FILE_TOOL
    ),
    Capability.LIST_DIRECTORY: CapabilityDescriptor(
        Capability.LIST_DIRECTORY, Classification.READ_ONLY, LIST_DIRECTORY_TOOL
    ),
    Capability.EDIT_FILE: CapabilityDescriptor(
        Capability.EDIT_FILE, Classification.MUTATING, EDIT_FILE_TOOL
    ),
    Capability.RUN_COMMAND: CapabilityDescriptor(
        Capability.RUN_COMMAND, Classification.MUTATING, RUN_COMMAND_TOOL
    ),
}

TOOLS = [descriptor.schema for descriptor in REGISTRY.values()]


def lookup(name: str) -> Capability | None:
    """Return the Capability for a tool name, or None if unknown."""
    try:
        return Capability(name)
    except ValueError:
        return None


def is_mutating(capability: Capability) -> bool:
    return REGISTRY[capability].classification is Classification.MUTATING


def tools_for_mode(mode: Mode) -> list[dict]:
    """Tool schemas advertised to the model: read-only ones only in plan mode."""
    if mode is Mode.PLAN:
        return [
            d.schema
            for d in REGISTRY.values()
            if d.classification is Classification.READ_ONLY
        ]
    return list(TOOLS)


def plan_mode_refusal(name: str) -> str:
    return (
        f"error: cannot use {name} in plan mode. Plan mode only allows reading files "
        "and listing directories. The user must type '/approve' to exit plan mode "
        "and start implementation."
    )


def _resolve(file_path: str, base_dir: str) -> Path:
    """Resolve a path against base_dir unless it is already absolute."""
    path = Path(file_path).expanduser()
    if path.is_absolute():
        return path
    return Path(base_dir) / path


def _read_file(file_path: str, base_dir: str) -> str:
    """Return the full text of a file."""
    resolved = _resolve(file_path, base_dir)

    if not resolved.exists():
        return f"error: path does not exist: {file_path}"
    if resolved.is_dir():
        return f"error: {file_path} is a directory, use list_directory instead"

    try:
        return resolved.read_bytes().decode("utf-8")
    except UnicodeDecodeError as exc:
        return f"error: failed to decode {file_path} as UTF-8: {exc}"
    except OSError as exc:
        return f"error: {exc}"


def _list_directory(directory_path: str, base_dir: str) -> str:
    """List a directory, one entry per line, in iteration order."""
    resolved = _resolve(directory_path or ".", base_dir)

    output_parts = []
    try:
        for child in resolved.iterdir():
            if child.is_dir():
                output_parts.append(f"[dir] {child.name}")
                continue
            try:
                size = f" ({child.stat().st_size} bytes)"
            except OSError:
                size = ""  # dangling symlink
            output_parts.append(f"[file] {child.name}{size}")
    except FileNotFoundError:
        return f"error: directory does not exist: {directory_path}"
    except NotADirectoryError:
        return f"error: not a directory: {directory_path}"
    except OSError as exc:
        return f"error: {exc}"

    if not output_parts:
        return "(empty directory)"
    return "\n".join(output_parts)


def _edit_file(file_path: str, old_str: str, new_str: str, base_dir: str) -> str:
    """Create a file (empty old_str) or replace the first occurrence of old_str."""
    resolved = _resolve(file_path, base_dir)

    if old_str == "":
        try:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            resolved.write_bytes(new_str.encode("utf-8"))
        except OSError as exc:
            return f"error: {exc}"
        return f"File created successfully: {file_path}"

    if not resolved.is_file():
        return f"error: file does not exist: {file_path}"

    try:
        content = resolved.read_bytes().decode("utf-8")
    except (UnicodeDecodeError, OSError) as exc:
        return f"error: {exc}"

    try:
        new_content = replace(content, old_str, new_str)
    except ValueError:
        return (
            f"error: old_str was not found in {file_path}. Make sure to include "
            "the exact string including whitespace and newlines."
        )

    try:
        resolved.write_bytes(new_content.encode("utf-8"))
    except OSError as exc:
        return f"error: {exc}"
    return f"File edited successfully: {file_path}"


COMMAND_TIMEOUT = 300  # seconds
MAX_OUTPUT_BYTES = 10 * 1024 * 1024  # per stream
NO_OUTPUT = "Command executed successfully (no output)"

_REAP_TIMEOUT = 5  # seconds

_IS_WINDOWS = sys.platform == "win32"


def _kill_process_tree(proc: subprocess.Popen) -> None:
    """Terminate the shell and everything it spawned, then reap it."""
    if _IS_WINDOWS:
        try:
            subprocess.run(
                ["taskkill", "/T", "/F", "/PID", str(proc.pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=_REAP_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired):
            pass
    else:
        # the shell leads its own session, so its pid is the group id
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except OSError:
            pass  # already gone

    if proc.poll() is None:
        try:
            proc.kill()
        except OSError:
            pass
    try:
        proc.wait(timeout=_REAP_TIMEOUT)
    except subprocess.TimeoutExpired:
        pass


class _StreamReader:
    """Drain a pipe on a background thread, keeping at most MAX_OUTPUT_BYTES."""

    def __init__(self, stream):
        self.stream = stream
        self.chunks: list[bytes] = []
        self.total = 0
        self.truncated = False
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.start()

    def _run(self) -> None:
        try:
            while True:
                chunk = self.stream.read(4096)
                if not chunk:
                    break
                if self.truncated:
                    continue  # keep draining to prevent pipe backpressure
                remaining = MAX_OUTPUT_BYTES - self.total
                if len(chunk) > remaining:
                    chunk = chunk[:remaining]
                    self.truncated = True
                self.chunks.append(chunk)
                self.total += len(chunk)
        except (OSError, ValueError):
            pass  # pipe closed after kill

    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


def _capture_process(proc: subprocess.Popen, timeout: int) -> str:
    """Wait for a subprocess with timeout enforcement and format its output."""
    readers = [_StreamReader(proc.stdout), _StreamReader(proc.stderr)]

    timed_out = False
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_tree(proc)

    for reader in readers:
        reader.thread.join(timeout=2)
        reader.stream.close()

    output = "".join(reader.text() for reader in readers)
    if any(reader.truncated for reader in readers):
        output += "\n[output truncated at 10MB]"
    output = output.strip()

    if timed_out:
        result = f"error: command timed out after {timeout}s"
        return f"{result}\n{output}" if output else result
    if proc.returncode != 0:
        result = f"error: command failed with exit code {proc.returncode}"
        return f"{result}:\n{output}" if output else result
    if not output:
        return NO_OUTPUT
    return output


def _run_command(
    command: str,
    base_dir: str,
    working_directory: str | None = None,
    timeout: int = COMMAND_TIMEOUT,
) -> str:
    """Run a shell command line and return its captured output."""
    if not isinstance(command, str) or not command.strip():
        return "error: command must be a non-empty string"

    cwd = _resolve(working_directory, base_dir) if working_directory else Path(base_dir)
    if not cwd.is_dir():
        return f"error: working directory does not exist: {working_directory or base_dir}"

    argv = ["cmd.exe", "/c", command] if _IS_WINDOWS else ["/bin/sh", "-c", command]
    try:
        proc = subprocess.Popen(
            argv,
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=not _IS_WINDOWS,
        )
    except OSError as e:
        return f"error: could not start the shell: {e}"

    return _capture_process(proc, timeout)


def dispatch(name: str, args: dict, base_dir: str) -> str:
    """Run the named capability with already-parsed arguments.

    Args:
        name: The tool name to invoke.
        args: Parsed JSON arguments for the tool.
        base_dir: Directory that relative paths are resolved against.

    Returns:
        String result from the tool.

    Raises:
        KeyError: If the tool name is not recognized or a required
            argument is missing.
    """
    capability = lookup(name)
    if capability is None:
        raise KeyError(f"Unknown tool: {name!r}")

    if capability is Capability.READ_FILE:
        return _read_file(file_path=args["file_path"], base_dir=base_dir)
    elif capability is Capability.LIST_DIRECTORY:
        return _list_directory(
            directory_path=args.get("directory_path") or ".", base_dir=base_dir
        )
    elif capability is Capability.EDIT_FILE:
        return _edit_file(
            file_path=args["file_path"],
            old_str=args["old_str"],
            new_str=args["new_str"],
            base_dir=base_dir,
        )
    elif capability is Capability.RUN_COMMAND:
        return _run_command(
            command=args["command"],
            base_dir=base_dir,
            working_directory=args.get("working_directory"),
        )
    else:
        assert_never(capability)
