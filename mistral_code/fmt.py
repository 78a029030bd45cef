"""Terminal diagnostics for mistral-code.

Everything here writes to stderr through one Rich console; answers are the
only thing printed to stdout, and that happens in agent.respond().
"""

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule
from rich.text import Text

_console = Console(stderr=True)

PREVIEW_CHARS = 200

BANNER = r"""
 __  __ _     _             _    ____          _
|  \/  (_)___| |_ _ __ __ _| |  / ___|___   __| | ___
| |\/| | / __| __| '__/ _` | | | |   / _ \ / _` |/ _ \
| |  | | \__ \ |_| | | (_| | | | |__| (_) | (_| |  __/
|_|  |_|_|___/\__|_|  \__,_|_|  \____\___/ \__,_|\___|
"""

APPROVE_HINT = (
    "Type '/approve' to approve the plan and start implementation, "
    "or type your changes to update the plan."
)


def init(*, color: bool = False, no_color: bool = False) -> None:
    """Rebuild the console once the --color/--no-color choice is known."""
    global _console
    kwargs: dict = {"stderr": True}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(**kwargs)


# -- Iteration structure -----------------------------------------------------


def iteration_header(n: int, max_n: int, token_est: int | None) -> None:
    title = f"Iteration {n}/{max_n}"
    if token_est is not None:
        title += f" (~{token_est} tokens)"
    _console.print(Rule(title, style="cyan"))


def llm_timing(elapsed: float, finish_reason: str | None) -> None:
    style = "green" if finish_reason in ("stop", "tool_calls") else "yellow"
    text = Text()
    text.append(f"  LLM responded in {elapsed:.1f}s", style=style)
    text.append(f"  finish_reason={escape(str(finish_reason))}", style=style)
    _console.print(text)


def llm_spinner(label: str = "Thinking..."):
    """Return a Rich Status context manager that spins on stderr."""
    return _console.status(f"  {label}", spinner="dots")


def iterations_exhausted(max_n: int) -> None:
    _console.print(
        Text(f"✗ Maximum iterations reached ({max_n})", style="bold red")
    )


def no_response() -> None:
    _console.print(Text("✗ No response", style="bold red"))


# -- Tool calls --------------------------------------------------------------


def tool_call(name: str, args_json: str) -> None:
    header = Text()
    header.append("  ▶ ", style="bold magenta")
    header.append(name, style="bold magenta")
    _console.print(header)
    if args_json:
        for line in args_json.splitlines():
            _console.print(Text(f"    {line}", style="dim"))


def tool_result(name: str, elapsed: float, result: str) -> None:
    preview = result
    if len(preview) > PREVIEW_CHARS:
        preview = preview[:PREVIEW_CHARS] + "... (truncated)"
    header = Text()
    header.append(f"  ✓ {name}", style="green")
    header.append(f"  {elapsed:.1f}s", style="green")
    _console.print(header)
    if preview:
        _console.print(Text(f"    {preview}", style="dim"))


def tool_error(name: str, msg: str) -> None:
    header = Text()
    header.append(f"  ✗ {name}", style="bold red")
    header.append(f"  {msg}", style="red")
    _console.print(header)


def tool_refused(name: str) -> None:
    line = Text()
    line.append(f"  ✗ {name}", style="bold red")
    line.append(
        " is not available in plan mode. Use '/approve' to start implementation.",
        style="red",
    )
    _console.print(line)


# -- Assistant text ----------------------------------------------------------


def assistant_text(text: str) -> None:
    line = Text()
    line.append("  [assistant] ", style="blue")
    line.append(text)
    _console.print(line)


def answer_header(plan_mode: bool) -> None:
    line = Text()
    line.append("Mistral Code:", style="bold cyan")
    if plan_mode:
        line.append(" [PLAN MODE]", style="yellow")
    _console.print(line)


# -- Plan mode ---------------------------------------------------------------


def plan_enabled() -> None:
    _console.print(
        Text("\U0001f4cb Plan mode enabled - no changes will be made", style="yellow")
    )
    approve_hint()


def plan_reminder() -> None:
    _console.print(Text("\U0001f4cb [PLAN MODE ACTIVE]", style="yellow"))
    approve_hint()


def plan_approved() -> None:
    _console.print(
        Text("✓ Plan approved - implementation mode enabled", style="green")
    )


def not_in_plan_mode() -> None:
    _console.print(
        Text(
            "ℹ Not in plan mode. Use '/plan' to enter plan mode.",
            style="yellow",
        )
    )


def approve_hint() -> None:
    _console.print(Text(f"\U0001f4a1 {APPROVE_HINT}", style="dim"))


# -- Diagnostics -------------------------------------------------------------


def model_info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def success(msg: str) -> None:
    _console.print(Text(f"✓ {msg}", style="green"))


def warning(msg: str) -> None:
    line = Text()
    line.append("  ⚠ Warning: ", style="yellow")
    line.append(msg, style="yellow")
    _console.print(line)


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)


def help_text(text: str) -> None:
    _console.print(Text(text, style="blue"))


def repl_banner() -> None:
    _console.print(Text(BANNER, style="bold yellow"))
    _console.print(
        Text('Type your commands (or "help" for help, "exit" to quit)', style="dim")
    )


def goodbye() -> None:
    _console.print(Text("\U0001f44b Goodbye!", style="cyan"))


def session_ended() -> None:
    _console.print(Text("\U0001f44b Session ended.", style="cyan"))
