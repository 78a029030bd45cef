import argparse
import functools
import json
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from importlib import metadata
from pathlib import Path

from . import fmt
from .commands import process_line
from .config import (
    _UNSET,
    apply_config_to_args,
    generate_config,
    load_config,
    resolve_api_key,
)
from .errors import AgentError
from .history import AssistantTurn, ToolCall, ToolTurn, UserTurn, canonical_arguments
from .session import Mode, SessionState
from .tools import dispatch, is_mutating, lookup, plan_mode_refusal, tools_for_mode

DEFAULT_SYSTEM_PROMPT_FILE = Path(__file__).parent / "system_prompt.txt"
MAX_ITERATIONS = 10
MAX_ARG_LOG = 1000
NO_RESPONSE = "No response"

PLAN_MODE_RULES = (
    "[PLAN MODE ACTIVE] You are currently in PLAN MODE. This means:\n"
    "- You MUST NOT make any changes to files (do not use the edit_file tool)\n"
    "- You MUST NOT execute any commands (do not use the run_command tool)\n"
    "- You CAN read files (read_file) and list directories (list_directory) "
    "to understand the codebase\n"
    "- Your goal is to create a detailed, step-by-step plan for the user\n"
    "- Present the plan clearly with numbered steps\n"
    "- Wait for user approval before implementing anything\n"
    "- If the user suggests changes to the plan, update the plan accordingly"
)

_encoder = None


def _get_encoder():
    global _encoder
    if _encoder is None:
        import tiktoken

        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


def estimate_tokens(messages: list[dict], tools: list | None = None) -> int:
    """Rough prompt size: message text, tool-call payloads and tool schemas."""
    enc = _get_encoder()
    pieces = []
    for m in messages:
        pieces.append(m.get("content") or "")
        for tc in m.get("tool_calls") or ():
            pieces.append(tc["function"]["name"])
            pieces.append(tc["function"]["arguments"])
    if tools:
        pieces.append(json.dumps(tools))
    # about 4 tokens of framing per message
    return sum(len(enc.encode(p)) for p in pieces) + 4 * len(messages)


def _safe_estimate(messages: list[dict], tools: list) -> int | None:
    """estimate_tokens, or None when the encoder cannot be loaded."""
    try:
        return estimate_tokens(messages, tools)
    except Exception as e:
        fmt.warning(f"token estimate unavailable: {e}")
        return None


def load_system_prompt(custom: str | None, base_dir: str) -> str:
    """Return the base system prompt with the current date and directory appended."""
    if custom:
        content = custom
    else:
        content = DEFAULT_SYSTEM_PROMPT_FILE.read_text(encoding="utf-8")
    now = datetime.now().astimezone()
    content = content.strip()
    content += f"\n\nCurrent date and time: {now.strftime('%Y-%m-%d %H:%M %Z')}"
    content += f"\nWorking directory: {Path(base_dir).resolve()}"
    return content


def build_system_prompt(base_prompt: str, mode: Mode) -> str:
    prompt = base_prompt.strip()
    if mode is Mode.PLAN:
        prompt += "\n\n" + PLAN_MODE_RULES
    return prompt


def build_messages(base_prompt: str, state: SessionState) -> list[dict]:
    """System prompt for the current mode followed by the whole conversation."""
    system = {"role": "system", "content": build_system_prompt(base_prompt, state.mode)}
    return [system] + state.conversation.to_messages()


def _get(obj, key: str, default=None):
    """Read a field from either a dict or an attribute-style response object."""
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def extract_text(content) -> str:
    """Flatten message content to text.

    Content is either a plain string or a list of typed segments; only
    "text" segments are kept, in order.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for segment in content:
            text = _get(segment, "text")
            if _get(segment, "type") == "text" and isinstance(text, str):
                parts.append(text)
        return "".join(parts)
    return ""


def call_llm(
    model_id,
    messages,
    tools,
    verbose,
    *,
    api_key=None,
    base_url=None,
    max_output_tokens=None,
    temperature=None,
    top_p=None,
    seed=None,
):
    """Call LiteLLM. Returns (message, finish_reason), or (None, None) without choices."""
    import litellm

    litellm.suppress_debug_info = True

    model_str = model_id if "/" in model_id else f"mistral/{model_id}"

    if verbose:
        extras = []
        if temperature is not None:
            extras.append(f"temperature={temperature}")
        if top_p is not None:
            extras.append(f"top_p={top_p}")
        if seed is not None:
            extras.append(f"seed={seed}")
        extra_str = ", " + ", ".join(extras) if extras else ""
        fmt.model_info(f"Calling model {model_str} with {len(tools)} tools{extra_str}")

    completion_kwargs = dict(
        model=model_str,
        messages=messages,
        tools=tools,
        tool_choice="auto",
        api_key=api_key,
    )
    if base_url:
        completion_kwargs["api_base"] = base_url
    for key, val in [
        ("max_tokens", max_output_tokens),
        ("temperature", temperature),
        ("top_p", top_p),
        ("seed", seed),
    ]:
        if val is not None:
            completion_kwargs[key] = val

    try:
        response = litellm.completion(**completion_kwargs)
    except Exception as e:
        raise AgentError(f"LLM call failed: {e}")

    if not response.choices:
        return None, None
    choice = response.choices[0]
    return choice.message, choice.finish_reason


def capture_tool_calls(raw_tool_calls) -> tuple[ToolCall, ...]:
    """Convert provider tool calls to ToolCall records.

    Calls without an id, or repeating an id already seen in this response,
    are logged and dropped: no tool turn could answer them unambiguously.
    """
    calls = []
    seen: set[str] = set()
    for tc in raw_tool_calls:
        function = _get(tc, "function")
        name = _get(function, "name", "") or ""
        call_id = _get(tc, "id")
        if not call_id:
            fmt.tool_error(name or "?", "tool call missing id, skipping")
            continue
        if call_id in seen:
            fmt.tool_error(name or "?", f"duplicate tool call id {call_id!r}, skipping")
            continue
        seen.add(call_id)
        calls.append(
            ToolCall(
                id=call_id,
                name=name,
                arguments=canonical_arguments(_get(function, "arguments")),
            )
        )
    return tuple(calls)


def handle_tool_call(
    tool_call: ToolCall, mode: Mode, base_dir: str, verbose: bool
) -> ToolTurn:
    """Execute a single tool call and return the tool turn answering it.

    Never raises: unknown tools, plan-mode refusals, bad arguments and tool
    faults all come back as ``error:`` results.
    """
    name = tool_call.name

    if verbose:
        pretty = tool_call.arguments
        if len(pretty) > MAX_ARG_LOG:
            pretty = pretty[:MAX_ARG_LOG] + "\n... (truncated)"
        fmt.tool_call(name, pretty)

    capability = lookup(name)
    if capability is None:
        fmt.tool_error(name, "unknown tool, skipped")
        return ToolTurn(tool_call.id, f"error: unknown tool {name!r}")

    if mode is Mode.PLAN and is_mutating(capability):
        fmt.tool_refused(name)
        return ToolTurn(tool_call.id, plan_mode_refusal(name))

    try:
        parsed_args = json.loads(tool_call.arguments)
    except json.JSONDecodeError as e:
        if verbose:
            fmt.tool_error(name, f"invalid JSON: {e}")
        return ToolTurn(tool_call.id, f"error: invalid JSON in tool arguments: {e}")
    if not isinstance(parsed_args, dict):
        return ToolTurn(tool_call.id, "error: tool arguments must be a JSON object")

    t0 = time.monotonic()
    try:
        result = dispatch(name, parsed_args, base_dir)
    except KeyError as e:
        result = f"error: missing required argument {e}"
    except Exception as e:
        result = f"error: {e}"
    elapsed = time.monotonic() - t0

    if verbose:
        if result.startswith("error:"):
            fmt.tool_error(name, result)
        else:
            fmt.tool_result(name, elapsed, result)

    return ToolTurn(tool_call.id, result)


@dataclass
class ExchangeResult:
    """Outcome of one user-input-to-answer cycle.

    outcome is one of "done", "exhausted", "no_response", "error" or
    "interrupted". answer is only set for "done".
    """

    outcome: str
    answer: str | None = None
    iterations: int = 0
    error: str | None = None


def _iterate(
    state: SessionState,
    *,
    system_prompt: str,
    model_id: str,
    base_dir: str,
    llm_kwargs: dict,
    verbose: bool,
) -> ExchangeResult:
    """Run completion/tool rounds until a final answer or MAX_ITERATIONS."""
    conversation = state.conversation
    iteration = 0

    while iteration < MAX_ITERATIONS:
        iteration += 1
        tools = tools_for_mode(state.mode)
        messages = build_messages(system_prompt, state)
        if verbose:
            fmt.iteration_header(
                iteration, MAX_ITERATIONS, _safe_estimate(messages, tools)
            )

        t0 = time.monotonic()
        with fmt.llm_spinner():
            msg, finish_reason = call_llm(
                model_id, messages, tools, verbose, **llm_kwargs
            )
        if verbose:
            fmt.llm_timing(time.monotonic() - t0, finish_reason)

        if msg is None:
            fmt.no_response()
            return ExchangeResult("no_response", iterations=iteration)

        content = extract_text(_get(msg, "content"))
        raw_tool_calls = _get(msg, "tool_calls")

        if raw_tool_calls:
            if content and verbose:
                fmt.assistant_text(content)
            calls = capture_tool_calls(raw_tool_calls)
            if not calls:
                continue
            conversation.append(AssistantTurn(content, calls))
            for call in calls:
                conversation.append(
                    handle_tool_call(call, state.mode, base_dir, verbose)
                )
            continue

        answer = content or NO_RESPONSE
        conversation.append(AssistantTurn(answer))
        return ExchangeResult("done", answer=answer, iterations=iteration)

    fmt.iterations_exhausted(MAX_ITERATIONS)
    return ExchangeResult("exhausted", iterations=iteration)


def run_exchange(state: SessionState, message: str, **loop_kwargs) -> ExchangeResult:
    """Append the user's message and run the agent loop.

    On any failure mid-exchange (including Ctrl-C) the conversation is rolled
    back to where it was before the message was added.
    """
    conversation = state.conversation
    mark = len(conversation)
    conversation.append(UserTurn(message))

    try:
        return _iterate(state, **loop_kwargs)
    except AgentError as e:
        conversation.rollback(mark)
        fmt.error(str(e))
        return ExchangeResult("error", error=str(e))
    except KeyboardInterrupt:
        conversation.rollback(mark)
        fmt.warning("interrupted, exchange aborted.")
        return ExchangeResult("interrupted")
    except Exception as e:
        conversation.rollback(mark)
        msg = f"unexpected error: {type(e).__name__}: {e}"
        fmt.error(msg)
        return ExchangeResult("error", error=msg)


def respond(state: SessionState, message: str, **loop_kwargs) -> ExchangeResult:
    """Run one exchange and print its answer."""
    plan_mode = state.plan_mode
    result = run_exchange(state, message, **loop_kwargs)
    if result.outcome == "done":
        fmt.answer_header(plan_mode)
        print(result.answer)
        if plan_mode:
            fmt.approve_hint()
    return result


def _make_prompt_session():
    from prompt_toolkit import PromptSession
    from prompt_toolkit.formatted_text import FormattedText
    from prompt_toolkit.history import InMemoryHistory

    return PromptSession(
        message=FormattedText([("bold fg:ansicyan", "> ")]),
        history=InMemoryHistory(),
    )


def repl_loop(state: SessionState, **loop_kwargs) -> None:
    """Interactive read-eval-print loop. Returns when the session ends."""
    session = _make_prompt_session()
    run_chat = functools.partial(respond, **loop_kwargs)

    while True:
        try:
            print(file=sys.stderr)  # blank line before prompt
            line = session.prompt()
        except (EOFError, KeyboardInterrupt):
            fmt.session_ended()
            break

        if not process_line(line, state, run_chat):
            break


def build_parser():
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mistral-code",
        description=(
            "An interactive coding agent that reads, lists, edits files and runs "
            "commands, with a read-only plan mode."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version and exit.",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=_UNSET,
        help="Model identifier (default: mistral/mistral-small-latest).",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=_UNSET,
        help="API key (overrides the MISTRAL_API_KEY env var).",
    )
    parser.add_argument(
        "--base-url",
        default=_UNSET,
        help="Override the provider's API base URL.",
    )
    parser.add_argument(
        "--max-output-tokens",
        type=int,
        default=_UNSET,
        help="Maximum output tokens per completion (default: 8192).",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=_UNSET,
        help="Sampling temperature (default: provider default).",
    )
    parser.add_argument(
        "--top-p",
        type=float,
        default=_UNSET,
        help="Top-p (nucleus) sampling (default: provider default).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=_UNSET,
        help="Random seed for reproducible outputs (model support varies).",
    )
    parser.add_argument(
        "--system-prompt",
        type=str,
        default=_UNSET,
        help="Replace the built-in system prompt.",
    )
    parser.add_argument(
        "--base-dir",
        type=str,
        default=".",
        help="Directory relative tool paths resolve against (default: current directory).",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=_UNSET,
        help="Hide per-iteration and per-tool diagnostics.",
    )

    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color",
        action="store_true",
        default=_UNSET,
        help="Force ANSI color even when stderr is not a TTY.",
    )
    color_group.add_argument(
        "--no-color",
        action="store_true",
        default=_UNSET,
        help="Disable ANSI color even when stderr is a TTY.",
    )

    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Print a template config file and exit.",
    )
    parser.add_argument(
        "--project",
        action="store_true",
        help="With --init-config, print the project-level template.",
    )

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.version:
        try:
            version = metadata.version("mistral-code")
        except metadata.PackageNotFoundError:
            version = "unknown"
        print(version)
        sys.exit(0)

    if args.init_config:
        print(generate_config(project=args.project))
        sys.exit(0)

    try:
        config = load_config(Path(args.base_dir))
        apply_config_to_args(args, config)
        fmt.init(color=args.color, no_color=args.no_color)
        args.verbose = not args.quiet
        _run_main(args)
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)


def _run_main(args):
    api_key = resolve_api_key(args)

    base_dir = args.base_dir
    if not Path(base_dir).is_dir():
        raise AgentError(f"--base-dir is not a directory: {base_dir}")

    loop_kwargs = dict(
        system_prompt=load_system_prompt(args.system_prompt, base_dir),
        model_id=args.model,
        base_dir=base_dir,
        llm_kwargs={
            "api_key": api_key,
            "base_url": args.base_url,
            "max_output_tokens": args.max_output_tokens,
            "temperature": args.temperature,
            "top_p": args.top_p,
            "seed": args.seed,
        },
        verbose=args.verbose,
    )

    fmt.repl_banner()
    if args.verbose:
        fmt.model_info(f"Model: {args.model}")
    repl_loop(SessionState(), **loop_kwargs)


if __name__ == "__main__":
    main()
