# src/rtodo/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable

from ..core.state import AppState
from ..errors import ValidationError
from ..tasks.task_models import Position
from ..view.store import ViewPhase, ViewState

CommandResult = str | Awaitable[str]
CommandHandler = Callable[[AppState, list[str]], CommandResult]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        result = handler(state, args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def render_view(state: AppState) -> str:
    view = state.view
    snap = view.get_state()
    day = view.context.day or state.tasks.today()
    counts = view.counts()

    lines = [f"{day.isoformat()}  ({counts.active} active, {counts.completed} done)"]
    for task in snap.tasks:
        mark = "x" if task.completed else " "
        lines.append(f"  [{mark}] #{task.id} {task.text}")
    if not snap.tasks:
        lines.append("  (no tasks)")
    if snap.error:
        lines.append(f"  ! {snap.error}")
    return "\n".join(lines)


def _parse_id(raw: str) -> int:
    try:
        return int(raw.lstrip("#"))
    except ValueError:
        raise ValidationError(f"not a task id: {raw!r}") from None


async def _show(state: AppState, before: ViewState) -> str:
    """Unpinned views skip their own reload after a mutation; the console always wants fresh output."""
    after = state.view.get_state()
    if after is not before and after.phase is ViewPhase.ERROR:
        return render_view(state)
    await state.view.reload()
    return render_view(state)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_list(state: AppState, args: list[str]) -> str:
    await state.view.load(args[0] if args else None)
    return render_view(state)


async def cmd_add(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /add <text>"
    before = state.view.get_state()
    await state.view.add(" ".join(args), state.view.context.day)
    return await _show(state, before)


async def cmd_toggle(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /toggle <id>"
    before = state.view.get_state()
    await state.view.toggle(_parse_id(args[0]))
    return await _show(state, before)


async def cmd_edit(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /edit <id> <text>"
    before = state.view.get_state()
    await state.view.edit(_parse_id(args[0]), " ".join(args[1:]))
    return await _show(state, before)


async def cmd_delete(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /del <id>"
    before = state.view.get_state()
    await state.view.delete(_parse_id(args[0]))
    return await _show(state, before)


async def cmd_clear(state: AppState, args: list[str]) -> str:
    before = state.view.get_state()
    n = await state.tasks.clear_completed()
    return f"Removed {n} completed task(s).\n{await _show(state, before)}"


async def cmd_order(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /order <id> <id> ..."
    ids = [_parse_id(a) for a in args]
    before = state.view.get_state()
    await state.view.reorder(ids)
    return await _show(state, before)


async def cmd_move(state: AppState, args: list[str]) -> str:
    if len(args) not in (2, 3):
        return "Usage: /move <id> <YYYY-MM-DD> [front|end]"
    position = args[2] if len(args) == 3 else Position.END
    before = state.view.get_state()
    await state.view.move_to_date(_parse_id(args[0]), args[1], position)
    return await _show(state, before)


async def cmd_dates(state: AppState, args: list[str]) -> str:
    past = await state.tasks.list_dates_at_or_before()
    future = await state.tasks.list_dates_after()
    return (
        "History: " + (", ".join(d.isoformat() for d in past) or "-") + "\n"
        "Upcoming: " + (", ".join(d.isoformat() for d in future) or "-")
    )


registry.register("help", cmd_help, "Show this help")
registry.register("list", cmd_list, "Show tasks for a date (default today): /list [YYYY-MM-DD]", aliases=["ls"])
registry.register("add", cmd_add, "Add a task to the shown date: /add <text>")
registry.register("toggle", cmd_toggle, "Complete / reopen a task: /toggle <id>", aliases=["t"])
registry.register("edit", cmd_edit, "Change task text: /edit <id> <text>")
registry.register("del", cmd_delete, "Delete a task: /del <id>", aliases=["rm"])
registry.register("clear", cmd_clear, "Remove all completed tasks (all dates)")
registry.register("order", cmd_order, "Reorder tasks: /order <id> <id> ...")
registry.register("move", cmd_move, "Move a task to another date: /move <id> <date> [front|end]")
registry.register("dates", cmd_dates, "List dates that have tasks")
