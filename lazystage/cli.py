"""Command-line front door for lazystage.

Parses CLI options, opens the repository and dispatches to the status tree,
diff views, selection staging or the change watcher.
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import logging
from pathlib import Path
import shutil
import sys

from .config import MAX_VISIBILITY_LEVEL, MIN_VISIBILITY_LEVEL, AppConfig, save_visibility_level
from .diff.source import DiffSource
from .errors import LazyStageError
from .render import render_diff, render_status
from .repo_state import RepoRegistry, RepoState
from .status.controller import StatusController
from .status.tree import SECTION_CONFLICTED, SECTION_STAGED, SECTION_UNSTAGED, SECTION_UNTRACKED
from .view import DiffView, ViewOptions
from .watch.watcher import ChangeWatcher

logger = logging.getLogger(__name__)

_ENTRY_SECTIONS = {
    "stage": (SECTION_UNSTAGED, SECTION_UNTRACKED, SECTION_CONFLICTED),
    "unstage": (SECTION_STAGED,),
    "discard": (SECTION_UNSTAGED, SECTION_UNTRACKED),
}
_VIEW_SOURCES = {
    "stage": DiffSource.unstaged,
    "unstage": DiffSource.staged,
    "discard": DiffSource.unstaged,
}


def _positive_int(value: str) -> int:
    """argparse type for positive integer values."""
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be >= 1")
    return parsed


def _level(value: str) -> int:
    parsed = _positive_int(value)
    if parsed > MAX_VISIBILITY_LEVEL:
        raise argparse.ArgumentTypeError(f"level must be {MIN_VISIBILITY_LEVEL}-{MAX_VISIBILITY_LEVEL}")
    return parsed


def _line_range(value: str) -> tuple[int, int]:
    """argparse type for ``A-B`` (or a single ``A``) line ranges."""
    first, sep, last = value.partition("-")
    try:
        start = int(first)
        end = int(last) if sep else start
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid line range: {value!r}") from exc
    if start <= 0 or end < start:
        raise argparse.ArgumentTypeError(f"invalid line range: {value!r}")
    return start, end


def _default_width() -> int:
    return max(40, shutil.get_terminal_size((120, 24)).columns)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lazystage",
        description="Inspect git status and diffs, and stage, unstage or discard individual lines.",
    )
    parser.add_argument("-C", dest="repo", default=None, help="Run as if started in this directory.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log to stderr (-vv for debug).")
    parser.add_argument("--no-color", action="store_true", help="Disable color output even on TTY.")
    parser.add_argument("--style", default=None, help="Pygments style name for syntax highlighting.")
    parser.add_argument("--width", type=_positive_int, default=None, help="Output width (default: terminal width).")
    commands = parser.add_subparsers(dest="command")

    status = commands.add_parser("status", help="Print the status tree.")
    status.add_argument("repo_path", nargs="?", default=None, help="Repository path (default: current directory).")
    status.add_argument("--level", type=_level, default=None, help="Visibility level 1-4.")
    status.add_argument("--save-level", action="store_true", help="Persist --level as the default.")

    diff = commands.add_parser("diff", help="Print a side-by-side diff.")
    kind = diff.add_mutually_exclusive_group()
    kind.add_argument("--staged", action="store_true", help="HEAD against the index.")
    kind.add_argument("--worktree", action="store_true", help="HEAD against the worktree.")
    kind.add_argument("--commit", metavar="REF", help="Changes introduced by one commit.")
    kind.add_argument("--range", dest="revisions", metavar="A..B", help="Changes between two revisions.")
    kind.add_argument("--stash", nargs="?", const="stash@{0}", metavar="REF", help="Changes in a stash entry.")
    kind.add_argument("--three-way", action="store_true", help="HEAD, index and worktree side by side.")
    kind.add_argument("--merge", action="store_true", help="Ours, base and theirs for unmerged paths.")
    diff.add_argument("--file", default=None, help="Show only this path.")
    diff.add_argument("--context", type=int, default=None, help="Context lines (default: whole file).")
    diff.add_argument("paths", nargs="*", help="Limit the diff to these paths.")

    for name, verb in (("stage", "Stage"), ("unstage", "Unstage"), ("discard", "Discard")):
        action = commands.add_parser(name, help=f"{verb} a file, a hunk or a line range.")
        action.add_argument("path", help="File to act on.")
        selector = action.add_mutually_exclusive_group()
        selector.add_argument("--lines", type=_line_range, default=None, metavar="A-B", help="New-side line numbers.")
        selector.add_argument("--hunk", type=_positive_int, default=None, metavar="N", help="Nth change block (1-based).")
        action.add_argument("--force", action="store_true", help="Stage even if conflict markers remain.")

    watch = commands.add_parser("watch", help="Print the status tree and re-print it on changes.")
    watch.add_argument("repo_path", nargs="?", default=None, help="Repository path (default: current directory).")
    watch.add_argument("--level", type=_level, default=None, help="Visibility level 1-4.")
    return parser


def configure_logging(verbosity: int) -> None:
    if verbosity <= 0:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbosity > 1 else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def source_from_args(args: argparse.Namespace) -> DiffSource:
    paths = tuple(args.paths or ())
    if args.staged:
        return DiffSource.staged(*paths)
    if args.worktree:
        return DiffSource.worktree(*paths)
    if args.commit:
        return DiffSource.commit(args.commit, *paths)
    if args.revisions:
        return DiffSource.commit_range(args.revisions, *paths)
    if args.stash:
        return DiffSource.stash(args.stash)
    if args.three_way:
        return DiffSource.three_way(*paths)
    if args.merge:
        return DiffSource.merge(*paths)
    return DiffSource.unstaged(*paths)


def rows_for_lines(view: DiffView, first: int, last: int) -> tuple[int, int] | None:
    """Buffer rows spanning new-side lines ``first..last`` and deletions among them."""
    rows = [
        entry.buffer_row
        for entry in view.line_map.entries
        if entry.right_lineno is not None and first <= entry.right_lineno <= last
    ]
    if not rows:
        rows = [
            entry.buffer_row
            for entry in view.line_map.entries
            if entry.right_lineno is None and entry.left_lineno is not None and first <= entry.left_lineno <= last
        ]
    if not rows:
        return None
    start, end = min(rows), max(rows)
    # Pull in deletions sitting just after the last selected new-side line.
    while end + 1 < len(view.line_map) and view.line_map[end + 1].right_lineno is None:
        if view.line_map[end + 1].left_lineno is None:
            break
        end += 1
    return start, end


def rows_for_hunk(view: DiffView, number: int) -> tuple[int, int] | None:
    boundaries = view.line_map.boundary_rows
    if not 1 <= number <= len(boundaries):
        return None
    return view.line_map.change_run(boundaries[number - 1])


class CLI:
    def __init__(self, args: argparse.Namespace, config: AppConfig) -> None:
        self.args = args
        self.config = config
        self.registry = RepoRegistry(config)
        self.color = not args.no_color and sys.stdout.isatty()
        self.style = args.style or config.git.style
        self.width = args.width or _default_width()

    def emit(self, lines: list[str]) -> None:
        sys.stdout.write("\n".join(lines) + "\n")
        sys.stdout.flush()

    async def run(self) -> int:
        target = self.args.repo or getattr(self.args, "repo_path", None) or Path.cwd()
        state, error = await self.registry.open(Path(target))
        if error is not None:
            return self.fail(error)
        assert state is not None
        try:
            command = self.args.command or "status"
            if command == "status":
                return await self.status(state)
            if command == "diff":
                return await self.diff(state)
            if command == "watch":
                return await self.watch(state)
            return await self.act(state, command)
        finally:
            self.registry.close(state)

    def fail(self, error: LazyStageError) -> int:
        sys.stderr.write(f"lazystage: {error}\n")
        return 1

    async def _controller(self, state: RepoState, level: int | None, **kwargs) -> tuple[StatusController, int]:
        controller = StatusController(state, **kwargs)
        _, error = await controller.refresh()
        if error is not None:
            return controller, self.fail(error)
        if level is not None:
            _, error = await controller.set_visibility_level(level)
            if error is not None:
                return controller, self.fail(error)
        return controller, 0

    async def status(self, state: RepoState) -> int:
        level = getattr(self.args, "level", None)
        if level is not None and getattr(self.args, "save_level", False):
            save_visibility_level(level)
        controller, code = await self._controller(state, level)
        if code:
            return code
        self.emit(render_status(controller.tree, -1, color=self.color))
        return 0

    async def diff(self, state: RepoState) -> int:
        context = self.args.context
        opts = ViewOptions(path=self.args.file) if context is None else ViewOptions(context_lines=context, path=self.args.file)
        view = DiffView(state)
        _, error = await view.open(source_from_args(self.args), opts)
        if error is not None:
            return self.fail(error)
        if self.args.file is not None:
            if view.file_count and not view.select_file(self.args.file):
                return self.fail(LazyStageError(f"{self.args.file} has no changes in this diff"))
            self.emit(render_diff(view, width=self.width, color=self.color, style=self.style))
            return 0
        for index in range(max(1, view.file_count)):
            if index:
                view.next_file()
            view.cursor_row = -1
            self.emit(render_diff(view, width=self.width, color=self.color, style=self.style))
        return 0

    async def _confirm(self, path: str) -> bool:
        if self.args.force:
            return True
        sys.stderr.write(f"lazystage: {path} still has conflict markers; pass --force to stage it\n")
        return False

    async def act(self, state: RepoState, action: str) -> int:
        path = self.args.path
        if self.args.lines is None and self.args.hunk is None:
            return await self._act_whole(state, action, path)

        view = DiffView(state)
        _, error = await view.open(_VIEW_SOURCES[action](path), ViewOptions(path=path))
        if error is not None:
            return self.fail(error)
        if view.file_count == 0 or not view.select_file(path):
            return self.fail(LazyStageError(f"Nothing to {action} in {path}"))

        if self.args.lines is not None:
            rows = rows_for_lines(view, *self.args.lines)
        else:
            rows = rows_for_hunk(view, self.args.hunk)
        if rows is None:
            return self.fail(LazyStageError(f"Nothing to {action} at that selection"))

        handler = {
            "stage": view.stage_selection,
            "unstage": view.unstage_selection,
            "discard": view.discard_selection,
        }[action]
        ok, error = await handler(rows)
        if error is not None:
            return self.fail(error)
        return 0 if ok else 1

    async def _act_whole(self, state: RepoState, action: str, path: str) -> int:
        controller, code = await self._controller(state, max(2, self.config.git.visibility_level), confirm=self._confirm)
        if code:
            return code
        assert controller.tree is not None
        for section in _ENTRY_SECTIONS[action]:
            row = controller.tree.find_row(("entry", section, path, None, None, None))
            if row is None:
                continue
            done, error = await getattr(controller, f"{action}_rows")(row, row)
            if error is not None:
                return self.fail(error)
            return 0 if done else 1
        return self.fail(LazyStageError(f"Nothing to {action} in {path}"))

    async def watch(self, state: RepoState) -> int:
        watcher_config = replace(self.config.watcher, enabled=True, auto_refresh=True)
        controller = StatusController(state)

        def show(tree) -> None:
            self.emit(render_status(tree, -1, color=self.color, stale=controller.is_stale))

        _, error = await controller.refresh()
        if error is None and self.args.level is not None:
            _, error = await controller.set_visibility_level(self.args.level)
        if error is not None:
            return self.fail(error)
        show(controller.tree)
        controller.on_render = show

        watcher = ChangeWatcher(
            state,
            on_stale=controller.mark_stale,
            on_refresh=controller.refresh,
            config=watcher_config,
        )
        if not watcher.start():
            return self.fail(watcher.error or LazyStageError("change watching is disabled"))
        try:
            while watcher.active:
                await asyncio.sleep(0.5)
        finally:
            watcher.stop()
        return self.fail(watcher.error) if watcher.error is not None else 0


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and run one lazystage command.

    Exits with status 1 when git or the selection reports an error.
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    config = AppConfig.load()
    if args.style:
        config = replace(config, git=replace(config.git, style=args.style))
    try:
        code = asyncio.run(CLI(args, config).run())
    except KeyboardInterrupt:
        code = 130
    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
