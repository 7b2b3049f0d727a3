"""Status tree model: sections of entries, flattened into rows.

Entries are rebuilt wholesale from every snapshot. Their identity is
``(classification, path)``, so expansion and cursor state survive reordering
and content changes between refreshes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from ..diff.model import FilePair, Hunk
from ..git.porcelain import KIND_UNMERGED, KIND_UNTRACKED, StatusRecord
from ..git.snapshot import CommitSummary, RepoSnapshot
from .expansion import MODE_COLLAPSED, MODE_EXPANDED, ExpansionState

Classification = Literal["conflicted", "untracked", "unstaged", "staged"]
RowKind = Literal["head", "upstream", "sequencer", "section", "entry", "hunk", "line", "commit"]

SECTION_CONFLICTED = "conflicted"
SECTION_UNTRACKED = "untracked"
SECTION_UNSTAGED = "unstaged"
SECTION_STAGED = "staged"
SECTION_UNPUSHED = "unpushed"
SECTION_UNPULLED = "unpulled"
SECTION_RECENT = "recent"

SECTION_ORDER = (
    SECTION_CONFLICTED,
    SECTION_UNTRACKED,
    SECTION_UNSTAGED,
    SECTION_STAGED,
    SECTION_UNPUSHED,
    SECTION_UNPULLED,
    SECTION_RECENT,
)
FILE_SECTIONS = frozenset({SECTION_CONFLICTED, SECTION_UNTRACKED, SECTION_UNSTAGED, SECTION_STAGED})

_SECTION_TITLES = {
    SECTION_CONFLICTED: "Unmerged paths",
    SECTION_UNTRACKED: "Untracked files",
    SECTION_UNSTAGED: "Unstaged changes",
    SECTION_STAGED: "Staged changes",
    SECTION_UNPUSHED: "Unpushed to {upstream}",
    SECTION_UNPULLED: "Unpulled from {upstream}",
    SECTION_RECENT: "Recent commits",
}

Identity = tuple[str, str]


@dataclass(frozen=True)
class StatusEntry:
    path: str
    classification: Classification
    status_code: str
    orig_path: str | None = None
    label: str = ""
    diff: FilePair | None = None

    @property
    def identity(self) -> Identity:
        return (self.classification, self.path)

    @property
    def hunks(self) -> tuple[Hunk, ...]:
        return self.diff.hunks if self.diff is not None else ()

    @property
    def display(self) -> str:
        name = f"{self.orig_path} -> {self.path}" if self.orig_path else self.path
        if self.label:
            return f"{self.label}: {name}"
        return f"{self.status_code} {name}"


@dataclass(frozen=True)
class Section:
    name: str
    title: str
    entries: tuple[StatusEntry, ...] = ()
    commits: tuple[CommitSummary, ...] = ()

    def __len__(self) -> int:
        return len(self.entries) + len(self.commits)


@dataclass(frozen=True)
class StatusRow:
    """One rendered line of the status surface.

    ``line_index`` indexes ``hunk.lines`` of the entry's ``hunk_index`` hunk.
    """

    kind: RowKind
    text: str
    section: str | None = None
    path: str | None = None
    hunk_index: int | None = None
    line_index: int | None = None
    commit: str | None = None
    depth: int = 0

    @property
    def key(self) -> tuple:
        return (self.kind, self.section, self.path, self.hunk_index, self.line_index, self.commit)

    @property
    def identity(self) -> Identity | None:
        if self.section in FILE_SECTIONS and self.path is not None:
            return (self.section, self.path)
        return None


@dataclass(frozen=True)
class StatusTree:
    snapshot: RepoSnapshot
    sections: tuple[Section, ...] = ()
    rows: tuple[StatusRow, ...] = ()

    def __len__(self) -> int:
        return len(self.rows)

    def section(self, name: str) -> Section | None:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def entry(self, identity: Identity) -> StatusEntry | None:
        section = self.section(identity[0])
        if section is None:
            return None
        for entry in section.entries:
            if entry.path == identity[1]:
                return entry
        return None

    def entry_for_row(self, row: int) -> StatusEntry | None:
        if not 0 <= row < len(self.rows):
            return None
        identity = self.rows[row].identity
        return self.entry(identity) if identity is not None else None

    def find_row(self, key: tuple) -> int | None:
        for index, row in enumerate(self.rows):
            if row.key == key:
                return index
        return None

    @property
    def entries(self) -> list[StatusEntry]:
        return [entry for section in self.sections for entry in section.entries]


def _entry_from_record(record: StatusRecord, classification: Classification) -> StatusEntry:
    if classification == SECTION_CONFLICTED:
        return StatusEntry(record.path, classification, record.xy, label=record.conflict_label)
    if classification == SECTION_UNTRACKED:
        return StatusEntry(record.path, classification, "?")
    code = record.index_status if classification == SECTION_STAGED else record.worktree_status
    orig_path = record.orig_path if classification == SECTION_STAGED else None
    return StatusEntry(record.path, classification, code, orig_path=orig_path)


def classify_entries(snapshot: RepoSnapshot) -> dict[str, tuple[StatusEntry, ...]]:
    """Split porcelain records into file sections; one record may land in two."""
    sections: dict[str, list[StatusEntry]] = {name: [] for name in FILE_SECTIONS}
    for record in snapshot.status.records:
        if record.kind == KIND_UNMERGED:
            sections[SECTION_CONFLICTED].append(_entry_from_record(record, SECTION_CONFLICTED))
            continue
        if record.kind == KIND_UNTRACKED:
            sections[SECTION_UNTRACKED].append(_entry_from_record(record, SECTION_UNTRACKED))
            continue
        if record.has_staged_change:
            sections[SECTION_STAGED].append(_entry_from_record(record, SECTION_STAGED))
        if record.has_unstaged_change:
            sections[SECTION_UNSTAGED].append(_entry_from_record(record, SECTION_UNSTAGED))
    return {name: tuple(entries) for name, entries in sections.items()}


def build_sections(
    snapshot: RepoSnapshot,
    entries: Mapping[str, tuple[StatusEntry, ...]],
) -> tuple[Section, ...]:
    upstream = snapshot.status.branch.upstream or "upstream"
    commits = {
        SECTION_UNPUSHED: snapshot.unpushed,
        SECTION_UNPULLED: snapshot.unpulled,
        SECTION_RECENT: snapshot.recent,
    }
    sections: list[Section] = []
    for name in SECTION_ORDER:
        title = _SECTION_TITLES[name].format(upstream=upstream)
        if name in FILE_SECTIONS:
            section = Section(name, title, entries=tuple(entries.get(name, ())))
        else:
            section = Section(name, title, commits=tuple(commits[name]))
        if len(section):
            sections.append(section)
    return tuple(sections)


def _head_rows(snapshot: RepoSnapshot) -> list[StatusRow]:
    branch = snapshot.status.branch
    head = branch.head or "(unknown)"
    if branch.detached and branch.oid:
        head = f"(detached) {branch.oid[:7]}"
    subject = snapshot.head_subject or ("(no commits yet)" if branch.unborn else "")
    rows = [StatusRow("head", f"Head:     {head} {subject}".rstrip())]
    if branch.upstream:
        counts = []
        if branch.ahead:
            counts.append(f"ahead {branch.ahead}")
        if branch.behind:
            counts.append(f"behind {branch.behind}")
        suffix = f" ({', '.join(counts)})" if counts else ""
        rows.append(StatusRow("upstream", f"Upstream: {branch.upstream}{suffix}"))
    sequencer = snapshot.sequencer
    label = sequencer.label
    if label is not None:
        detail = sequencer.merge_head or sequencer.rebase_onto
        text = f"{label} {detail[:7]}" if detail else label
        rows.append(StatusRow("sequencer", text))
    return rows


def _entry_rows(section: str, entry: StatusEntry, expansion: ExpansionState) -> list[StatusRow]:
    rows = [StatusRow("entry", entry.display, section=section, path=entry.path, depth=1)]
    state = expansion.file_state(entry.identity)
    if state.mode == MODE_COLLAPSED:
        return rows
    for hunk_index, hunk in enumerate(entry.hunks):
        rows.append(
            StatusRow("hunk", hunk.header, section=section, path=entry.path, hunk_index=hunk_index, depth=2)
        )
        show_lines = (state.mode == MODE_EXPANDED) != (hunk_index in state.toggled_hunks)
        if not show_lines:
            continue
        for line_index, line in enumerate(hunk.lines):
            rows.append(
                StatusRow(
                    "line",
                    line.prefix + line.text,
                    section=section,
                    path=entry.path,
                    hunk_index=hunk_index,
                    line_index=line_index,
                    depth=3,
                )
            )
    return rows


def build_rows(snapshot: RepoSnapshot, sections: tuple[Section, ...], expansion: ExpansionState) -> tuple[StatusRow, ...]:
    rows = _head_rows(snapshot)
    for section in sections:
        rows.append(StatusRow("section", f"{section.title} ({len(section)})", section=section.name))
        if expansion.is_section_collapsed(section.name):
            continue
        for entry in section.entries:
            rows.extend(_entry_rows(section.name, entry, expansion))
        for commit in section.commits:
            rows.append(
                StatusRow("commit", f"{commit.short} {commit.subject}", section=section.name, commit=commit.oid, depth=1)
            )
    return tuple(rows)


def build_status_tree(
    snapshot: RepoSnapshot,
    entries: Mapping[str, tuple[StatusEntry, ...]],
    expansion: ExpansionState,
) -> StatusTree:
    sections = build_sections(snapshot, entries)
    return StatusTree(snapshot=snapshot, sections=sections, rows=build_rows(snapshot, sections, expansion))


@dataclass
class DiffCache:
    """Last fetched ``FilePair`` per entry identity, pruned on every refresh."""

    pairs: dict[Identity, FilePair | None] = field(default_factory=dict)

    def __contains__(self, identity: Identity) -> bool:
        return identity in self.pairs

    def get(self, identity: Identity) -> FilePair | None:
        return self.pairs.get(identity)

    def put(self, identity: Identity, pair: FilePair | None) -> None:
        self.pairs[identity] = pair

    def prune(self, live: set[Identity]) -> None:
        for identity in [key for key in self.pairs if key not in live]:
            del self.pairs[identity]


__all__ = [
    "Classification",
    "DiffCache",
    "FILE_SECTIONS",
    "Identity",
    "RowKind",
    "SECTION_CONFLICTED",
    "SECTION_ORDER",
    "SECTION_RECENT",
    "SECTION_STAGED",
    "SECTION_UNPULLED",
    "SECTION_UNPUSHED",
    "SECTION_UNSTAGED",
    "SECTION_UNTRACKED",
    "Section",
    "StatusEntry",
    "StatusRow",
    "StatusTree",
    "build_rows",
    "build_sections",
    "build_status_tree",
    "classify_entries",
]
