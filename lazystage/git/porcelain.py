"""Parser for ``git status --porcelain=v2 -z --branch`` output.

Produces branch metadata plus one record per changed path; records are later
classified into staged, unstaged, untracked, and conflicted entries.
"""

from __future__ import annotations

from dataclasses import dataclass, field

STATUS_ARGS = (
    "status",
    "--porcelain=v2",
    "-z",
    "--branch",
    "--find-renames",
    "--untracked-files=normal",
)

KIND_ORDINARY = "ordinary"
KIND_RENAMED = "renamed"
KIND_UNMERGED = "unmerged"
KIND_UNTRACKED = "untracked"

_UNMERGED_LABELS = {
    "DD": "both deleted",
    "AU": "added by us",
    "UD": "deleted by them",
    "UA": "added by them",
    "DU": "deleted by us",
    "AA": "both added",
    "UU": "both modified",
}


@dataclass(frozen=True)
class BranchInfo:
    head: str | None = None
    oid: str | None = None
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0

    @property
    def detached(self) -> bool:
        return self.head == "(detached)"

    @property
    def unborn(self) -> bool:
        return self.oid == "(initial)"


@dataclass(frozen=True)
class StatusRecord:
    """One porcelain v2 entry.

    ``index_status`` / ``worktree_status`` are the X and Y columns; ``.`` means
    unchanged on that side.
    """

    kind: str
    path: str
    index_status: str = "."
    worktree_status: str = "."
    orig_path: str | None = None
    score: str | None = None

    @property
    def xy(self) -> str:
        return self.index_status + self.worktree_status

    @property
    def has_staged_change(self) -> bool:
        return self.kind in {KIND_ORDINARY, KIND_RENAMED} and self.index_status != "."

    @property
    def has_unstaged_change(self) -> bool:
        return self.kind in {KIND_ORDINARY, KIND_RENAMED} and self.worktree_status != "."

    @property
    def conflict_label(self) -> str:
        return _UNMERGED_LABELS.get(self.xy, "unmerged")


@dataclass(frozen=True)
class PorcelainStatus:
    branch: BranchInfo = field(default_factory=BranchInfo)
    records: tuple[StatusRecord, ...] = ()

    def staged(self) -> list[StatusRecord]:
        return [record for record in self.records if record.has_staged_change]

    def unstaged(self) -> list[StatusRecord]:
        return [record for record in self.records if record.has_unstaged_change]

    def untracked(self) -> list[StatusRecord]:
        return [record for record in self.records if record.kind == KIND_UNTRACKED]

    def conflicted(self) -> list[StatusRecord]:
        return [record for record in self.records if record.kind == KIND_UNMERGED]


def _parse_branch_header(line: str, values: dict[str, object]) -> None:
    parts = line.split(" ")
    if len(parts) < 3:
        return
    key = parts[1]
    if key == "branch.oid":
        values["oid"] = parts[2]
    elif key == "branch.head":
        values["head"] = " ".join(parts[2:])
    elif key == "branch.upstream":
        values["upstream"] = parts[2]
    elif key == "branch.ab" and len(parts) >= 4:
        try:
            values["ahead"] = abs(int(parts[2]))
            values["behind"] = abs(int(parts[3]))
        except ValueError:
            pass


def parse_porcelain_v2(output: str) -> PorcelainStatus:
    """Parse NUL-separated porcelain v2 records.

    Renamed/copied entries (``2``) are followed by their original path as a
    separate NUL-terminated token. Ignored (``!``) and unknown records are
    skipped rather than rejected.
    """
    tokens = output.split("\0")
    branch_values: dict[str, object] = {}
    records: list[StatusRecord] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        index += 1
        if not token:
            continue

        tag = token[0]
        if tag == "#":
            _parse_branch_header(token, branch_values)
        elif tag == "1":
            # 1 XY sub mH mI mW hH hI path
            parts = token.split(" ", 8)
            if len(parts) < 9:
                continue
            records.append(StatusRecord(KIND_ORDINARY, parts[8], parts[1][0], parts[1][1]))
        elif tag == "2":
            # 2 XY sub mH mI mW hH hI Xscore path, then origPath token
            parts = token.split(" ", 9)
            if len(parts) < 10:
                continue
            orig_path = tokens[index] if index < len(tokens) else None
            index += 1
            records.append(
                StatusRecord(
                    KIND_RENAMED,
                    parts[9],
                    parts[1][0],
                    parts[1][1],
                    orig_path=orig_path or None,
                    score=parts[8],
                )
            )
        elif tag == "u":
            # u XY sub m1 m2 m3 mW h1 h2 h3 path
            parts = token.split(" ", 10)
            if len(parts) < 11:
                continue
            records.append(StatusRecord(KIND_UNMERGED, parts[10], parts[1][0], parts[1][1]))
        elif tag == "?":
            records.append(StatusRecord(KIND_UNTRACKED, token[2:], "?", "?"))

    branch = BranchInfo(
        head=branch_values.get("head"),  # type: ignore[arg-type]
        oid=branch_values.get("oid"),  # type: ignore[arg-type]
        upstream=branch_values.get("upstream"),  # type: ignore[arg-type]
        ahead=int(branch_values.get("ahead", 0)),  # type: ignore[arg-type]
        behind=int(branch_values.get("behind", 0)),  # type: ignore[arg-type]
    )
    return PorcelainStatus(branch=branch, records=tuple(records))


__all__ = [
    "BranchInfo",
    "KIND_ORDINARY",
    "KIND_RENAMED",
    "KIND_UNMERGED",
    "KIND_UNTRACKED",
    "PorcelainStatus",
    "STATUS_ARGS",
    "StatusRecord",
    "parse_porcelain_v2",
]
