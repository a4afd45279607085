from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from rich.color import ColorSystem
from rich.style import Style

from .economics import round_half_up
from .rows import (
    CallToActionRow,
    ColumnKeyRow,
    ContextIndexRow,
    DayHeaderRow,
    EconomicsRow,
    EmptyNoticeRow,
    FileGroupRow,
    FullRow,
    GroupEndRow,
    HeaderRow,
    IndexRow,
    LastSummaryRow,
    LegendRow,
    PreviouslyRow,
    Row,
    SectionRow,
    SummaryMarkerRow,
)

EMPTY_NOTICE = "No previous sessions found for this project yet."
COLUMN_KEY_READ = "Read: Tokens to read this observation (cost to learn it now)"
COLUMN_KEY_WORK = (
    "Work: Tokens spent on work that produced this record ( research, building, deciding)"
)
CONTEXT_INDEX_INTRO = (
    "Context Index: This semantic index (titles, types, files, tokens) is usually "
    "sufficient to understand past work."
)
CONTEXT_INDEX_WHEN = "When you need implementation details, rationale, or debugging context:"
CONTEXT_INDEX_TIPS = (
    "Use MCP tools (search, get_observations) to fetch full observations on-demand",
    "Critical types ( bugfix, decision) often need detailed fetching",
    "Trust this index over re-reading code for past decisions and learnings",
)
RULE_WIDTH = 60


def savings_text(row: EconomicsRow) -> str:
    if row.show_amount and row.show_percent:
        return f"{row.savings:,} tokens ({row.savings_percent}% reduction from reuse)"
    if row.show_amount:
        return f"{row.savings:,} tokens"
    return f"{row.savings_percent}% reduction from reuse"


def call_to_action_text(row: CallToActionRow) -> str:
    return (
        f"Access {round_half_up(row.discovery_tokens / 1000)}k tokens of past research & "
        f"decisions for just {row.read_tokens:,}t. Use MCP search tools to access memories by ID."
    )


def legend_text(row: LegendRow) -> str:
    types = " | ".join(f"{icon} {type_id}" for icon, type_id in row.entries)
    return f"Legend: session-request | {types}"


class Formatter(ABC):
    """Turns digest rows into text lines; one method per row kind."""

    def render(self, rows: Iterable[Row]) -> str:
        lines: list[str] = []
        for row in rows:
            lines.extend(getattr(self, row.kind)(row))
        return "\n".join(lines).rstrip()

    @abstractmethod
    def header(self, row: HeaderRow) -> list[str]: ...

    @abstractmethod
    def legend(self, row: LegendRow) -> list[str]: ...

    @abstractmethod
    def column_key(self, row: ColumnKeyRow) -> list[str]: ...

    @abstractmethod
    def context_index(self, row: ContextIndexRow) -> list[str]: ...

    @abstractmethod
    def economics(self, row: EconomicsRow) -> list[str]: ...

    @abstractmethod
    def day_header(self, row: DayHeaderRow) -> list[str]: ...

    @abstractmethod
    def summary_marker(self, row: SummaryMarkerRow) -> list[str]: ...

    @abstractmethod
    def file_group(self, row: FileGroupRow) -> list[str]: ...

    def group_end(self, row: GroupEndRow) -> list[str]:
        return [""]

    @abstractmethod
    def index_row(self, row: IndexRow) -> list[str]: ...

    @abstractmethod
    def full_row(self, row: FullRow) -> list[str]: ...

    @abstractmethod
    def section(self, row: SectionRow) -> list[str]: ...

    @abstractmethod
    def last_summary(self, row: LastSummaryRow) -> list[str]: ...

    @abstractmethod
    def previously(self, row: PreviouslyRow) -> list[str]: ...

    @abstractmethod
    def call_to_action(self, row: CallToActionRow) -> list[str]: ...

    @abstractmethod
    def empty_notice(self, row: EmptyNoticeRow) -> list[str]: ...


class PlainFormatter(Formatter):
    """Markdown output for model context."""

    def header(self, row: HeaderRow) -> list[str]:
        return [f"# [{row.project}] recent context, {row.timestamp}", ""]

    def legend(self, row: LegendRow) -> list[str]:
        return [f"**Legend:**{legend_text(row).removeprefix('Legend:')}", ""]

    def column_key(self, row: ColumnKeyRow) -> list[str]:
        read_label, read_text = COLUMN_KEY_READ.split(": ", 1)
        work_label, work_text = COLUMN_KEY_WORK.split(": ", 1)
        return [
            "**Column Key**:",
            f"- **{read_label}**: {read_text}",
            f"- **{work_label}**: {work_text}",
            "",
        ]

    def context_index(self, row: ContextIndexRow) -> list[str]:
        label, text = CONTEXT_INDEX_INTRO.split(": ", 1)
        return [
            f"**{label}:** {text}",
            "",
            CONTEXT_INDEX_WHEN,
            *(f"- {tip}" for tip in CONTEXT_INDEX_TIPS),
            "",
        ]

    def economics(self, row: EconomicsRow) -> list[str]:
        lines = [
            "**Context Economics**:",
            f"- Loading: {row.count} observations ({row.read_tokens:,} tokens to read)",
            f"- Work investment: {row.discovery_tokens:,} tokens spent on research, "
            "building, and decisions",
        ]
        if row.shows_savings:
            lines.append(f"- Your savings: {savings_text(row)}")
        lines.append("")
        return lines

    def day_header(self, row: DayHeaderRow) -> list[str]:
        return [f"### {row.label}", ""]

    def summary_marker(self, row: SummaryMarkerRow) -> list[str]:
        return [f"**#S{row.summary_id}** {row.request} ({row.time_label})", ""]

    def file_group(self, row: FileGroupRow) -> list[str]:
        return [
            f"**{row.name}**",
            "| ID | Time | T | Title | Read | Work |",
            "|----|------|---|-------|------|------|",
        ]

    @staticmethod
    def _time(row: IndexRow | FullRow) -> str:
        return row.time_label if row.show_time else '"'

    @staticmethod
    def _read(row: IndexRow | FullRow) -> str:
        return f"~{row.read_tokens}" if row.read_tokens is not None else ""

    @staticmethod
    def _work(row: IndexRow | FullRow) -> str:
        if row.work_tokens is None:
            return ""
        return f"{row.work_icon} {row.work_tokens:,}"

    def index_row(self, row: IndexRow) -> list[str]:
        return [
            f"| #{row.observation_id} | {self._time(row)} | {row.icon} | {row.title} "
            f"| {self._read(row)} | {self._work(row)} |"
        ]

    def full_row(self, row: FullRow) -> list[str]:
        lines = [f"**#{row.observation_id}** {self._time(row)} {row.icon} **{row.title}**"]
        if row.detail:
            lines.extend(["", row.detail, ""])
        costs: list[str] = []
        if row.read_tokens is not None:
            costs.append(f"Read: {self._read(row)}")
        if row.work_tokens is not None:
            costs.append(f"Work: {self._work(row)}")
        if costs:
            lines.append(", ".join(costs))
        lines.append("")
        return lines

    def section(self, row: SectionRow) -> list[str]:
        return ["", f"## {row.section.title}", *row.section.lines]

    def last_summary(self, row: LastSummaryRow) -> list[str]:
        lines: list[str] = []
        for label, value in row.fields:
            lines.extend([f"**{label}**: {value}", ""])
        return lines

    def previously(self, row: PreviouslyRow) -> list[str]:
        return ["", "---", "", "**Previously**", "", f"A: {row.message}", ""]

    def call_to_action(self, row: CallToActionRow) -> list[str]:
        return ["", call_to_action_text(row)]

    def empty_notice(self, row: EmptyNoticeRow) -> list[str]:
        return [EMPTY_NOTICE]


class AnsiFormatter(Formatter):
    """Colored fixed-width output for terminals."""

    SUMMARY_COLORS = {
        "Investigated": "blue",
        "Learned": "yellow",
        "Completed": "green",
        "Next Steps": "magenta",
    }

    def __init__(self, color_system: ColorSystem = ColorSystem.STANDARD) -> None:
        self.color_system = color_system
        self._styles: dict[str, Style] = {}

    def style(self, text: str, definition: str) -> str:
        style = self._styles.get(definition)
        if style is None:
            style = self._styles[definition] = Style.parse(definition)
        return style.render(text, color_system=self.color_system)

    def dim(self, text: str) -> str:
        return self.style(text, "dim")

    def header(self, row: HeaderRow) -> list[str]:
        return [
            "",
            self.style(f"[{row.project}] recent context, {row.timestamp}", "bold cyan"),
            self.style("─" * RULE_WIDTH, "bright_black"),
            "",
        ]

    def legend(self, row: LegendRow) -> list[str]:
        return [self.dim(legend_text(row)), ""]

    def column_key(self, row: ColumnKeyRow) -> list[str]:
        return [
            self.style("Column Key", "bold"),
            self.dim(f"  {COLUMN_KEY_READ}"),
            self.dim(f"  {COLUMN_KEY_WORK}"),
            "",
        ]

    def context_index(self, row: ContextIndexRow) -> list[str]:
        return [
            self.dim(CONTEXT_INDEX_INTRO),
            "",
            self.dim(CONTEXT_INDEX_WHEN),
            *(self.dim(f"  - {tip}") for tip in CONTEXT_INDEX_TIPS),
            "",
        ]

    def economics(self, row: EconomicsRow) -> list[str]:
        lines = [
            self.style("Context Economics", "bold cyan"),
            self.dim(f"  Loading: {row.count} observations ({row.read_tokens:,} tokens to read)"),
            self.dim(
                f"  Work investment: {row.discovery_tokens:,} tokens spent on research, "
                "building, and decisions"
            ),
        ]
        if row.shows_savings:
            lines.append(self.style(f"  Your savings: {savings_text(row)}", "green"))
        lines.append("")
        return lines

    def day_header(self, row: DayHeaderRow) -> list[str]:
        return [self.style(row.label, "bold cyan"), ""]

    def summary_marker(self, row: SummaryMarkerRow) -> list[str]:
        return [f"{self.style(f'#S{row.summary_id}', 'yellow')} {row.request} ({row.time_label})", ""]

    def file_group(self, row: FileGroupRow) -> list[str]:
        return [self.dim(row.name)]

    def _time(self, row: IndexRow | FullRow) -> str:
        return self.dim(row.time_label) if row.show_time else " " * len(row.time_label)

    def _costs(self, row: IndexRow | FullRow) -> tuple[str, str]:
        read = ""
        if row.read_tokens is not None:
            read = self.dim(f"(~{row.read_tokens}t)")
        work = ""
        if row.work_tokens is not None:
            work = self.dim(f"({row.work_icon} {row.work_tokens:,}t)")
        return read, work

    def index_row(self, row: IndexRow) -> list[str]:
        read, work = self._costs(row)
        cells = " ".join(part for part in (row.title, read, work) if part)
        return [f"  {self.dim(f'#{row.observation_id}')}  {self._time(row)}  {row.icon}  {cells}"]

    def full_row(self, row: FullRow) -> list[str]:
        lines = [
            f"  {self.dim(f'#{row.observation_id}')}  {self._time(row)}  {row.icon}  "
            f"{self.style(row.title, 'bold')}"
        ]
        if row.detail:
            lines.append(f"    {self.dim(row.detail)}")
        read, work = self._costs(row)
        if read or work:
            lines.append("    " + " ".join(part for part in (read, work) if part))
        lines.append("")
        return lines

    def section(self, row: SectionRow) -> list[str]:
        return ["", self.style(f"## {row.section.title}", "bold"), *row.section.lines]

    def last_summary(self, row: LastSummaryRow) -> list[str]:
        lines: list[str] = []
        for label, value in row.fields:
            color = self.SUMMARY_COLORS.get(label, "white")
            lines.extend([f"{self.style(f'{label}:', color)} {value}", ""])
        return lines

    def previously(self, row: PreviouslyRow) -> list[str]:
        return [
            "",
            "---",
            "",
            self.style("Previously", "bold magenta"),
            "",
            self.dim(f"A: {row.message}"),
            "",
        ]

    def call_to_action(self, row: CallToActionRow) -> list[str]:
        return ["", self.dim(call_to_action_text(row))]

    def empty_notice(self, row: EmptyNoticeRow) -> list[str]:
        return [self.dim(EMPTY_NOTICE)]


def formatter_for(ansi: bool) -> Formatter:
    return AnsiFormatter() if ansi else PlainFormatter()
