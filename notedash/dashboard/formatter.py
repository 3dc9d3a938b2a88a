"""
Rich formatter for the dashboard.

Renders the live section list as panels of item tables for the CLI.
"""

from typing import List, Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich import box

from notedash.dashboard.actions import HandlerResult
from notedash.dashboard.models import ItemType, Section, SectionCode, SectionItem
from notedash.dashboard.perspectives import PerspectiveDef

# Icons per item type
TYPE_ICONS = {
    ItemType.OPEN_TASK: "[dim]○[/dim]",
    ItemType.CHECKLIST: "[dim]□[/dim]",
    ItemType.DONE: "[green]✓[/green]",
    ItemType.TIMEBLOCK: "[cyan]◷[/cyan]",
    ItemType.PROJECT: "[magenta]◆[/magenta]",
}

# Priority colors
PRIORITY_COLORS = {
    4: "magenta bold",
    3: "red bold",
    2: "yellow",
    1: "white",
}

SECTION_STYLES = {
    SectionCode.TIMEBLOCK: "cyan",
    SectionCode.TODAY: "blue",
    SectionCode.OVERDUE: "red",
    SectionCode.PRIORITY: "yellow",
    SectionCode.PROJECTS: "magenta",
    SectionCode.TAG: "green",
}


class DashboardFormatter:
    """
    Rich-based formatter for dashboard sections.
    """

    def __init__(self, console: Optional[Console] = None, show_ids: bool = False):
        """
        Initialize formatter.

        Args:
            console: Rich Console instance (creates default if not provided)
            show_ids: Include the per-pass item ids in the output
        """
        self.console = console or Console()
        self.show_ids = show_ids

    def _format_priority(self, priority: int) -> str:
        if priority <= 0:
            return ""
        color = PRIORITY_COLORS.get(priority, "white")
        label = ">>" if priority == 4 else "!" * priority
        return f"[{color}]{label}[/{color}]"

    def _depth(self, item: SectionItem, by_id) -> int:
        depth = 0
        parent = item.parent_id
        while parent is not None and parent in by_id and depth < 10:
            depth += 1
            parent = by_id[parent].parent_id
        return depth

    def format_section(self, section: Section) -> Panel:
        """
        Create a panel for one section.

        Args:
            section: Section to render

        Returns:
            Rich Panel with an item table
        """
        style = SECTION_STYLES.get(section.section_code, "white")
        count = section.total_count if section.total_count is not None else len(section.items)
        title = f"[bold]{section.name}[/bold] [dim]({count})[/dim]"
        if section.done_counts and section.done_counts.completed_tasks:
            title += f" [green]✓ {section.done_counts.completed_tasks}[/green]"

        if not section.items:
            description = section.description.replace("{count}", "0") or "Nothing to show"
            return Panel(Text(description, style="dim"), title=title,
                         border_style=style, padding=(0, 1))

        table = Table(show_header=False, box=None, padding=(0, 1), expand=True)
        if self.show_ids:
            table.add_column("ID", width=6)
        table.add_column("Icon", width=2)
        table.add_column("Item", ratio=1)
        table.add_column("Where", width=22, justify="right")
        table.add_column("Priority", width=4, justify="right")

        by_id = {item.id: item for item in section.items}
        for item in section.items:
            icon = TYPE_ICONS.get(item.item_type, "○")
            if item.project is not None:
                project = item.project
                percent = f"{project.percent_complete:.0f}%" if project.percent_complete is not None else ""
                text = f"{project.title} [dim]{project.last_progress_comment}[/dim]"
                row = [icon, text, f"[dim]{project.review_interval}[/dim]", percent]
            else:
                para = item.para
                indent = "  " * self._depth(item, by_id)
                content = para.content if len(para.content) <= 70 else para.content[:67] + "..."
                row = [icon, f"{indent}{content}", f"[dim]{para.note_title}[/dim]",
                       self._format_priority(para.priority)]
            if self.show_ids:
                row.insert(0, f"[dim]{item.id}[/dim]")
            table.add_row(*row)

        if section.total_count and section.total_count > len(section.items):
            extra = section.total_count - len(section.items)
            row = ["", f"[dim]+ {extra} more...[/dim]", "", ""]
            if self.show_ids:
                row.insert(0, "")
            table.add_row(*row)

        return Panel(table, title=title, border_style=style, padding=(0, 1))

    def format_footer(self, total_done: int, perspective: str) -> Text:
        footer = Text(justify="center")
        footer.append(f"{total_done} done today", style="green")
        footer.append("  |  ", style="dim")
        footer.append(f"Perspective: {perspective}", style="dim")
        return footer

    def render(self, sections: List[Section], total_done: int = 0, perspective: str = "-") -> Group:
        """Build the whole dashboard as one renderable"""
        parts = [self.format_section(s) for s in sections]
        if not parts:
            parts.append(Panel(Text("No sections to show", style="dim", justify="center"),
                               border_style="dim"))
        parts.append(self.format_footer(total_done, perspective))
        return Group(*parts)

    def print_dashboard(self, sections: List[Section], total_done: int = 0, perspective: str = "-") -> None:
        self.console.print(self.render(sections, total_done, perspective))

    def format_perspectives(self, perspectives: List[PerspectiveDef]) -> Table:
        table = Table(title="Perspectives", box=box.SIMPLE)
        table.add_column("Name")
        table.add_column("Active", justify="center")
        table.add_column("Modified", justify="center")
        table.add_column("Saved settings", justify="right")
        for p in perspectives:
            table.add_row(
                f"[bold]{p.name}[/bold]" if p.is_active else p.name,
                "[green]●[/green]" if p.is_active else "",
                "[yellow]*[/yellow]" if p.is_modified else "",
                str(len(p.dashboard_settings)),
            )
        return table

    def format_result(self, result: HandlerResult) -> Text:
        style = "green" if result.success else "red"
        text = Text(f"{'✓' if result.success else '✗'} ", style=style)
        text.append(result.message or ("Done" if result.success else "Failed"))
        if result.payload and "count" in result.payload:
            text.append(f" ({result.payload['count']} items)", style="dim")
        return text
