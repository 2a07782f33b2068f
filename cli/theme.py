"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.theme import Theme
from rich.tree import Tree

from manuscript.chapter_tree import ChapterTree
from models.enums import ChapterType, VersionType
from models.version import VersionComparison, VersionTimelineEntry
from tools.diff_engine import TextDiffEngine

NOVEL_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "stat.label": "dim",
    "stat.value": "bold",
    "chapter.num": "blue",
    "diff.insert": "bold green",
    "diff.delete": "strike red",
})

_TYPE_LABELS = {
    ChapterType.VOLUME: "[bold cyan]卷[/]",
    ChapterType.CHAPTER: "[chapter.num]章[/]",
    ChapterType.SCENE: "[muted]幕[/]",
}


def get_console() -> Console:
    """Return a Console instance with the novel theme applied."""
    return Console(theme=NOVEL_THEME)


def app_header(title: str = "novelkeep") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{title}[/]", style="dim")


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def chapter_tree_view(tree: ChapterTree, title: str = "章节结构") -> Tree:
    """Build a Rich Tree mirroring the chapter hierarchy.

    Args:
        tree: A built ChapterTree.
        title: Label of the root element.
    """
    view = Tree(f"[bold]{title}[/]")
    branches = {}
    for node in tree.walk():
        chapter = node.chapter
        label = (
            f"{_TYPE_LABELS.get(chapter.chapter_type, '')} {chapter.title} "
            f"[muted](ID {chapter.id}, {chapter.word_count} 字)[/]"
        )
        parent_branch = branches.get(tree.parent_of(chapter.id), view)
        branches[chapter.id] = parent_branch.add(label)
    return view


def timeline_table(entries: list[VersionTimelineEntry]) -> Table:
    """Build a table of a chapter's version history, newest first."""
    table = Table(title="版本历史", box=box.ROUNDED, border_style="dim")
    table.add_column("版本", style="chapter.num", justify="right")
    table.add_column("时间")
    table.add_column("类型")
    table.add_column("字数", justify="right")
    table.add_column("保存方式")
    table.add_column("说明")

    for entry in entries:
        kind = "[accent]快照[/]" if entry.version_type == VersionType.SNAPSHOT else "差异"
        saved = "[muted]自动[/]" if entry.is_auto_save else "手动"
        when = entry.created_at.strftime("%Y-%m-%d %H:%M:%S") if entry.created_at else "-"
        table.add_row(
            str(entry.version_id), when, kind, str(entry.word_count), saved,
            entry.commit_message or "[muted]-[/]",
        )
    return table


def diff_view(engine: TextDiffEngine, old_text: str, new_text: str) -> Text:
    """Colourised inline diff: deletions struck through, insertions in green."""
    text = Text()
    for op, chunk in engine.align(old_text, new_text):
        if op < 0:
            text.append(chunk, style="diff.delete")
        elif op > 0:
            text.append(chunk, style="diff.insert")
        else:
            text.append(chunk)
    return text


def comparison_panel(comparison: VersionComparison) -> Panel:
    """Summary panel with change statistics for two versions."""
    stats = comparison.statistics
    body = (
        f"  [stat.label]新增:[/] [success]{stats.insertions}[/]  "
        f"[muted]|[/]  [stat.label]删除:[/] [error]{stats.deletions}[/]  "
        f"[muted]|[/]  [stat.label]未变:[/] [stat.value]{stats.unchanged}[/]  "
        f"[muted]|[/]  [stat.label]相似段落:[/] [stat.value]{len(comparison.similar_chunks)}[/]"
    )
    return Panel(
        body,
        title=f"[bold]版本 {comparison.version1.id} → {comparison.version2.id}[/]",
        box=box.ROUNDED,
        border_style="dim",
        padding=(0, 2),
    )
