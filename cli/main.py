"""CLI entry point: novelkeep 章节结构与版本管理。

用法：
  novelkeep novels               列出所有小说
  novelkeep tree -n 1            查看章节树
  novelkeep save -c 3 draft.txt  保存章节内容并记录版本
  novelkeep history -c 3         查看版本历史
  novelkeep --help               查看所有命令
"""

import logging
import os
import sys
from pathlib import Path

# Ensure UTF-8 output on Windows to avoid GBK encoding errors with Rich
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")

import click
from rich.markup import escape
from rich.table import Table

from cli.theme import (
    get_console,
    app_header,
    success_panel,
    chapter_tree_view,
    timeline_table,
    diff_view,
    comparison_panel,
)
from config.exceptions import NovelKeepError
from config.logging_config import setup_logging
from config.settings import Settings
from manuscript.chapter_manager import ChapterManager
from models.database import Database
from models.enums import ChapterType
from models.novel import Novel
from tools.text_utils import preview

console = get_console()


def _init_logging(settings: Settings, verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


def _manager(ctx) -> ChapterManager:
    return ctx.obj["manager"]


def _fail(error: NovelKeepError):
    console.print(f"[error]{escape(str(error))}[/]")
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--db", "db_path", type=click.Path(path_type=Path), default=None,
              help="数据库文件路径（默认读取 .env 配置）")
@click.pass_context
def cli(ctx, verbose, db_path):
    """novelkeep：小说章节树与版本历史管理

    \b
    常用命令：
      novelkeep novel-new "长夜将明"
      novelkeep chapter-new -n 1 "第一卷" --type volume
      novelkeep move -c 5 -p 2 --position 0
      novelkeep diff 12 15
    """
    settings = Settings(sqlite_db_path=db_path) if db_path else Settings()
    _init_logging(settings, verbose)
    db = Database(settings.sqlite_db_path)
    ctx.obj = {
        "settings": settings,
        "db": db,
        "manager": ChapterManager(db, settings=settings),
    }


# ---------------------------------------------------------------------------
# novel commands
# ---------------------------------------------------------------------------

@cli.command(name="novel-new")
@click.argument("title")
@click.option("--author", "-a", default="", help="作者")
@click.option("--description", "-d", default="", help="简介")
@click.pass_context
def novel_new(ctx, title, author, description):
    """创建新小说。"""
    title = title.strip()
    if not title:
        console.print("[error]小说标题不能为空[/]")
        sys.exit(1)
    db = ctx.obj["db"]
    novel_id = db.create_novel(Novel(title=title, author=author, description=description))
    console.print(success_panel("小说已创建", f"  {title} [muted](ID: {novel_id})[/]"))


@cli.command()
@click.pass_context
def novels(ctx):
    """列出所有小说。"""
    items = ctx.obj["db"].list_novels()
    if not items:
        console.print("[warning]暂无小说记录。使用 [info]novelkeep novel-new[/] 创建新小说。[/]")
        return
    table = Table(title="小说列表", border_style="dim")
    table.add_column("ID", style="chapter.num")
    table.add_column("标题", style="bold")
    table.add_column("作者")
    table.add_column("状态")
    table.add_column("字数", justify="right")
    for n in items:
        table.add_row(str(n.id), n.title, n.author or "-", n.status.value, f"{n.word_count:,}")
    console.print(table)


# ---------------------------------------------------------------------------
# chapter tree commands
# ---------------------------------------------------------------------------

@cli.command(name="chapter-new")
@click.option("--novel-id", "-n", required=True, type=int, help="小说ID")
@click.option("--parent", "-p", default=None, type=int, help="父章节ID（不指定则为顶层）")
@click.option("--type", "chapter_type", default="chapter",
              type=click.Choice([t.value for t in ChapterType]), help="卷 / 章 / 幕")
@click.argument("title")
@click.pass_context
def chapter_new(ctx, novel_id, parent, chapter_type, title):
    """新建章节。"""
    try:
        chapter = _manager(ctx).create_chapter(novel_id, title, parent, ChapterType(chapter_type))
    except NovelKeepError as e:
        _fail(e)
    console.print(f"[success]章节已创建：{chapter.title}（ID {chapter.id}）[/]")


@cli.command()
@click.option("--novel-id", "-n", required=True, type=int, help="小说ID")
@click.pass_context
def tree(ctx, novel_id):
    """查看章节树。"""
    try:
        novel = ctx.obj["db"].get_novel(novel_id)
        chapter_tree = _manager(ctx).list_tree(novel_id)
    except NovelKeepError as e:
        _fail(e)
    console.print(app_header(novel.title))
    if not len(chapter_tree):
        console.print("[warning]暂无章节。使用 [info]novelkeep chapter-new[/] 新建。[/]")
        return
    console.print(chapter_tree_view(chapter_tree))


@cli.command()
@click.option("--chapter", "-c", "chapter_id", required=True, type=int, help="要移动的章节ID")
@click.option("--parent", "-p", default=None, type=int, help="新的父章节ID（不指定则移到顶层）")
@click.option("--position", default=0, type=int, help="在兄弟章节中的位置（从0开始）")
@click.pass_context
def move(ctx, chapter_id, parent, position):
    """移动章节到新的父章节下。"""
    try:
        _manager(ctx).move_chapter(chapter_id, parent, position)
    except NovelKeepError as e:
        _fail(e)
    target = f"章节 {parent} 下" if parent is not None else "顶层"
    console.print(f"[success]章节 {chapter_id} 已移动到{target}，位置 {position}[/]")


# ---------------------------------------------------------------------------
# revision commands
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--chapter", "-c", "chapter_id", required=True, type=int, help="章节ID")
@click.option("--message", "-m", default="", help="版本说明")
@click.option("--auto", "is_auto_save", is_flag=True, help="标记为自动保存")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.pass_context
def save(ctx, chapter_id, message, is_auto_save, source):
    """保存章节正文（从文件或标准输入读取）并记录版本。"""
    content = source.read()
    try:
        version = _manager(ctx).save_content(chapter_id, content, message, is_auto_save)
    except NovelKeepError as e:
        _fail(e)
    kind = "快照" if version.is_snapshot else "差异"
    console.print(f"[success]已保存版本 {version.id}（{kind}，{version.word_count} 字）[/]")


@cli.command()
@click.option("--chapter", "-c", "chapter_id", required=True, type=int, help="章节ID")
@click.pass_context
def history(ctx, chapter_id):
    """查看章节版本历史。"""
    manager = _manager(ctx)
    try:
        entries = manager.revisions.timeline(chapter_id)
        patterns = manager.revisions.version_patterns(chapter_id)
    except NovelKeepError as e:
        _fail(e)
    if not entries:
        console.print("[warning]该章节还没有保存过版本。[/]")
        return
    console.print(timeline_table(entries))
    console.print(
        f"[muted]共 {patterns.total_versions} 个版本（自动 {patterns.auto_save_count}，"
        f"手动 {patterns.manual_save_count}），平均间隔 "
        f"{patterns.average_seconds_between_saves} 秒[/]"
    )


@cli.command()
@click.argument("version_id", type=int)
@click.option("--apply", "apply_to_chapter", is_flag=True, help="恢复为章节当前正文")
@click.pass_context
def restore(ctx, version_id, apply_to_chapter):
    """输出某个历史版本的完整内容。"""
    manager = _manager(ctx)
    try:
        content = manager.revisions.restore(version_id)
        if apply_to_chapter:
            version = ctx.obj["db"].get_chapter_version(version_id)
            new_version = manager.restore_chapter(version.chapter_id, version_id)
    except NovelKeepError as e:
        _fail(e)
    if apply_to_chapter:
        console.print(f"[success]已恢复版本 {version_id}，记录为新版本 {new_version.id}[/]")
    else:
        click.echo(content, nl=False)


@cli.command()
@click.argument("version1", type=int)
@click.argument("version2", type=int)
@click.option("--unified", "-u", is_flag=True, help="输出按行的统一差异格式")
@click.pass_context
def diff(ctx, version1, version2, unified):
    """比较两个版本。"""
    revisions = _manager(ctx).revisions
    try:
        comparison = revisions.compare(version1, version2)
    except NovelKeepError as e:
        _fail(e)
    if unified:
        patch = revisions.diff_engine.create_patch(comparison.old_text, comparison.new_text)
        click.echo(patch, nl=False)
        return
    console.print(comparison_panel(comparison))
    console.print(diff_view(revisions.diff_engine, comparison.old_text, comparison.new_text))
    for chunk in comparison.similar_chunks:
        console.print(
            f"[muted]相似 {chunk.similarity:.0%}: 行 {chunk.old_index + 1} → 行 "
            f"{chunk.new_index + 1}[/] {preview(chunk.new_text)}"
        )


@cli.command()
@click.option("--chapter", "-c", "chapter_id", required=True, type=int, help="章节ID")
@click.option("--keep", "-k", default=None, type=int, help="保留的自动保存数量（默认读取配置）")
@click.pass_context
def prune(ctx, chapter_id, keep):
    """清理过期的自动保存版本。"""
    settings = ctx.obj["settings"]
    keep_count = settings.auto_save_keep_count if keep is None else keep
    try:
        removed = _manager(ctx).revisions.prune_auto_saves(chapter_id, keep_count)
    except NovelKeepError as e:
        _fail(e)
    console.print(f"[success]已清理 {removed} 个自动保存版本（保留 {keep_count} 个）[/]")


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
