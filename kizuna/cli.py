#!/usr/bin/env python3
"""
Kizuna CLI - コンパニオン関係性エンジン管理ツール
Typer + Rich による管理・操作コマンド
"""

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .core.config import get_settings
from .domain.models.milestone import RELATIONSHIP_MILESTONES

app = typer.Typer(
    name="kizuna",
    help="Kizuna - コンパニオン関係性エンジン管理CLI",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


@app.command()
def server(
    host: str = typer.Option(None, help="サーバーのホストアドレス（既定: API_HOST）"),
    port: int = typer.Option(None, help="サーバーのポート番号（既定: API_PORT）"),
    reload: bool = typer.Option(False, help="開発モードでの自動リロード"),
):
    """
    FastAPI サーバーを起動します
    """
    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(Panel(
        f"[bold blue]Kizuna API Server[/bold blue]\n"
        f"🚀 起動中: http://{host}:{port}\n"
        f"📚 ドキュメント: http://{host}:{port}/docs",
        title="サーバー起動",
    ))

    import uvicorn

    uvicorn.run(
        "kizuna.api.main:app",
        host=host,
        port=port,
        reload=reload,
        access_log=True,
    )


@app.command("init-db")
def init_db(
    database_url: str = typer.Option(None, help="データベースURL（既定: KIZUNA_DB_URL）"),
):
    """
    データベースのテーブルを作成します
    """
    from .adapters.storage.sqlalchemy import SQLAlchemyStorageAdapter
    from .core.exceptions import KizunaException

    url = database_url or get_settings().database.url

    async def _run() -> None:
        storage = SQLAlchemyStorageAdapter(url)
        try:
            await storage.init_db()
        finally:
            await storage.close()

    try:
        asyncio.run(_run())
    except KizunaException as e:
        console.print(f"[red]❌ 初期化に失敗しました: {e.message}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold green]✅ テーブルを作成しました[/bold green] ({url})")


@app.command()
def milestones():
    """
    関係性マイルストーン一覧を表示します
    """
    table = Table(show_header=True, header_style="bold magenta", title="关系里程碑")
    table.add_column("", style="white")
    table.add_column("ID", style="cyan")
    table.add_column("名前", style="white")
    table.add_column("レベル", justify="right", style="yellow")
    table.add_column("互動数", justify="right", style="yellow")
    table.add_column("日数", justify="right", style="yellow")
    table.add_column("報酬pt", justify="right", style="green")

    for m in RELATIONSHIP_MILESTONES:
        table.add_row(
            m.icon,
            m.id,
            m.name,
            str(m.required_intimacy_level),
            str(m.required_interactions),
            str(m.required_days),
            str(m.reward.intimacy_points),
        )

    console.print(table)


@app.command()
def version():
    """
    バージョン情報を表示
    """
    console.print(Panel(
        f"[bold blue]Kizuna CLI[/bold blue] v{__version__}\n"
        f"🔧 Built with [bold]Typer[/bold]\n"
        f"🚀 Powered by [bold]FastAPI[/bold]",
        title="バージョン情報",
    ))


if __name__ == "__main__":
    app()
