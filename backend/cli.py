"""
Table Cart CLI.

Command-line interface for local operation: schema, demo data and
credentials for testing the diner and staff flows.
"""

import asyncio
import sys

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="tablecart",
    help="Table Cart operations CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Database Commands
# =============================================================================

@app.command()
def init_db(
    drop: bool = typer.Option(False, "--drop", help="Drop every table first"),
):
    """Create the database schema."""
    from shared.config.settings import settings
    from shared.infrastructure.db import engine
    from rest_api.models import Base

    if drop:
        if settings.environment == "production":
            console.print("[red]Refusing to drop tables in production[/red]")
            raise typer.Exit(1)
        Base.metadata.drop_all(bind=engine)
        console.print("[yellow]Dropped all tables[/yellow]")

    Base.metadata.create_all(bind=engine)
    console.print(f"[green]✓ Schema ready on {engine.dialect.name}[/green]")


@app.command()
def seed_demo():
    """Create a demo store with tables and a small menu (idempotent)."""
    from shared.infrastructure.db import get_db_context
    from rest_api.seed import seed

    with get_db_context() as db:
        store = seed(db)
        console.print(f"[green]✓ Demo store ready:[/green] {store.name} ({store.id})")


# =============================================================================
# Credential Commands
# =============================================================================

@app.command()
def table_credentials(
    store_id: str = typer.Option(None, "--store", help="Store id (default: every store)"),
):
    """Print join credentials (short code and QR token) for tables."""
    from sqlalchemy import select

    from shared.infrastructure.db import get_db_context
    from rest_api.models import Table as TableModel
    from rest_api.services.domain import issue_qr_token

    with get_db_context() as db:
        query = select(TableModel).order_by(TableModel.store_id, TableModel.label)
        if store_id:
            query = query.where(TableModel.store_id == store_id)
        tables = db.scalars(query).all()

        if not tables:
            console.print("[yellow]No tables found. Run seed-demo first.[/yellow]")
            raise typer.Exit(1)

        output = Table(title="Table credentials")
        output.add_column("Table", style="cyan")
        output.add_column("Status")
        output.add_column("Short code", style="green")
        output.add_column("QR token", overflow="fold")
        for table in tables:
            output.add_row(table.label, table.status, table.short_code, issue_qr_token(table))
        console.print(output)


@app.command()
def staff_token(
    store_id: str = typer.Option(..., "--store", help="Store id"),
    role: list[str] = typer.Option(["WAITER"], "--role", "-r", help="Role (repeatable)"),
    user_id: str = typer.Option("cli-staff", "--user", help="Staff user id"),
):
    """Issue a staff bearer token for local testing."""
    from shared.config.constants import Roles
    from shared.security.auth import sign_staff_token

    unknown = [r for r in role if r not in Roles.ALL]
    if unknown:
        console.print(f"[red]Unknown role(s): {', '.join(unknown)}. Valid: {', '.join(Roles.ALL)}[/red]")
        raise typer.Exit(1)

    console.print(sign_staff_token(user_id=user_id, store_id=store_id, roles=role))


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health():
    """Check database and Redis connectivity."""
    from shared.infrastructure.events import check_redis_health
    from rest_api.routers.public.health import check_database_health

    async def _health():
        return await asyncio.gather(check_database_health(), check_redis_health())

    table = Table(title="Dependency Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Latency", style="yellow")
    table.add_column("Error", style="red")

    for result in asyncio.run(_health()):
        latency = f"{result.latency_ms:.0f}ms" if result.latency_ms is not None else "-"
        table.add_row(result.component, result.status.value, latency, result.error or "")
    console.print(table)


@app.command()
def version():
    """Show version information."""
    table = Table(title="Table Cart Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("API", "0.1.0")
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()
