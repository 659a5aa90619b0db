#!/usr/bin/env python3
"""
Utility script to view the privileged-action audit trail.
Usage: python scripts/view_audit_logs.py [limit] [page]
"""

import asyncio
import sys
import os
from rich.console import Console
from rich.table import Table
from rich import print as rprint

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from holly.config import settings
from holly.audit import recorder
from holly.auth.database import get_engine, get_session_factory, init_db

console = Console()


def _actor_name(view) -> str:
    if view.actor is None:
        return view.user_id
    full = " ".join(p for p in (view.actor.first_name, view.actor.last_name) if p)
    return full or view.actor.username or view.actor.email or view.user_id


async def view_logs(limit: int = 20, page: int = 1):
    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)
    db = get_session_factory(engine)()

    try:
        logs, total = await recorder.list_logs(db, limit=limit, offset=(page - 1) * limit)
        rprint(f"[green]{total} audit records in {settings.DATABASE_URL}[/green]")

        table = Table(title=f"Audit Logs (page {page} of {recorder.total_pages(total, limit)})")
        table.add_column("Time", style="cyan", no_wrap=True)
        table.add_column("Action", style="magenta")
        table.add_column("User", style="yellow")
        table.add_column("Entity", style="green")
        table.add_column("Details", style="white")
        table.add_column("IP", style="blue")

        for view in logs:
            details_str = str(view.details)
            if len(details_str) > 50:
                details_str = details_str[:47] + "..."
            table.add_row(
                view.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                view.action,
                _actor_name(view),
                f"{view.entity_type}/{view.entity_id or '-'}",
                details_str,
                view.ip_address or "",
            )

        if not logs:
            console.print("[yellow]No audit logs found.[/yellow]")
        else:
            console.print(table)
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    limit = int(sys.argv[1]) if len(sys.argv) > 1 else 20
    page = int(sys.argv[2]) if len(sys.argv) > 2 else 1
    asyncio.run(view_logs(limit, page))
