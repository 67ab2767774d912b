"""Live view of a sync session's state."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.table import Table

from .session import SyncSession
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SessionStats:
    """
    Snapshot of what a session currently mirrors.

    Attributes:
        user_id: Signed-in user, empty when signed out
        workspace_id: Resolved workspace, empty while pending
        members: Members of the resolved workspace
        properties: Properties visible to the user
        tags: Tags visible to the user
        pending_join_requests: Requests waiting for approval
        dedup_runs: Dedup batches attempted by the resolver
        started_at: When monitoring started
    """
    user_id: str = ""
    workspace_id: str = ""
    members: int = 0
    properties: int = 0
    tags: int = 0
    pending_join_requests: int = 0
    dedup_runs: int = 0
    started_at: Optional[datetime] = None

    @property
    def resolved(self) -> bool:
        return bool(self.workspace_id)

    def elapsed_time(self) -> timedelta:
        if not self.started_at:
            return timedelta(0)
        return datetime.now() - self.started_at


class SessionMonitor:
    """
    Display the state of a ``SyncSession``.

    Example:
        >>> monitor = SessionMonitor(session)
        >>> monitor.print_summary()      # One-time summary
        >>> await monitor.watch(limit=10)  # Live updates
    """

    def __init__(self, session: SyncSession, console: Optional[Console] = None):
        self.session = session
        self.console = console or Console()
        self.started_at: Optional[datetime] = None

    def compute_stats(self) -> SessionStats:
        workspace = self.session.workspace
        return SessionStats(
            user_id=self.session.user_id,
            workspace_id=(workspace.id or "") if workspace else "",
            members=workspace.member_count if workspace else 0,
            properties=len(self.session.properties.value),
            tags=len(self.session.tags.value),
            pending_join_requests=len(self.session.join_requests.value),
            dedup_runs=self.session.resolver.dedup_runs,
            started_at=self.started_at or datetime.now(),
        )

    def _table(self, stats: SessionStats, title: Optional[str] = None) -> Table:
        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("User", stats.user_id or "-")
        table.add_row("Workspace", stats.workspace_id or "[yellow]pending[/yellow]")
        table.add_row("Members", str(stats.members))
        table.add_row("Properties", str(stats.properties))
        table.add_row("Tags", str(stats.tags))
        table.add_row("Join Requests", str(stats.pending_join_requests))
        table.add_row("Dedup Runs", str(stats.dedup_runs))
        table.add_row("Elapsed", str(stats.elapsed_time()).split('.')[0])
        return table

    def print_summary(self) -> SessionStats:
        stats = self.compute_stats()
        self.console.print(self._table(stats, title="Session Summary"))
        return stats

    async def watch(self, interval: float = 2.0, limit: Optional[int] = None) -> SessionStats:
        """
        Refresh the table every ``interval`` seconds.

        Args:
            interval: Update interval in seconds
            limit: Stop after this many refreshes (runs until cancelled when None)
        """
        if not self.started_at:
            self.started_at = datetime.now()
        refreshes = 0
        stats = self.compute_stats()
        with Live(console=self.console, refresh_per_second=1) as live:
            while True:
                stats = self.compute_stats()
                live.update(self._table(stats))
                refreshes += 1
                if limit is not None and refreshes >= limit:
                    break
                await asyncio.sleep(interval)
        return stats
