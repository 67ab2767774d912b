"""Shared helpers for driving the event loop in store-backed tests."""

import asyncio
import json
from typing import Any

from propsync.store.memory import MemoryBackend


async def tick(times: int = 3) -> None:
    """Let already scheduled listener deliveries run."""
    for _ in range(times):
        await asyncio.sleep(0)


async def settle(*resolvers: Any, rounds: int = 30) -> None:
    """Alternate loop ticks and resolver drains until activity dies down."""
    for _ in range(rounds):
        await tick(5)
        for resolver in resolvers:
            await resolver.drain()
    await tick(5)


def fingerprint(backend: MemoryBackend) -> str:
    """Stable text form of every stored document, for before/after comparisons."""
    return json.dumps(backend.dump(), sort_keys=True, default=str)


def workspaces_containing(backend: MemoryBackend, user_id: str) -> list:
    return [
        doc for doc in backend.documents("workspaces")
        if user_id in doc.data.get("memberUserIds", [])
    ]
