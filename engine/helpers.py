"""
Helper functions for the engine package.
Pure utility functions with minimal dependencies.
"""
from __future__ import annotations
import asyncio
from typing import Coroutine, Optional, Set

from logging_config import get_logger

logger = get_logger(__name__)


def create_tracked_task(coro: Coroutine, registry: Set[asyncio.Task], name: Optional[str] = None) -> asyncio.Task:
    """
    Create a background task with automatic cleanup and error logging.
    Prevents silent failures and ensures tasks complete even if references are lost.

    Args:
        coro: Coroutine to schedule
        registry: Set owned by the caller that keeps the task referenced until done
        name: Optional task name (shows up in asyncio debug output)
    """
    task = asyncio.create_task(coro, name=name)
    registry.add(task)

    def cleanup(t):
        registry.discard(t)
        try:
            t.result()
        except asyncio.CancelledError:
            pass  # Expected on supersession and shutdown
        except Exception as e:
            logger.error(f"Background task failed: {e}", exc_info=True)

    task.add_done_callback(cleanup)
    return task


async def cancel_tasks(tasks: Set[asyncio.Task]) -> None:
    """Cancel every task in the set and wait for them to finish."""
    pending = [t for t in tasks if not t.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


def normalize_text(text: Optional[str]) -> str:
    """Lowercase and keep only alphanumerics. Used for identity comparisons."""
    if not text:
        return ""
    return "".join(c for c in text.lower() if c.isalnum())


def normalize_for_match(text: Optional[str]) -> str:
    """Lowercase and trim whitespace. Used by the catalog scoring heuristic."""
    if not text:
        return ""
    return text.strip().lower()


def normalize_track_id(artist: Optional[str], title: Optional[str], source_id: Optional[str] = None) -> str:
    """
    Generates a consistent, source-agnostic track ID.
    Used to prevent duplicate track changes when two sources report the same song.
    """
    track_id = f"{normalize_text(artist)}_{normalize_text(title)}"
    if source_id:
        track_id += f"#{source_id.strip()}"
    return track_id
