"""
WebSocket fan-out of job progress.

Pipelines run in worker threads; `publish` hands their updates to the
server's event loop, which pushes them to every subscriber of the job.
"""

import asyncio
from typing import Any, Dict, List, Optional

from fastapi import WebSocket


class ConnectionManager:
    """Subscribers per job id."""

    def __init__(self):
        self.subscribers: Dict[str, List[WebSocket]] = {}

    async def connect(self, job_id: str, websocket: WebSocket):
        """Accept a subscriber for one job."""
        await websocket.accept()
        self.subscribers.setdefault(job_id, []).append(websocket)

    def disconnect(self, job_id: str, websocket: WebSocket):
        sockets = self.subscribers.get(job_id, [])
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            self.subscribers.pop(job_id, None)

    def has_connections(self, job_id: str) -> bool:
        return bool(self.subscribers.get(job_id))

    async def send_update(self, job_id: str, payload: Dict[str, Any]):
        """Send one update to every subscriber; drop the ones that went away."""
        for websocket in list(self.subscribers.get(job_id, [])):
            try:
                await websocket.send_json(payload)
            except (RuntimeError, OSError):
                self.disconnect(job_id, websocket)

    def publish(
        self,
        job_id: str,
        payload: Dict[str, Any],
        loop: Optional[asyncio.AbstractEventLoop],
    ) -> None:
        """
        Schedule an update from a worker thread onto the server's event loop.

        Fire-and-forget: the pipeline never waits for delivery.
        """
        if loop is None or loop.is_closed() or not self.has_connections(job_id):
            return
        asyncio.run_coroutine_threadsafe(self.send_update(job_id, payload), loop)
