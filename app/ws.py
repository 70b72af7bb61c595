from typing import Dict, Set
from fastapi import WebSocket

LEADERBOARD_CHANNEL = "leaderboard"


class ConnectionManager:
    def __init__(self):
        self.active: Dict[str, Set[WebSocket]] = {}

    async def connect(self, channel: str, websocket: WebSocket):
        await websocket.accept()
        self.active.setdefault(channel, set()).add(websocket)

    def disconnect(self, channel: str, websocket: WebSocket):
        self.active.get(channel, set()).discard(websocket)

    async def broadcast(self, channel: str, message: dict):
        for ws in list(self.active.get(channel, set())):
            try:
                await ws.send_json(message)
            except Exception:
                # 连接已断开，下次不再推送
                self.disconnect(channel, ws)


event_manager = ConnectionManager()


async def broadcast_table_update(table, op: str):
    await event_manager.broadcast(LEADERBOARD_CHANNEL, {
        "type": "table_update",
        "op": op,
        "table_id": table.id,
        "number": table.number,
        "display_name": table.display_name,
        "balance": table.balance,
        "active": table.active,
    })
