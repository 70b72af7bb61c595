import logging

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import logs, points, tables
from app.config import settings
from app.database import Database
from app.errors import PointsError
from app.ws import LEADERBOARD_CHANNEL, event_manager

logger = logging.getLogger("tavoli")

app = FastAPI(title="QR Tavoli - 积分排行榜")

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(tables.router, prefix="/api/tables", tags=["桌子"])
app.include_router(points.router, prefix="/api/points", tags=["积分"])
app.include_router(logs.router, prefix="/api/logs", tags=["日志"])


@app.exception_handler(PointsError)
async def points_error_handler(request: Request, exc: PointsError):
    logger.info(
        "request rejected code=%s method=%s path=%s detail=%s",
        exc.code, request.method, request.url.path, exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup():
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    # 测试可以预先注入自己的存储
    if getattr(app.state, "db", None) is None:
        app.state.db = Database(settings.DATABASE_URL)
    await app.state.db.create_tables()


@app.on_event("shutdown")
async def shutdown():
    db = getattr(app.state, "db", None)
    if db is not None:
        await db.dispose()
        app.state.db = None


@app.get("/")
async def root():
    return {"message": "欢迎使用 QR Tavoli 积分系统"}


@app.websocket("/ws/leaderboard")
async def websocket_leaderboard(websocket: WebSocket):
    # 仅用于推送积分变动，客户端发送的内容忽略
    await event_manager.connect(LEADERBOARD_CHANNEL, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        event_manager.disconnect(LEADERBOARD_CHANNEL, websocket)
