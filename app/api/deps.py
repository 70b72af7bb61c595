from fastapi import Depends, Request

from app.config import settings
from app.database import Database
from app.security import Actor, ROLE_ADMIN, ROLE_CASHIER, get_request_actor, require_role
from app.services.ledger import TransactionLedger
from app.services.points import PointsService
from app.services.table_registry import TableRegistry


def get_database(request: Request) -> Database:
    return request.app.state.db


async def get_db(database: Database = Depends(get_database)):
    async for session in database.session():
        yield session


def get_registry(database: Database = Depends(get_database)) -> TableRegistry:
    return TableRegistry(database.session_factory, settings.limits())


def get_ledger(
    database: Database = Depends(get_database),
    registry: TableRegistry = Depends(get_registry),
) -> TransactionLedger:
    return TransactionLedger(database.session_factory, registry, settings.limits())


def get_points(
    registry: TableRegistry = Depends(get_registry),
    ledger: TransactionLedger = Depends(get_ledger),
) -> PointsService:
    return PointsService(registry, ledger, settings.limits())


def current_actor(request: Request) -> Actor:
    return get_request_actor(request)


def require_cashier(request: Request, actor: Actor = Depends(current_actor)) -> Actor:
    return require_role(request, actor, ROLE_CASHIER, ROLE_ADMIN)


def require_admin(request: Request, actor: Actor = Depends(current_actor)) -> Actor:
    return require_role(request, actor, ROLE_ADMIN)
