# src/api/app.py
"""
FastAPI приложение сервиса заказов.
Транспортный слой: прикладные ошибки переводятся в HTTP-статусы здесь.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import get_principal, require_role
from src.api.schemas import (
    CancelRequest,
    DriverStatusRequest,
    ErrorResponse,
    HealthStatus,
    LocationUpdateRequest,
    RateRequest,
    StatusUpdateRequest,
)
from src.common.constants import CarClass, TypeMsg, UserRole
from src.common.exceptions import AppError, InvalidRequest, NotFound
from src.common.logger import log_error, log_info, log_warning
from src.config import settings
from src.config.loader import HourlyDiscount
from src.core.drivers.models import Driver, DriverLocation
from src.core.orders.models import Order, OrderCreateDTO
from src.core.orders.statistics import ClientStatistics, DriverStatistics
from src.core.pricing.models import PriceEstimate, PriceRequest
from src.core.users.models import Principal


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Жизненный цикл приложения."""
    await log_info("Order Service запускается...", type_msg=TypeMsg.INFO)

    from src.api.dependencies import close_dependencies, init_dependencies
    await init_dependencies()

    yield

    await close_dependencies()
    await log_info("Order Service остановлен", type_msg=TypeMsg.INFO)


# =============================================================================
# ПРИЛОЖЕНИЕ
# =============================================================================

app = FastAPI(
    title="Order Service",
    description="Жизненный цикл заказов, назначение водителей и расчёт стоимости",
    version=settings.system.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Некорректный запрос"},
    403: {"model": ErrorResponse, "description": "Нет прав"},
    404: {"model": ErrorResponse, "description": "Не найдено"},
    409: {"model": ErrorResponse, "description": "Конфликт состояния"},
}


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Прикладная ошибка -> {"error": {code, message}} с соответствующим статусом."""
    if exc.http_status >= 500:
        await log_error(f"{request.method} {request.url.path}: {exc!r}")
    else:
        await log_warning(f"{request.method} {request.url.path}: {exc!r}")
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Ошибки валидации запроса в том же формате, что и прикладные."""
    error = InvalidRequest("Некорректные данные запроса", details={"errors": jsonable_encoder(exc.errors())})
    return JSONResponse(
        status_code=error.http_status,
        content={"error": error.to_dict()},
    )


# =============================================================================
# HEALTH CHECK
# =============================================================================

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса."""
    from src.api.dependencies import get_db, get_event_bus, get_redis

    deps: dict[str, str] = {}
    checks = {"postgres": get_db, "redis": get_redis, "rabbitmq": get_event_bus}

    for name, getter in checks.items():
        try:
            client = await getter()
            deps[name] = "healthy" if await client.health_check() else "unhealthy"
        except RuntimeError:
            deps[name] = "unhealthy"

    overall = "healthy" if all(v == "healthy" for v in deps.values()) else "degraded"

    return HealthStatus(
        service="order_service",
        status=overall,
        version=settings.system.VERSION,
        dependencies=deps,
    )


# =============================================================================
# ORDERS API
# =============================================================================

@app.post(
    "/api/v1/orders/calculate",
    response_model=PriceEstimate,
    tags=["Orders"],
    responses=ERROR_RESPONSES,
)
async def calculate_price(
    request: PriceRequest,
    principal: Principal = Depends(get_principal),
) -> PriceEstimate:
    """Расчёт стоимости без создания заказа."""
    from src.api.dependencies import get_order_service

    require_role(principal, UserRole.CLIENT)
    service = await get_order_service()
    return service.calculate_price(request)


@app.get("/api/v1/price/hourly-discounts", response_model=list[HourlyDiscount], tags=["Orders"])
async def get_hourly_discounts() -> list[dict[str, float]]:
    """Таблица скидок почасовой аренды."""
    from src.api.dependencies import get_order_service

    service = await get_order_service()
    return service.get_hourly_discounts()


@app.post(
    "/api/v1/orders",
    response_model=Order,
    status_code=status.HTTP_201_CREATED,
    tags=["Orders"],
    responses=ERROR_RESPONSES,
)
async def create_order(
    request: OrderCreateDTO,
    principal: Principal = Depends(get_principal),
) -> Order:
    """Создание заказа."""
    from src.api.dependencies import get_order_service

    service = await get_order_service()
    return await service.create_order(principal, request)


@app.get("/api/v1/orders/user/history", response_model=list[Order], tags=["Orders"])
async def get_order_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(get_principal),
) -> list[Order]:
    """История заказов клиента."""
    from src.api.dependencies import get_order_service

    require_role(principal, UserRole.CLIENT)
    service = await get_order_service()
    return await service.get_client_orders(principal, limit=limit, offset=offset)


@app.get("/api/v1/orders/user/upcoming", response_model=list[Order], tags=["Orders"])
async def get_upcoming_orders(principal: Principal = Depends(get_principal)) -> list[Order]:
    """Предстоящие заказы клиента."""
    from src.api.dependencies import get_order_service

    require_role(principal, UserRole.CLIENT)
    service = await get_order_service()
    return await service.get_upcoming_orders(principal)


@app.get(
    "/api/v1/orders/available",
    response_model=list[Order],
    tags=["Orders"],
    responses=ERROR_RESPONSES,
)
async def get_available_orders(
    car_class: Optional[CarClass] = None,
    principal: Principal = Depends(get_principal),
) -> list[Order]:
    """Свободные заказы для водителей."""
    from src.api.dependencies import get_order_service

    service = await get_order_service()
    return await service.get_available_orders(principal, car_class)


@app.get(
    "/api/v1/orders/driver/active",
    response_model=Order | None,
    tags=["Orders"],
    responses=ERROR_RESPONSES,
)
async def get_driver_active_order(principal: Principal = Depends(get_principal)) -> Order | None:
    """Текущий заказ водителя."""
    from src.api.dependencies import get_order_service

    require_role(principal, UserRole.DRIVER)
    service = await get_order_service()
    return await service.get_driver_active_order(principal)


@app.get(
    "/api/v1/orders/user/statistics",
    response_model=ClientStatistics,
    tags=["Orders"],
    responses=ERROR_RESPONSES,
)
async def get_client_statistics(principal: Principal = Depends(get_principal)) -> ClientStatistics:
    """Статистика заказов клиента."""
    from src.api.dependencies import get_order_service

    require_role(principal, UserRole.CLIENT)
    service = await get_order_service()
    return await service.get_client_statistics(principal)


@app.get(
    "/api/v1/orders/driver/statistics",
    response_model=DriverStatistics,
    tags=["Orders"],
    responses=ERROR_RESPONSES,
)
@app.get(
    "/api/v1/drivers/me/stats",
    response_model=DriverStatistics,
    tags=["Drivers"],
    responses=ERROR_RESPONSES,
)
async def get_driver_statistics(principal: Principal = Depends(get_principal)) -> DriverStatistics:
    """Статистика и заработок водителя."""
    from src.api.dependencies import get_order_service

    require_role(principal, UserRole.DRIVER)
    service = await get_order_service()
    return await service.get_driver_statistics(principal)


@app.get(
    "/api/v1/orders/{order_id}",
    response_model=Order,
    tags=["Orders"],
    responses=ERROR_RESPONSES,
)
async def get_order(order_id: str, principal: Principal = Depends(get_principal)) -> Order:
    """Получение заказа."""
    from src.api.dependencies import get_order_service

    service = await get_order_service()
    return await service.get_order(principal, order_id)


@app.patch(
    "/api/v1/orders/{order_id}/status",
    response_model=Order,
    tags=["Order State"],
    responses=ERROR_RESPONSES,
)
async def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    principal: Principal = Depends(get_principal),
) -> Order:
    """Смена статуса заказа назначенным водителем или администратором."""
    from src.api.dependencies import get_order_service

    service = await get_order_service()
    return await service.update_status(principal, order_id, request.status, request.to_metadata())


@app.patch(
    "/api/v1/orders/{order_id}/cancel",
    response_model=Order,
    tags=["Order State"],
    responses=ERROR_RESPONSES,
)
async def cancel_order(
    order_id: str,
    request: CancelRequest,
    principal: Principal = Depends(get_principal),
) -> Order:
    """Отмена заказа."""
    from src.api.dependencies import get_order_service

    service = await get_order_service()
    return await service.cancel_order(principal, order_id, request.reason)


@app.post(
    "/api/v1/orders/{order_id}/assign",
    response_model=Order,
    tags=["Order State"],
    responses=ERROR_RESPONSES,
)
async def assign_driver(order_id: str, principal: Principal = Depends(get_principal)) -> Order:
    """Назначение лучшего доступного водителя."""
    from src.api.dependencies import get_assignment_engine

    engine = await get_assignment_engine()
    return await engine.assign(order_id, principal)


@app.post(
    "/api/v1/orders/{order_id}/rate",
    response_model=Order,
    tags=["Order State"],
    responses=ERROR_RESPONSES,
)
async def rate_order(
    order_id: str,
    request: RateRequest,
    principal: Principal = Depends(get_principal),
) -> Order:
    """Оценка завершённой поездки."""
    from src.api.dependencies import get_order_service

    service = await get_order_service()
    return await service.rate_order(principal, order_id, request.rating, request.comment)


# =============================================================================
# DRIVERS API
# =============================================================================

@app.get(
    "/api/v1/drivers/me",
    response_model=Driver,
    tags=["Drivers"],
    responses=ERROR_RESPONSES,
)
async def get_current_driver(principal: Principal = Depends(get_principal)) -> Driver:
    """Профиль водителя-вызывающего."""
    from src.api.dependencies import get_driver_directory

    require_role(principal, UserRole.DRIVER)
    directory = await get_driver_directory()
    driver = await directory.get_driver_by_user(principal.user_id)
    if driver is None:
        raise NotFound("Профиль водителя не найден")
    return driver


@app.patch(
    "/api/v1/drivers/{driver_id}/status",
    response_model=Driver,
    tags=["Drivers"],
    responses=ERROR_RESPONSES,
)
async def change_driver_status(
    driver_id: str,
    request: DriverStatusRequest,
    principal: Principal = Depends(get_principal),
) -> Driver:
    """Смена статуса водителя."""
    from src.api.dependencies import get_driver_directory

    require_role(principal, UserRole.DRIVER, UserRole.ADMIN)
    directory = await get_driver_directory()
    return await directory.change_status(driver_id, request.status, principal)


@app.put(
    "/api/v1/drivers/{driver_id}/location",
    response_model=DriverLocation,
    tags=["Drivers"],
    responses=ERROR_RESPONSES,
)
async def update_driver_location(
    driver_id: str,
    request: LocationUpdateRequest,
    principal: Principal = Depends(get_principal),
) -> DriverLocation:
    """Обновление позиции водителя."""
    from src.api.dependencies import get_driver_directory

    require_role(principal, UserRole.DRIVER, UserRole.ADMIN)
    directory = await get_driver_directory()
    return await directory.update_location(driver_id, request.latitude, request.longitude, principal)
