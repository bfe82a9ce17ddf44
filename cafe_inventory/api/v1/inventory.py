import logging
from fastapi import APIRouter, Depends, Request, status
from cafe_inventory.core.container import Services
from cafe_inventory.core.exceptions import IngredientNotFoundError
from cafe_inventory.models.ingredient import Ingredient
from cafe_inventory.schemas.inventory import IngredientResponse, QueueStatusResponse, RestockRequest
from cafe_inventory.schemas.order import OrderDeductionRequest, OrderRestorationRequest
from cafe_inventory.schemas.response import SuccessResponse
from cafe_inventory.services.stock_ledger import restock_ingredient
from uuid import UUID

log = logging.getLogger("inventory_api")

router = APIRouter()


def get_services(request: Request) -> Services:
    """Services wired at startup by the application lifespan."""
    return request.app.state.services


# ----------- Orders -----------

@router.post("/orders/{order_id}/deduct", response_model=SuccessResponse)
async def deduct_order_endpoint(order_id: UUID, request_data: OrderDeductionRequest, services: Services = Depends(get_services)):
    """
    Order-ready hook. Deducts inline, or defers to the retry queue when the
    deduction fails; either way the response is 200 with the outcome.
    """
    outcome = await services.inventory.process_order_ready(order_id, request_data.items)
    log.info(f"Order {order_id} processed: deducted={outcome.deducted}, queued={outcome.queued}")
    return SuccessResponse(data=outcome.model_dump(mode="json"))


@router.post("/orders/{order_id}/restore", response_model=SuccessResponse)
async def restore_order_endpoint(order_id: UUID, request_data: OrderRestorationRequest, services: Services = Depends(get_services)):
    """Credits stock back for a cancelled order, or one of its menu items."""
    result = await services.inventory.cancel_order(order_id, request_data.menu_item_id, request_data.customizations)
    return SuccessResponse(data=result.model_dump(mode="json"))


@router.get("/orders/{order_id}/usage", response_model=SuccessResponse)
async def order_usage_endpoint(order_id: UUID, services: Services = Depends(get_services)):
    usage = await services.executor.get_order_ingredient_usage(order_id)
    return SuccessResponse(data=[row.model_dump(mode="json") for row in usage])


@router.post("/fulfillment-check", response_model=SuccessResponse)
async def fulfillment_check_endpoint(request_data: OrderDeductionRequest, services: Services = Depends(get_services)):
    """Dry run: can current stock cover these items?"""
    report = await services.executor.check_fulfillment(request_data.items)
    return SuccessResponse(data=report.model_dump(mode="json"))


# ----------- Ingredients -----------

@router.get("/ingredients/{ingredient_id}", response_model=SuccessResponse)
async def get_ingredient_endpoint(ingredient_id: UUID):
    ingredient = await Ingredient.get_or_none(id=ingredient_id)
    if not ingredient:
        raise IngredientNotFoundError(ingredient_id)
    data = IngredientResponse.model_validate(ingredient, from_attributes=True)
    return SuccessResponse(data=data.model_dump(mode="json"))


@router.post("/ingredients/{ingredient_id}/restock", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def restock_ingredient_endpoint(ingredient_id: UUID, request_data: RestockRequest):
    """Records received stock as a ``purchase`` ledger row."""
    row = await restock_ingredient(ingredient_id, request_data.amount, request_data.unit, request_data.notes)
    log.info(f"Restocked ingredient {ingredient_id}: {row.previous_actual_quantity:g} -> {row.new_actual_quantity:g}")
    return SuccessResponse(data={
        "transaction_id": str(row.id),
        "ingredient_id": str(ingredient_id),
        "previous_stock": row.previous_actual_quantity,
        "new_stock": row.new_actual_quantity,
    })


@router.get("/unconvertible-units", response_model=SuccessResponse)
async def unconvertible_units_endpoint(services: Services = Depends(get_services)):
    """Unit pairs that passed through unconverted since startup."""
    return SuccessResponse(data=services.executor.unconvertible_report())


# ----------- Retry queue -----------

@router.get("/queue/status", response_model=SuccessResponse)
async def queue_status_endpoint(services: Services = Depends(get_services)):
    queue_status = QueueStatusResponse(**await services.queue.get_queue_status())
    return SuccessResponse(data=queue_status.model_dump(mode="json"))


@router.post("/queue/retry-failed", response_model=SuccessResponse)
async def retry_failed_endpoint(services: Services = Depends(get_services)):
    count = await services.queue.retry_failed_items()
    return SuccessResponse(data={"reset": count})


@router.post("/queue/cleanup", response_model=SuccessResponse)
async def cleanup_queue_endpoint(days_to_keep: int = 7, services: Services = Depends(get_services)):
    count = await services.queue.cleanup_old_items(days_to_keep)
    return SuccessResponse(data={"deleted": count})


# ----------- Low stock -----------

@router.get("/low-stock", response_model=SuccessResponse)
async def low_stock_items_endpoint(services: Services = Depends(get_services)):
    items = await services.monitor.get_low_stock_items()
    return SuccessResponse(data={"items": items, "count": len(items)})


@router.post("/low-stock/check", response_model=SuccessResponse)
async def low_stock_check_endpoint(force: bool = False, services: Services = Depends(get_services)):
    """Throttled sweep; ``force`` bypasses the time window and intervals."""
    if force:
        summary = await services.monitor.force_check()
    else:
        summary = await services.monitor.check_low_stock_items()
    return SuccessResponse(data=summary)


@router.post("/low-stock/fallback-check", response_model=SuccessResponse)
async def low_stock_fallback_endpoint(services: Services = Depends(get_services)):
    summary = await services.monitor.run_fallback_check()
    return SuccessResponse(data=summary)


@router.get("/throttling/status", response_model=SuccessResponse)
async def throttling_status_endpoint(services: Services = Depends(get_services)):
    return SuccessResponse(data=await services.throttle.get_throttling_status())
