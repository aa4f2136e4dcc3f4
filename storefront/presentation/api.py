import hmac
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.database import get_session_factory
from storefront.presentation.schemas import (
    AddItemRequest, SetQuantityRequest, BatchRequest, MergeGuestCartRequest, CheckoutRequest,
    BuyNowRequest, VerifyPaymentRequest, UpdateOrderStatusRequest, CartResponse, CartMutationResponse,
    BatchResponse, ConsolidationResponse, OrderResponse, PaymentIntentResponse, ErrorResponse
)
from storefront.application.get_cart import CartStatus, GetCartUseCase, GetCartStatusUseCase
from storefront.application.cart_operations import AddToCartUseCase, RemoveFromCartUseCase, SetQuantityUseCase
from storefront.application.batch_cart import BatchCartUseCase, MergeGuestCartUseCase
from storefront.application.consolidate_cart import ConsolidateCartsUseCase
from storefront.application.checkout import CheckoutUseCase, BuyNowUseCase
from storefront.application.order_ids import OrderIdGenerator
from storefront.application.payments import CreatePaymentIntentUseCase, VerifyPaymentUseCase
from storefront.application.get_order import GetOrderUseCase, ListOrdersUseCase
from storefront.application.update_order_status import UpdateOrderStatusUseCase
from storefront.application.interfaces import PaymentGateway
from storefront.domain.exceptions import (
    DomainException, NotAuthenticatedError, ProductNotFoundError, CartNotFoundError, ItemNotFoundError,
    OrderNotFoundError, EmptyCartError, InvalidQuantityError, InvalidPaymentSignatureError,
    InvalidStatusTransitionError, PaymentAlreadyUsedError, ConflictError, PersistenceError, PaymentServiceError
)
from storefront.infrastructure.unit_of_work import UnitOfWork
from storefront.infrastructure.http_clients import RazorpayClient
from storefront.config import settings

router = APIRouter()

ERROR_STATUS_CODES = [
    (NotAuthenticatedError, status.HTTP_401_UNAUTHORIZED),
    (ProductNotFoundError, status.HTTP_404_NOT_FOUND),
    (CartNotFoundError, status.HTTP_404_NOT_FOUND),
    (ItemNotFoundError, status.HTTP_404_NOT_FOUND),
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
    (EmptyCartError, status.HTTP_400_BAD_REQUEST),
    (InvalidQuantityError, status.HTTP_400_BAD_REQUEST),
    (InvalidPaymentSignatureError, status.HTTP_400_BAD_REQUEST),
    (InvalidStatusTransitionError, status.HTTP_409_CONFLICT),
    (PaymentAlreadyUsedError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PaymentServiceError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
]

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def to_http_error(error: DomainException) -> HTTPException:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Caller identity as resolved by the auth layer in front of the service"""
    return x_user_id or None


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """Admin routes need the shared operator token; without a configured token they stay closed"""
    expected = settings.ADMIN_API_TOKEN
    if not expected or not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")


def get_unit_of_work(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)
) -> UnitOfWork:
    if session_factory is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return UnitOfWork(session_factory)


def get_payment_gateway() -> Optional[PaymentGateway]:
    if not settings.payment_gateway_configured:
        return None
    return RazorpayClient(settings.RAZORPAY_BASE_URL, settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)


def get_order_id_generator() -> OrderIdGenerator:
    return OrderIdGenerator(settings.ORDER_ID_FLOOR)


# Use case factories
def get_get_cart_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return GetCartUseCase(uow)


def get_cart_status_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return GetCartStatusUseCase(uow)


def get_add_to_cart_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return AddToCartUseCase(uow, settings.CART_MAX_ATTEMPTS)


def get_remove_from_cart_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return RemoveFromCartUseCase(uow)


def get_set_quantity_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return SetQuantityUseCase(uow)


def get_batch_cart_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return BatchCartUseCase(uow, settings.CART_MAX_ATTEMPTS)


def get_merge_guest_cart_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return MergeGuestCartUseCase(uow, settings.CART_MAX_ATTEMPTS)


def get_consolidate_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ConsolidateCartsUseCase(uow)


def get_checkout_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work),
    order_ids: OrderIdGenerator = Depends(get_order_id_generator),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway)
):
    return CheckoutUseCase(
        uow, order_ids, gateway, settings.SHIPPING_FEE, settings.CHECKOUT_TAX_RATE, settings.ORDER_ID_MAX_ATTEMPTS
    )


def get_buy_now_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work),
    order_ids: OrderIdGenerator = Depends(get_order_id_generator),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway)
):
    return BuyNowUseCase(
        uow, order_ids, gateway, settings.SHIPPING_FEE, settings.TAX_RATE, settings.ORDER_ID_MAX_ATTEMPTS
    )


def get_payment_intent_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway)
):
    if gateway is None:
        raise HTTPException(status_code=503, detail="Payment gateway not configured")
    return CreatePaymentIntentUseCase(uow, gateway, settings.CURRENCY)


def get_verify_payment_use_case(
    uow: UnitOfWork = Depends(get_unit_of_work),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway)
):
    if gateway is None:
        raise HTTPException(status_code=503, detail="Payment gateway not configured")
    return VerifyPaymentUseCase(uow, gateway)


def get_get_order_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return GetOrderUseCase(uow)


def get_list_orders_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return ListOrdersUseCase(uow)


def get_update_status_use_case(uow: UnitOfWork = Depends(get_unit_of_work)):
    return UpdateOrderStatusUseCase(uow)


# Cart
@router.get("/cart", response_model=CartResponse, responses=ERROR_RESPONSES)
async def get_cart(
    user_id: Optional[str] = Depends(get_user_id),
    use_case: GetCartUseCase = Depends(get_get_cart_use_case)
):
    """Current cart of the signed-in user"""
    try:
        return CartResponse.from_domain(await use_case(user_id))
    except DomainException as e:
        raise to_http_error(e)


@router.get("/cart/status", response_model=CartStatus, responses=ERROR_RESPONSES)
async def get_cart_status(
    product_id: Optional[str] = None,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: GetCartStatusUseCase = Depends(get_cart_status_use_case)
):
    """Cart badge data; anonymous callers get an empty cart"""
    try:
        return await use_case(user_id, product_id)
    except DomainException as e:
        raise to_http_error(e)


@router.post("/cart/items", response_model=CartMutationResponse, responses=ERROR_RESPONSES)
async def add_to_cart(
    request: AddItemRequest,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: AddToCartUseCase = Depends(get_add_to_cart_use_case)
):
    try:
        return CartMutationResponse.from_domain(await use_case(user_id, request.product_id))
    except DomainException as e:
        raise to_http_error(e)


@router.delete("/cart/items/{product_id}", response_model=CartMutationResponse, responses=ERROR_RESPONSES)
async def remove_from_cart(
    product_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: RemoveFromCartUseCase = Depends(get_remove_from_cart_use_case)
):
    try:
        return CartMutationResponse.from_domain(await use_case(user_id, product_id))
    except DomainException as e:
        raise to_http_error(e)


@router.put("/cart/items/{product_id}", response_model=CartMutationResponse, responses=ERROR_RESPONSES)
async def set_quantity(
    product_id: str,
    request: SetQuantityRequest,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: SetQuantityUseCase = Depends(get_set_quantity_use_case)
):
    """Quantity 0 or less removes the line"""
    try:
        return CartMutationResponse.from_domain(await use_case(user_id, product_id, request.quantity))
    except DomainException as e:
        raise to_http_error(e)


@router.post("/cart/batch", response_model=BatchResponse, responses=ERROR_RESPONSES)
async def apply_batch(
    request: BatchRequest,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: BatchCartUseCase = Depends(get_batch_cart_use_case)
):
    """Applies queued cart edits in one transaction; entries fail independently"""
    try:
        return BatchResponse.from_domain(await use_case(user_id, request.operations))
    except DomainException as e:
        raise to_http_error(e)


@router.delete("/cart/batch", response_model=BatchResponse, responses=ERROR_RESPONSES)
async def batch_remove(
    product_ids: List[str] = Query(...),
    user_id: Optional[str] = Depends(get_user_id),
    use_case: BatchCartUseCase = Depends(get_batch_cart_use_case)
):
    try:
        return BatchResponse.from_domain(await use_case.batch_remove(user_id, product_ids))
    except DomainException as e:
        raise to_http_error(e)


@router.post("/cart/merge", response_model=BatchResponse, responses=ERROR_RESPONSES)
async def merge_guest_cart(
    request: MergeGuestCartRequest,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: MergeGuestCartUseCase = Depends(get_merge_guest_cart_use_case)
):
    try:
        return BatchResponse.from_domain(await use_case(user_id, request.items))
    except DomainException as e:
        raise to_http_error(e)


@router.post("/cart/consolidate", response_model=ConsolidationResponse, responses=ERROR_RESPONSES)
async def consolidate_carts(
    user_id: Optional[str] = Depends(get_user_id),
    use_case: ConsolidateCartsUseCase = Depends(get_consolidate_use_case)
):
    try:
        result = await use_case(user_id)
    except DomainException as e:
        raise to_http_error(e)

    if result.consolidated:
        message = f"Consolidated {result.consolidated} duplicate carts"
    else:
        message = "No duplicate carts to consolidate"
    return ConsolidationResponse(message=message, consolidated=result.consolidated)


# Orders
@router.post(
    "/checkout",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    status_code=status.HTTP_201_CREATED
)
async def checkout(
    request: CheckoutRequest,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: CheckoutUseCase = Depends(get_checkout_use_case)
):
    """Turns the cart into an order"""
    try:
        order = await use_case(user_id, request.shipping_info, request.payment)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e)


@router.post(
    "/orders/buy-now",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    status_code=status.HTTP_201_CREATED
)
async def buy_now(
    request: BuyNowRequest,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: BuyNowUseCase = Depends(get_buy_now_use_case)
):
    """Orders the given items directly; the stored cart is left as is"""
    try:
        order = await use_case(user_id, request.items, request.shipping_info, request.payment)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e)


@router.get("/orders", response_model=List[OrderResponse], responses=ERROR_RESPONSES)
async def list_orders(
    user_id: Optional[str] = Depends(get_user_id),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    try:
        return [OrderResponse.from_domain(order) for order in await use_case(user_id)]
    except DomainException as e:
        raise to_http_error(e)


@router.get("/orders/{order_id}", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def get_order(
    order_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    try:
        return OrderResponse.from_domain(await use_case(user_id, order_id))
    except DomainException as e:
        raise to_http_error(e)


@router.post("/orders/{order_id}/payment-intent", response_model=PaymentIntentResponse, responses=ERROR_RESPONSES)
async def create_payment_intent(
    order_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: CreatePaymentIntentUseCase = Depends(get_payment_intent_use_case)
):
    try:
        intent = await use_case(user_id, order_id)
    except DomainException as e:
        raise to_http_error(e)
    return PaymentIntentResponse(
        intent_id=intent.intent_id,
        amount=intent.amount,
        currency=intent.currency,
        key=settings.RAZORPAY_KEY_ID
    )


@router.post("/payment/verify", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def verify_payment(
    request: VerifyPaymentRequest,
    user_id: Optional[str] = Depends(get_user_id),
    use_case: VerifyPaymentUseCase = Depends(get_verify_payment_use_case)
):
    """Confirms an awaiting order once the gateway signature checks out"""
    try:
        order = await use_case(user_id, request.gateway_order_id, request.payment_id, request.signature)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e)


@router.put("/admin/orders/{order_id}/status", response_model=OrderResponse, responses=ERROR_RESPONSES)
async def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    _: None = Depends(require_admin),
    use_case: UpdateOrderStatusUseCase = Depends(get_update_status_use_case)
):
    try:
        order = await use_case(order_id, request.status, request.tracking_link, request.admin_message)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise to_http_error(e)
