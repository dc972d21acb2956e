"""
结账编排

``CheckoutOrchestrator.submit`` decides, for one checkout submission, whether
the order is created now (cash on delivery, already verified payment) or
deferred until the gateway confirms payment (card and mobile money). All
failures are reported through the ``Notifier``; ``submit`` never raises.
"""
from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from application.dtos.checkout import (
    CheckoutOutcome,
    CheckoutRequest,
    CheckoutResult,
    CheckoutState,
)
from application.ports.session import KPAY_REFERENCE_KEY, SessionStore
from application.ports.storefront import Cart, Navigator, Notifier, OrderCreator, StorefrontPayments
from application.services.checkout_validation import validate_checkout_form, validate_payment_request
from application.services.payment_linker import PaymentLinker
from core.config import settings
from core.logging_config import get_logger
from domain.order.entity import (
    OrderDraft,
    OrderLine,
    format_phone_number,
    resolve_product_id,
    split_full_name,
    synthesize_guest_email,
)
from domain.payment.entity import (
    extract_checkout_url,
    extract_reference,
    is_card_method,
    is_deferred_method,
    is_mobile_money_method,
)


logger = get_logger(__name__)

FormValidator = Callable[[CheckoutRequest], Mapping[str, str]]
PaymentRequestValidator = Callable[[Mapping[str, Any]], list]

ORDERS_SOURCE_ADMIN = "admin"
ORDERS_SOURCE_SCHEDULE = "schedule"

MSG_FIX_ERRORS = "Please fix the highlighted errors and try again."
MSG_EMPTY_CART = "Your cart is empty"
MSG_ADMIN_DISABLED = "Ordering is currently disabled by the admin."
MSG_CONFIRM_SCHEDULE = "Please confirm you want this order delivered tomorrow during working hours."
MSG_LINK_INCOMPLETE = "Order created but payment linking did not complete. Please check your orders page."
MSG_RETRY_FAILED = "Payment retry failed. Please try again."
MSG_RETRY_ERROR = "Failed to retry payment. Please try again."
MSG_REDIRECTING = "Redirecting to payment gateway..."
MSG_CARD_WITHOUT_URL = "Payment initiated but checkout URL not available. Please contact support."
MSG_NO_REDIRECT = "Payment initiated but no redirect URL available. Please check your payment status."
MSG_START_PAYMENT_ERROR = "Failed to start payment. Please try again."
MSG_INVALID_PRODUCT = "Invalid product data. Please refresh the page and try again."
MSG_PRODUCT_UNAVAILABLE = "Product no longer available. Please remove it from your cart and try again."


def order_error_message(exc: BaseException) -> str:
    """订单创建失败时展示给用户的消息"""
    message = str(getattr(exc, "message", None) or exc)
    lowered = message.lower()
    if "uuid" in lowered:
        return MSG_INVALID_PRODUCT
    if "foreign key" in lowered:
        return MSG_PRODUCT_UNAVAILABLE
    return f"Failed to create order: {message}"


def _order_id(order: Mapping[str, Any]) -> Optional[str]:
    value = order.get("id")
    return str(value) if value else None


def _order_number(order: Mapping[str, Any]) -> str:
    return str(order.get("order_number") or order.get("orderNumber") or order.get("id") or "")


class CheckoutOrchestrator:
    def __init__(
        self,
        orders: OrderCreator,
        payments: StorefrontPayments,
        linker: PaymentLinker,
        session: SessionStore,
        notifier: Notifier,
        navigator: Navigator,
        cart: Cart,
        *,
        origin: str,
        validate_form: FormValidator = validate_checkout_form,
        validate_payment: PaymentRequestValidator = validate_payment_request,
    ):
        self._orders = orders
        self._payments = payments
        self._linker = linker
        self._session = session
        self._notifier = notifier
        self._navigator = navigator
        self._cart = cart
        self._origin = origin.rstrip("/")
        self._validate_form = validate_form
        self._validate_payment = validate_payment

    async def submit(self, request: CheckoutRequest, state: CheckoutState) -> CheckoutOutcome:
        if state.is_submitting:
            logger.info("checkout_submit_ignored", reason="already_submitting")
            return CheckoutOutcome(CheckoutResult.IGNORED)

        state.payment_failure = None

        errors = dict(self._validate_form(request))
        if errors:
            state.errors = errors
            return self._reject(next(iter(errors.values()), None) or MSG_FIX_ERRORS)

        if not request.items:
            return self._reject(MSG_EMPTY_CART)

        state.is_submitting = True
        state.errors = {}
        navigated_to_order = False
        try:
            blocked = self._ordering_blocked(request)
            if blocked:
                return self._reject(blocked)

            draft = self.build_draft(request)
            method = request.payment_method

            if request.payment_verified and is_deferred_method(method):
                outcome = await self._create_verified(request, draft, state)
            elif request.is_retry and request.retry_order_id:
                outcome = await self._retry(request)
            elif is_deferred_method(method):
                outcome = await self._start_payment(request, draft, state)
            else:
                outcome = await self._create_cash_on_delivery(request, draft, state)

            navigated_to_order = bool(outcome.destination and outcome.destination.startswith("/orders/"))
            return outcome
        finally:
            state.is_submitting = False
            if not navigated_to_order:
                state.suppress_empty_cart_redirect = False

    def _reject(self, message: str) -> CheckoutOutcome:
        self._notifier.error(message)
        return CheckoutOutcome(CheckoutResult.REJECTED, message=message)

    @staticmethod
    def _ordering_blocked(request: CheckoutRequest) -> Optional[str]:
        if request.orders_enabled is not False:
            return None
        if request.orders_source == ORDERS_SOURCE_ADMIN:
            return request.orders_disabled_message or MSG_ADMIN_DISABLED
        if request.orders_source == ORDERS_SOURCE_SCHEDULE and not request.schedule_confirmed:
            return MSG_CONFIRM_SCHEDULE
        return None

    # ========== 草稿 ==========

    @staticmethod
    def build_draft(request: CheckoutRequest) -> OrderDraft:
        form = request.form
        address = request.selected_address

        city = (
            request.derived_city
            or (address.city if address else None)
            or form.city
        ).strip()
        full_name = (request.user.full_name if request.user and request.user.full_name else form.full_name).strip()
        first_name, last_name = split_full_name(full_name)

        phone = (address.phone if address and address.phone else form.phone).strip()
        # 访客邮箱优先取表单手机号，地址手机号兜底
        email_seed = form.phone.strip() or (address.phone if address else None)
        email = form.email.strip() or synthesize_guest_email(email_seed, domain=settings.checkout.guest_email_domain)

        street = (address.street or address.display_name) if address else None
        schedule_notes = None
        if request.orders_enabled is False and request.orders_source == ORDERS_SOURCE_SCHEDULE:
            schedule_notes = (request.schedule_notes or "").strip() or None

        return OrderDraft(
            subtotal=request.subtotal,
            tax=request.transport,
            total=request.total,
            customer_email=email,
            customer_first_name=first_name,
            customer_last_name=last_name,
            customer_phone=phone or None,
            delivery_address=(street or form.address).strip(),
            delivery_city=city,
            delivery_notes=form.delivery_notes.strip() or None,
            schedule_notes=schedule_notes,
            payment_method=request.payment_method,
            user_id=request.user.id if request.user else None,
            items=[
                OrderLine(
                    product_id=resolve_product_id(item.id, item.product_id),
                    product_variation_id=item.variation_id,
                    product_name=item.name,
                    product_sku=item.sku,
                    variation_name=item.variation_name,
                    price=item.price,
                    quantity=item.quantity,
                )
                for item in request.items
            ],
        )

    def customer_phone(self, request: CheckoutRequest, draft: OrderDraft) -> str:
        explicit = request.mobile_money_phones.get(request.payment_method)
        if is_mobile_money_method(request.payment_method) and explicit:
            return format_phone_number(explicit)
        return format_phone_number(draft.customer_phone)

    # ========== 分支 ==========

    async def _complete_order(
        self,
        order: Mapping[str, Any],
        request: CheckoutRequest,
        state: CheckoutState,
    ) -> CheckoutOutcome:
        order_id = _order_id(order)
        self._cart.clear()
        state.clear()
        destination = f"/orders/{order_id}" if request.user and order_id else "/thank-you"
        if destination.startswith("/orders/"):
            state.suppress_empty_cart_redirect = True
        await self._navigator.push(destination)
        self._notifier.success(f"Order #{_order_number(order)} has been created successfully!")
        return CheckoutOutcome(CheckoutResult.ORDER_CREATED, order_id=order_id, destination=destination)

    async def _create_verified(
        self,
        request: CheckoutRequest,
        draft: OrderDraft,
        state: CheckoutState,
    ) -> CheckoutOutcome:
        reference = self._session.get(KPAY_REFERENCE_KEY)
        try:
            order = await self._orders.create_order(draft, idempotency_key=reference)
        except Exception as exc:
            logger.error("checkout_verified_order_failed", reference=reference, error=str(exc))
            state.prevent_persistence = False
            state.payment_in_progress = False
            message = order_error_message(exc)
            self._notifier.error(message)
            return CheckoutOutcome(CheckoutResult.FAILED, message=message, reference=reference)

        order_id = _order_id(order)
        if reference and order_id:
            if await self._linker.link(order_id, reference):
                self._session.remove(KPAY_REFERENCE_KEY)
            else:
                self._notifier.info(MSG_LINK_INCOMPLETE)

        outcome = await self._complete_order(order, request, state)
        outcome.reference = reference
        return outcome

    async def _retry(self, request: CheckoutRequest) -> CheckoutOutcome:
        order_id = request.retry_order_id
        payload = {
            "orderId": order_id,
            "amount": request.total,
            "paymentMethod": request.payment_method,
            "redirectUrl": f"{self._origin}/payment/{order_id}",
        }
        try:
            body = await self._payments.retry(payload)
        except Exception as exc:
            logger.error("checkout_payment_retry_failed", order_id=order_id, error=str(exc))
            message = getattr(exc, "message", None) or str(exc) or MSG_RETRY_ERROR
            return self._failed(message)

        if body.get("error"):
            return self._failed(str(body["error"]))

        checkout_url = extract_checkout_url(body)
        if checkout_url:
            self._navigator.redirect_external(checkout_url)
            return CheckoutOutcome(CheckoutResult.REDIRECTED, destination=checkout_url, order_id=order_id)

        payment_id = body.get("paymentId")
        if body.get("success") and payment_id:
            destination = f"/payment/{payment_id}"
            await self._navigator.push(destination)
            return CheckoutOutcome(CheckoutResult.REDIRECTED, destination=destination, order_id=order_id)

        return self._failed(MSG_RETRY_FAILED)

    def _failed(self, message: str) -> CheckoutOutcome:
        self._notifier.error(message)
        return CheckoutOutcome(CheckoutResult.FAILED, message=message)

    async def _start_payment(
        self,
        request: CheckoutRequest,
        draft: OrderDraft,
        state: CheckoutState,
    ) -> CheckoutOutcome:
        payload = {
            "orderData": draft.to_payload(),
            "amount": request.total,
            "customerName": f"{draft.customer_first_name} {draft.customer_last_name}".strip(),
            "customerEmail": draft.customer_email,
            "customerPhone": self.customer_phone(request, draft),
            "paymentMethod": request.payment_method,
            "redirectUrl": f"{self._origin}/checkout?payment=success",
        }

        problems = self._validate_payment(payload)
        if problems:
            return self._failed(f"Payment validation failed: {problems[0]}")

        state.payment_in_progress = True
        state.suppress_empty_cart_redirect = True
        try:
            body = await self._payments.initiate(payload)
        except Exception as exc:
            logger.error("checkout_payment_initiate_failed", method=request.payment_method, error=str(exc))
            state.payment_in_progress = False
            state.suppress_empty_cart_redirect = False
            return self._failed(MSG_START_PAYMENT_ERROR)

        if not body.get("success"):
            state.payment_in_progress = False
            state.suppress_empty_cart_redirect = False
            return self._failed(f"Payment initiation failed: {body.get('error') or 'Unknown error'}")

        reference = extract_reference(body)
        if reference:
            self._session.set(KPAY_REFERENCE_KEY, reference)

        checkout_url = extract_checkout_url(body)
        if checkout_url:
            self._notifier.info(MSG_REDIRECTING)
            self._navigator.redirect_external(checkout_url)
            return CheckoutOutcome(CheckoutResult.REDIRECTED, destination=checkout_url, reference=reference)

        state.payment_in_progress = False
        state.suppress_empty_cart_redirect = False
        if is_card_method(request.payment_method):
            logger.error("checkout_card_without_checkout_url", reference=reference)
            outcome = self._failed(MSG_CARD_WITHOUT_URL)
            outcome.reference = reference
            return outcome

        if reference:
            destination = f"/payment/{reference}"
            await self._navigator.push(destination)
            return CheckoutOutcome(CheckoutResult.REDIRECTED, destination=destination, reference=reference)

        return self._failed(MSG_NO_REDIRECT)

    async def _create_cash_on_delivery(
        self,
        request: CheckoutRequest,
        draft: OrderDraft,
        state: CheckoutState,
    ) -> CheckoutOutcome:
        try:
            order = await self._orders.create_order(draft)
        except Exception as exc:
            logger.error("checkout_order_create_failed", error=str(exc))
            return self._failed(order_error_message(exc))
        return await self._complete_order(order, request, state)
