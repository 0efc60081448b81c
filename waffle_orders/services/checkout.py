"""Checkout: turns a validated cart into a pending order.

Prices, zone fees and discounts are always re-read from the store; the
client only says what it wants. Nothing is written unless every check
passes, and an order never survives without its items.
"""
import random
import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional

from ..config import settings
from ..models.catalog import CustomizationGroup, CustomizationOption, DeliveryZone, DiscountType, MenuItem, Offer, SelectionType
from ..models.checkout import CartLine, CheckoutQuote, CheckoutRequest
from ..models.order import Order, OrderItem, OrderStatus, OrderType, OrderWithItems, SelectedCustomization
from ..core.exceptions import DuplicateOrderId, StoreUnavailable, ValidationError
from ..core.state_machine import plan_transition
from ..core.timeutils import utc_now
from .order_repository import OrderRepository
from .change_feed import ChangeFeed

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def generate_order_id(prefix: str = None) -> str:
    """Short human code like SW-1234"""
    return f"{prefix or settings.ORDER_ID_PREFIX}-{random.randint(1000, 9999)}"


def calculate_discount(offer: Offer, subtotal: Decimal) -> Decimal:
    if offer.discount_type == DiscountType.PERCENTAGE:
        discount = (subtotal * offer.discount_value / Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    else:
        discount = offer.discount_value
    return min(max(discount, ZERO), subtotal)


class CheckoutService:
    def __init__(
        self,
        repository: OrderRepository,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = utc_now,
        id_generator: Callable[[], str] = generate_order_id,
    ):
        self.repository = repository
        self.feed = feed
        self.clock = clock
        self.id_generator = id_generator

    # Validation

    def _check_contact(self, request: CheckoutRequest) -> None:
        if not request.items:
            raise ValidationError("Your cart is empty", field="items")
        if not request.customer_name.strip() or not request.customer_phone.strip():
            raise ValidationError("Please fill in your name and phone number", field="customer_name")
        if request.order_type == OrderType.DELIVERY:
            if not request.address.strip() or not request.pincode.strip():
                raise ValidationError("Please fill in your delivery address", field="address")
            pincode = request.pincode.strip()
            if len(pincode) != 6 or not pincode.isdigit():
                raise ValidationError("Please enter a valid delivery pincode", field="pincode")

    def _delivery_zone(self, request: CheckoutRequest) -> Optional[DeliveryZone]:
        if request.order_type != OrderType.DELIVERY:
            return None
        row = self.repository.get_delivery_zone(request.pincode.strip())
        if not row:
            raise ValidationError("Sorry, we do not deliver to this area yet", field="pincode")
        return DeliveryZone.model_validate(row)

    def _resolve_items(self, lines: List[CartLine]) -> List[OrderItem]:
        menu = {row["id"]: MenuItem.model_validate(row)
                for row in self.repository.get_menu_items({line.menu_item_id for line in lines})}
        groups = [CustomizationGroup.model_validate(row) for row in self.repository.get_customization_groups()]
        groups_by_id = {g.id: g for g in groups}

        option_ids = {oid for line in lines for ids in line.selections.values() for oid in ids}
        options = {row["id"]: CustomizationOption.model_validate(row)
                   for row in self.repository.get_customization_options(option_ids)}

        items = []
        for line in lines:
            menu_item = menu.get(line.menu_item_id)
            if menu_item is None:
                raise ValidationError(f"Menu item {line.menu_item_id} not found", field="items")
            if not menu_item.is_available:
                raise ValidationError(f"{menu_item.name} is not available", field="items")

            unknown = set(line.selections) - set(groups_by_id)
            if unknown:
                raise ValidationError(f"Unknown customization for {menu_item.name}", field="items")

            customizations = []
            for group in groups:
                selected = list(dict.fromkeys(line.selections.get(group.id, [])))
                if group.selection_type == SelectionType.SINGLE and len(selected) > 1:
                    raise ValidationError(f"Choose only one {group.name} for {menu_item.name}", field="items")
                if group.is_required and not selected:
                    raise ValidationError(f"Please choose a {group.name} for {menu_item.name}", field="items")

                chosen = []
                for option_id in selected:
                    option = options.get(option_id)
                    if option is None or option.group_id != group.id:
                        raise ValidationError(f"Invalid {group.name} option for {menu_item.name}", field="items")
                    if not option.is_available:
                        raise ValidationError(f"{option.name} is not available", field="items")
                    chosen.append(option)

                chosen.sort(key=lambda o: o.display_order)
                customizations.extend(
                    SelectedCustomization(group_name=group.name, option_name=o.name, price=o.price)
                    for o in chosen
                )

            items.append(OrderItem(
                menu_item_id=menu_item.id,
                item_name=menu_item.name,
                unit_price=menu_item.price,
                quantity=line.quantity,
                customizations=customizations,
            ))
        return items

    def _offer(self, code: Optional[str], subtotal: Decimal, now: datetime) -> Optional[Offer]:
        if not code or not code.strip():
            return None
        row = self.repository.get_offer(code.strip().upper())
        offer = Offer.model_validate(row) if row else None
        if offer is None or not offer.is_valid_at(now):
            raise ValidationError("Invalid or expired coupon code", field="coupon_code")
        if subtotal < offer.min_order:
            raise ValidationError(f"Minimum order of ₹{offer.min_order} required", field="coupon_code")
        return offer

    # Public surface

    def quote(self, request: CheckoutRequest) -> CheckoutQuote:
        """Price the cart without writing anything"""
        now = self.clock()
        self._check_contact(request)
        zone = self._delivery_zone(request)
        items = self._resolve_items(request.items)
        subtotal = sum((item.line_total for item in items), ZERO)

        if zone is not None and subtotal < zone.min_order:
            raise ValidationError(
                f"Minimum order of ₹{zone.min_order} required for this area", field="items"
            )

        offer = self._offer(request.coupon_code, subtotal, now)
        discount = calculate_discount(offer, subtotal) if offer else ZERO
        delivery_fee = zone.delivery_fee if zone is not None else ZERO

        return CheckoutQuote(
            items=items,
            subtotal=subtotal,
            discount=discount,
            delivery_fee=delivery_fee,
            total=subtotal - discount + delivery_fee,
            zone_name=zone.area_name if zone else None,
            offer_code=offer.code if offer else None,
        )

    def _insert_with_unique_code(self, order: Order) -> Dict:
        for attempt in range(1, settings.ORDER_ID_MAX_ATTEMPTS + 1):
            order.order_id = self.id_generator()
            try:
                return self.repository.insert_order(order.to_row())
            except DuplicateOrderId:
                logger.info(f"Order id {order.order_id} taken, retrying ({attempt})")
        raise StoreUnavailable("generate order id")

    def _discard(self, row: Dict, now: datetime) -> None:
        """Remove an order whose items never landed.

        The delete is retried; if the row still cannot be removed it is
        cancelled instead so the kitchen and the watchdog never see it.
        Never raises, the caller re-raises the original failure.
        """
        for attempt in range(1, settings.STORE_READ_RETRIES + 1):
            try:
                self.repository.delete_order(row["id"])
                return
            except StoreUnavailable as e:
                logger.warning(f"Order {row['order_id']}: delete failed (attempt {attempt}): {e}")

        plan = plan_transition(Order.from_row(row), OrderStatus.CANCELLED, now)
        try:
            cancelled = self.repository.conditional_update(row["id"], plan.expected_status.value, plan.changes)
        except StoreUnavailable as e:
            cancelled = None
            logger.error(f"Order {row['order_id']}: could not cancel itemless order: {e}")
        if cancelled is not None:
            logger.warning(f"Order {row['order_id']}: cancelled because its items were lost")

    def place_order(self, request: CheckoutRequest, user_id: Optional[str] = None) -> OrderWithItems:
        quote = self.quote(request)
        now = self.clock()
        is_delivery = request.order_type == OrderType.DELIVERY

        order = Order(
            order_id="",
            user_id=user_id,
            order_type=request.order_type,
            customer_name=request.customer_name.strip(),
            customer_phone=request.customer_phone.strip(),
            customer_email=(request.customer_email or "").strip() or None,
            address=request.address.strip() if is_delivery else "",
            pincode=request.pincode.strip() if is_delivery else "",
            subtotal=quote.subtotal,
            discount=quote.discount,
            delivery_fee=quote.delivery_fee if is_delivery else ZERO,
            total=quote.total,
            payment_method=request.payment_method,
            placed_at=now,
            expires_at=now + timedelta(minutes=settings.ORDER_EXPIRY_MINUTES),
        )

        row = self._insert_with_unique_code(order)
        order_pk = row["id"]

        items = [item.model_copy(update={"order_id": order_pk}) for item in quote.items]
        try:
            item_rows = self.repository.insert_items([item.to_row() for item in items])
        except StoreUnavailable:
            logger.error(f"Order {row['order_id']}: items failed to save, removing order row")
            self._discard(row, now)
            raise

        created = Order.from_row(row)
        logger.info(f"Order {created.order_id} placed ({created.order_type.value}, total {created.total})")
        if self.feed is not None:
            self.feed.publish(row)

        return OrderWithItems(order=created, items=[OrderItem.model_validate(r) for r in item_rows])
