"""Purchase orders paid with money and, optionally, points."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from loguru import logger

from levelup_api.core.settings import settings
from levelup_api.errors import InsufficientPointsError, OutOfStockError
from levelup_api.schemas.common import OrderStatus
from levelup_api.schemas.ledger import LedgerEntryType, OrderKind
from levelup_api.schemas.order import OrderItem, OrderStats, PurchaseOrder, PurchaseOrderCreate
from levelup_api.services.loyalty.ledger import PointsLedger, find_user, load_users, replace_user
from levelup_api.services.loyalty.rules import (
    EarnPolicy,
    FlatRateEarnPolicy,
    can_afford,
    institutional_discount,
    is_institutional,
    points_earned,
)
from levelup_api.services.orders.base import (
    OrderRepositoryBase,
    adjust_stock,
    find_product,
)
from levelup_api.services.orders.state_machine import PURCHASE_STATE_MACHINE
from levelup_api.services.sequence import SequenceGenerator
from levelup_api.storage import PersistenceGateway, WriteBatch
from levelup_api.storage.collections import ORDERS, POINTS_LEDGER, PURCHASE_ORDER_COUNTER, USERS


PURCHASE_PREFIX = "ORD"


class PurchaseOrderRepository(OrderRepositoryBase[PurchaseOrder]):
    """Dual-currency orders: debits points used, credits points earned, moves stock."""

    collection = ORDERS
    model = PurchaseOrder
    kind = "PurchaseOrder"
    state_machine = PURCHASE_STATE_MACHINE

    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        sequence: SequenceGenerator | None = None,
        earn_policy: EarnPolicy | None = None,
        discount_rate: Decimal | None = None,
        institutional_domain: str | None = None,
    ) -> None:
        super().__init__(gateway)
        self._sequence = sequence or SequenceGenerator(gateway, PURCHASE_ORDER_COUNTER)
        self._earn_policy = earn_policy or FlatRateEarnPolicy(settings.points_earn_amount_per_point)
        self._discount_rate = settings.institutional_discount_rate if discount_rate is None else discount_rate
        self._institutional_domain = (
            settings.institutional_email_domain if institutional_domain is None else institutional_domain
        )

    async def find_by_user(self, user_id: str) -> list[PurchaseOrder]:
        return [order for order in await self.find_all() if order.user_id == user_id]

    async def create(self, request: PurchaseOrderCreate) -> PurchaseOrder:
        """Price, validate and persist an order with its points and stock effects.

        Any line without enough stock rejects the whole order.
        """

        async with self._gateway.lock:
            users = await load_users(self._gateway)
            user = find_user(users, request.userId)
            products = await self._load_products()

            items: list[OrderItem] = []
            for line in request.items:
                product = find_product(products, line.productId)
                if product.stock < line.quantity:
                    raise OutOfStockError(product.codigo, product.stock, line.quantity)
                items.append(
                    OrderItem(
                        id=uuid4().hex,
                        product_id=product.codigo,
                        product_name=product.nombre,
                        product_image=product.imagen,
                        quantity=line.quantity,
                        unit_price=product.precio,
                        total_price=product.precio * line.quantity,
                    )
                )

            subtotal = sum(item.total_price for item in items)
            descuento_duoc = 0
            if is_institutional(user, self._institutional_domain):
                descuento_duoc = institutional_discount(subtotal, self._discount_rate)

            ledger = await PointsLedger.load(self._gateway)
            ledger.open_account(user)
            current = ledger.snapshot(user)
            if request.puntosUsados and not can_afford(current, request.puntosUsados):
                raise InsufficientPointsError(available=current.puntos, required=request.puntosUsados)

            # One point covers one money unit, never more than what is left to pay
            descuento_puntos = min(request.puntosUsados, subtotal - descuento_duoc)
            total = subtotal - descuento_duoc - descuento_puntos
            puntos_ganados = points_earned(total, self._earn_policy)

            orders = await self.find_all()
            numero_orden = await self._sequence.next(PURCHASE_PREFIX)
            order = PurchaseOrder(
                id=uuid4().hex,
                user_id=user.id,
                user_name=user.nombre,
                user_email=user.correo,
                items=items,
                subtotal=subtotal,
                descuento_duoc=descuento_duoc,
                descuento_puntos=descuento_puntos,
                total=total,
                puntos_usados=descuento_puntos,
                puntos_ganados=puntos_ganados,
                direccion_envio=request.direccionEnvio,
                metodo_pago=request.metodoPago,
                numero_orden=numero_orden,
                notas=request.notas,
                creado_por=request.creadoPor,
                admin_id=request.adminId,
            )
            if descuento_puntos:
                ledger.record(
                    user.id,
                    LedgerEntryType.SPEND,
                    -descuento_puntos,
                    order_id=order.id,
                    order_kind=OrderKind.PURCHASE,
                    descripcion=f"Pago con puntos {numero_orden}",
                )
            if puntos_ganados:
                ledger.record(
                    user.id,
                    LedgerEntryType.EARN,
                    puntos_ganados,
                    order_id=order.id,
                    order_kind=OrderKind.PURCHASE,
                    descripcion=f"Puntos ganados {numero_orden}",
                )

            batch = (
                WriteBatch(f"purchase {numero_orden} for user {user.id}")
                .put(ORDERS, [*(item.to_wire() for item in orders), order.to_wire()])
                .put(POINTS_LEDGER, ledger.to_wire())
                .put(USERS, [item.to_wire() for item in replace_user(users, ledger.snapshot(user))])
            )
            self._put_products(
                batch,
                adjust_stock(products, {item.product_id: -item.quantity for item in items}),
            )
            await self._gateway.commit(batch)

        logger.info(
            "Created purchase order",
            order_id=order.id,
            numero_orden=numero_orden,
            user_id=user.id,
            total=total,
            points_used=descuento_puntos,
            points_earned=puntos_ganados,
        )
        return order

    async def stats(self) -> OrderStats:
        orders = await self.find_all()

        def count(*statuses: OrderStatus) -> int:
            return sum(1 for order in orders if order.estado in statuses)

        total_revenue = sum(order.total for order in orders)
        return OrderStats(
            totalOrders=len(orders),
            totalRevenue=total_revenue,
            pendingOrders=count(OrderStatus.PENDING),
            processingOrders=count(OrderStatus.PROCESSING),
            shippedOrders=count(OrderStatus.SHIPPED),
            deliveredOrders=count(OrderStatus.DELIVERED),
            cancelledOrders=count(OrderStatus.CANCELLED, OrderStatus.REJECTED),
            averageOrderValue=total_revenue / len(orders) if orders else 0.0,
            totalPointsEarned=sum(order.puntos_ganados for order in orders),
            totalPointsUsed=sum(order.puntos_usados for order in orders),
        )

    async def recent(self, limit: int = 5) -> list[PurchaseOrder]:
        orders = await self.find_all()
        orders.sort(key=lambda order: order.fecha_creacion, reverse=True)
        return orders[:limit]

    async def _restitute(self, batch: WriteBatch, order: PurchaseOrder) -> None:
        users = await load_users(self._gateway)
        user = find_user(users, order.user_id)
        ledger = await PointsLedger.load(self._gateway)
        ledger.open_account(user)

        if order.puntos_usados:
            ledger.record(
                user.id,
                LedgerEntryType.REFUND,
                order.puntos_usados,
                order_id=order.id,
                order_kind=OrderKind.PURCHASE,
                descripcion=f"Devolución puntos {order.numero_orden}",
            )
        # Earned points already spent elsewhere cannot be clawed back below zero
        reversal = min(order.puntos_ganados, ledger.balance(user.id))
        if reversal:
            ledger.record(
                user.id,
                LedgerEntryType.REVERSAL,
                -reversal,
                order_id=order.id,
                order_kind=OrderKind.PURCHASE,
                descripcion=f"Reverso puntos ganados {order.numero_orden}",
            )
        if reversal < order.puntos_ganados:
            logger.warning(
                "Earned points partially reversed",
                order_id=order.id,
                earned=order.puntos_ganados,
                reversed=reversal,
            )
        batch.put(POINTS_LEDGER, ledger.to_wire())
        batch.put(USERS, [item.to_wire() for item in replace_user(users, ledger.snapshot(user))])

        products = await self._load_products()
        known = {product.codigo for product in products}
        deltas: dict[str, int] = {}
        for item in order.items:
            if item.product_id in known:
                deltas[item.product_id] = deltas.get(item.product_id, 0) + item.quantity
            else:
                logger.warning(
                    "Product missing, stock not restored",
                    order_id=order.id,
                    product_id=item.product_id,
                )
        if deltas:
            self._put_products(batch, adjust_stock(products, deltas))
