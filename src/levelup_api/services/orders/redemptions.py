"""Redemption orders: products exchanged for loyalty points."""

from __future__ import annotations

from uuid import uuid4

from loguru import logger

from levelup_api.errors import InsufficientPointsError, NotRedeemableError, OutOfStockError
from levelup_api.schemas.ledger import LedgerEntryType, OrderKind
from levelup_api.schemas.redemption import (
    ReceiptProduct,
    ReceiptUser,
    RedemptionOrder,
    RedemptionOrderCreate,
    RedemptionReceipt,
)
from levelup_api.services.loyalty.ledger import PointsLedger, find_user, load_users, replace_user
from levelup_api.services.loyalty.rules import can_afford, points_required
from levelup_api.services.orders.base import (
    OrderRepositoryBase,
    adjust_stock,
    find_product,
)
from levelup_api.services.orders.state_machine import REDEMPTION_STATE_MACHINE
from levelup_api.services.sequence import SequenceGenerator
from levelup_api.storage import PersistenceGateway, WriteBatch
from levelup_api.storage.collections import POINTS_LEDGER, REDEMPTION_ORDER_COUNTER, REDEMPTIONS, USERS


REDEMPTION_PREFIX = "CANJE"


class RedemptionOrderRepository(OrderRepositoryBase[RedemptionOrder]):
    """Owns the debit-on-create and refund-on-cancel rules for redemptions."""

    collection = REDEMPTIONS
    model = RedemptionOrder
    kind = "RedemptionOrder"
    state_machine = REDEMPTION_STATE_MACHINE

    def __init__(self, gateway: PersistenceGateway, *, sequence: SequenceGenerator | None = None) -> None:
        super().__init__(gateway)
        self._sequence = sequence or SequenceGenerator(gateway, REDEMPTION_ORDER_COUNTER)

    async def find_by_user(self, user_id: str) -> list[RedemptionOrder]:
        return [order for order in await self.find_all() if order.usuario_id == user_id]

    async def create(self, request: RedemptionOrderCreate) -> RedemptionOrder:
        """Persist a ``pendiente`` redemption together with its points debit.

        Every check runs before anything is written; the order, ledger entry,
        user snapshot and stock change are committed as one batch.
        """

        async with self._gateway.lock:
            users = await load_users(self._gateway)
            user = find_user(users, request.usuarioId)
            products = await self._load_products()
            product = find_product(products, request.productId)

            if not product.activo:
                raise NotRedeemableError(f"Producto {product.codigo} no está activo")
            cost = points_required(product)
            if product.stock < 1:
                raise OutOfStockError(product.codigo, product.stock, 1)

            ledger = await PointsLedger.load(self._gateway)
            ledger.open_account(user)
            current = ledger.snapshot(user)
            if not can_afford(current, cost):
                raise InsufficientPointsError(available=current.puntos, required=cost)

            orders = await self.find_all()
            numero_orden = await self._sequence.next(REDEMPTION_PREFIX)
            order = RedemptionOrder(
                id=uuid4().hex,
                usuario_id=user.id,
                product_id=product.codigo,
                product_name=product.nombre,
                product_image=product.imagen,
                puntos_usados=cost,
                direccion_envio=request.direccionEnvio,
                metodo_retiro=request.metodoRetiro,
                numero_orden=numero_orden,
                notas=request.notas,
            )
            ledger.record(
                user.id,
                LedgerEntryType.SPEND,
                -cost,
                order_id=order.id,
                order_kind=OrderKind.REDEMPTION,
                descripcion=f"Canje {numero_orden}",
            )

            batch = (
                WriteBatch(f"redeem {product.codigo} for user {user.id}")
                .put(REDEMPTIONS, [*(item.to_wire() for item in orders), order.to_wire()])
                .put(POINTS_LEDGER, ledger.to_wire())
                .put(USERS, [item.to_wire() for item in replace_user(users, ledger.snapshot(user))])
            )
            self._put_products(batch, adjust_stock(products, {product.codigo: -1}))
            await self._gateway.commit(batch)

        logger.info(
            "Created redemption order",
            order_id=order.id,
            numero_orden=numero_orden,
            user_id=user.id,
            product_id=product.codigo,
            points=cost,
        )
        return order

    async def receipt(self, order_id: str) -> RedemptionReceipt:
        order = await self.get(order_id)
        user = find_user(await load_users(self._gateway), order.usuario_id)
        ledger = await PointsLedger.load(self._gateway)
        ledger.open_account(user)
        address = order.direccion_envio
        address_text = ", ".join(
            part
            for part in (
                f"{address.calle} {address.numero}".strip(),
                address.departamento or "",
                address.ciudad,
                address.region,
            )
            if part
        )
        return RedemptionReceipt(
            id=f"receipt_{order.id}",
            redemptionOrderId=order.id,
            numeroRecibo=order.numero_orden,
            fecha=order.fecha_creacion,
            usuario=ReceiptUser(nombre=user.nombre, correo=user.correo),
            producto=ReceiptProduct(
                nombre=order.product_name,
                codigo=order.product_id,
                puntosRequeridos=order.puntos_usados,
            ),
            puntosUsados=order.puntos_usados,
            puntosRestantes=ledger.snapshot(user).puntos,
            direccionEnvio=address_text if order.metodo_retiro == "envio" else "Retiro en tienda",
            metodoRetiro=order.metodo_retiro,
            estado=order.estado.value,
        )

    async def _restitute(self, batch: WriteBatch, order: RedemptionOrder) -> None:
        users = await load_users(self._gateway)
        user = find_user(users, order.usuario_id)
        ledger = await PointsLedger.load(self._gateway)
        ledger.open_account(user)
        ledger.record(
            user.id,
            LedgerEntryType.REFUND,
            order.puntos_usados,
            order_id=order.id,
            order_kind=OrderKind.REDEMPTION,
            descripcion=f"Devolución canje {order.numero_orden}",
        )
        batch.put(POINTS_LEDGER, ledger.to_wire())
        batch.put(USERS, [item.to_wire() for item in replace_user(users, ledger.snapshot(user))])

        if not order.stock_descontado:
            return
        products = await self._load_products()
        if not any(product.codigo == order.product_id for product in products):
            logger.warning(
                "Product missing, stock not restored",
                order_id=order.id,
                product_id=order.product_id,
            )
            return
        self._put_products(batch, adjust_stock(products, {order.product_id: 1}))
