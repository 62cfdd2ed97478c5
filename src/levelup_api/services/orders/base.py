from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Mapping, TypeVar

from loguru import logger

from levelup_api.errors import EntityNotFoundError
from levelup_api.schemas.common import OrderStatus, WireModel, utcnow
from levelup_api.schemas.product import Product
from levelup_api.services.orders.state_machine import OrderStateMachine
from levelup_api.storage import PersistenceGateway, WriteBatch
from levelup_api.storage.collections import PRODUCTS, Collection


OrderT = TypeVar("OrderT", bound=WireModel)

# Identity fields and fields whose points or stock effects were already booked
_IMMUTABLE_FIELDS = {
    "id",
    "numeroOrden",
    "fechaCreacion",
    "usuarioId",
    "userId",
    "productId",
    "items",
    "puntosUsados",
    "puntosGanados",
    "stockDescontado",
}


class OrderRepositoryBase(ABC, Generic[OrderT]):
    """CRUD and status changes over one order collection of the persistence gateway."""

    collection: Collection
    model: type[OrderT]
    kind: str
    state_machine: OrderStateMachine

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    async def find_all(self) -> list[OrderT]:
        return [self.model.model_validate(item) for item in await self._gateway.read(self.collection)]

    async def find_by_id(self, order_id: str) -> OrderT | None:
        for order in await self.find_all():
            if order.id == order_id:
                return order
        return None

    async def get(self, order_id: str) -> OrderT:
        order = await self.find_by_id(order_id)
        if order is None:
            raise EntityNotFoundError(self.kind, order_id)
        return order

    async def update(self, order_id: str, partial: Mapping[str, Any]) -> OrderT:
        """Merge ``partial`` into the stored order, keeping unspecified fields.

        A status change follows the transition rules and is stored in the same
        batch as the other fields. An empty partial writes nothing.
        """

        changes = {self.model.wire_key(key): value for key, value in partial.items()}
        requested_status = changes.pop("estado", None)
        new_status = OrderStatus(requested_status) if requested_status is not None else None
        return await self._apply(order_id, changes, new_status, explicit_transition=False)

    async def transition(self, order_id: str, new_status: OrderStatus) -> OrderT:
        return await self._apply(order_id, {}, OrderStatus(new_status), explicit_transition=True)

    async def delete(self, order_id: str) -> None:
        """Hard delete; ledger entries and stock are left untouched."""

        async with self._gateway.lock:
            orders = await self.find_all()
            remaining = [order for order in orders if order.id != order_id]
            if len(remaining) == len(orders):
                raise EntityNotFoundError(self.kind, order_id)
            await self._gateway.write(
                self.collection,
                [order.to_wire() for order in remaining],
                description=f"delete {self.kind} {order_id}",
            )
        logger.info("Order deleted", order_id=order_id, kind=self.kind)

    @abstractmethod
    async def _restitute(self, batch: WriteBatch, order: OrderT) -> None:
        """Add the points and stock reversal of ``order`` to ``batch``."""

    async def _apply(
        self,
        order_id: str,
        changes: dict[str, Any],
        new_status: OrderStatus | None,
        *,
        explicit_transition: bool,
    ) -> OrderT:
        async with self._gateway.lock:
            orders = await self.find_all()
            current = find_order(orders, order_id, self.kind)
            data = current.to_wire()

            changes = {key: value for key, value in changes.items() if data.get(key) != value}
            blocked = _IMMUTABLE_FIELDS & changes.keys()
            if blocked:
                raise ValueError(f"Cannot update {', '.join(sorted(blocked))}")

            moves = new_status is not None and (explicit_transition or new_status != current.estado)
            if moves:
                self.state_machine.ensure_allowed(current.estado, new_status)
            if not changes and not moves:
                return current

            data.update(changes)
            if moves:
                data["estado"] = new_status.value
            data["fechaActualizacion"] = utcnow().isoformat()
            updated = self.model.model_validate(data)

            description = f"update {self.kind} {order_id}"
            if moves:
                description = f"{current.numero_orden}: {current.estado.value} -> {new_status.value}"
            batch = WriteBatch(description).put(self.collection, self._replace_order(orders, updated))
            if moves and self.state_machine.requires_restitution(new_status):
                await self._restitute(batch, current)
            await self._gateway.commit(batch)

        if changes:
            logger.info("Order updated", order_id=order_id, kind=self.kind, fields=sorted(changes))
        if moves:
            logger.info(
                "Order status transitioned",
                order_id=order_id,
                from_status=current.estado.value,
                to_status=new_status.value,
            )
        return updated

    async def _load_products(self) -> list[Product]:
        return [Product.model_validate(item) for item in await self._gateway.read(PRODUCTS)]

    def _replace_order(self, orders: list[OrderT], updated: OrderT) -> list[dict[str, Any]]:
        return [updated.to_wire() if order.id == updated.id else order.to_wire() for order in orders]

    @staticmethod
    def _put_products(batch: WriteBatch, products: list[Product]) -> None:
        batch.put(PRODUCTS, [product.to_wire() for product in products])


def find_order(orders: list[OrderT], order_id: str, kind: str) -> OrderT:
    for order in orders:
        if order.id == order_id:
            return order
    raise EntityNotFoundError(kind, order_id)


def find_product(products: list[Product], product_id: str) -> Product:
    for product in products:
        if product.codigo == product_id:
            return product
    raise EntityNotFoundError("Product", product_id)


def adjust_stock(products: list[Product], deltas: Mapping[str, int]) -> list[Product]:
    return [
        product.model_copy(update={"stock": product.stock + deltas[product.codigo]})
        if product.codigo in deltas
        else product
        for product in products
    ]
