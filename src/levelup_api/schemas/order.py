from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from levelup_api.schemas.common import OrderStatus, WireModel, utcnow


PaymentMethod = Literal["tarjeta", "credito", "debito", "transferencia", "efectivo", "mach", "mercadopago"]


class ShippingAddress(WireModel):
    nombre: str = ""
    calle: str = ""
    numero: str = ""
    apartamento: str | None = None
    ciudad: str = ""
    region: str = ""
    telefono: str = ""


class OrderItem(WireModel):
    id: str
    product_id: str = Field(..., alias="productId")
    product_name: str = Field("", alias="productName")
    product_image: str = Field("", alias="productImage")
    quantity: int = Field(..., gt=0)
    unit_price: int = Field(0, alias="unitPrice", ge=0)
    total_price: int = Field(0, alias="totalPrice", ge=0)


class PurchaseOrder(WireModel):
    id: str
    user_id: str = Field(..., alias="userId")
    user_name: str = Field("", alias="userName")
    user_email: str = Field("", alias="userEmail")
    items: list[OrderItem]
    subtotal: int = Field(0, ge=0)
    descuento_duoc: int = Field(0, alias="descuentoDuoc", ge=0)
    descuento_puntos: int = Field(0, alias="descuentoPuntos", ge=0)
    total: int = Field(0, ge=0)
    puntos_usados: int = Field(0, alias="puntosUsados", ge=0)
    puntos_ganados: int = Field(0, alias="puntosGanados", ge=0)
    estado: OrderStatus = OrderStatus.PENDING
    direccion_envio: ShippingAddress = Field(default_factory=ShippingAddress, alias="direccionEnvio")
    metodo_pago: PaymentMethod = Field("efectivo", alias="metodoPago")
    numero_orden: str = Field(..., alias="numeroOrden")
    notas: str | None = None
    creado_por: Literal["usuario", "admin"] = Field("usuario", alias="creadoPor")
    admin_id: str | None = Field(None, alias="adminId")
    fecha_creacion: datetime = Field(default_factory=utcnow, alias="fechaCreacion")
    fecha_actualizacion: datetime = Field(default_factory=utcnow, alias="fechaActualizacion")


class PurchaseLine(BaseModel):
    productId: str
    quantity: int = Field(..., gt=0)


class PurchaseOrderCreate(BaseModel):
    userId: str
    items: list[PurchaseLine] = Field(..., min_length=1)
    puntosUsados: int = Field(0, ge=0)
    direccionEnvio: ShippingAddress = Field(default_factory=ShippingAddress)
    metodoPago: PaymentMethod = "efectivo"
    notas: str | None = None
    creadoPor: Literal["usuario", "admin"] = "usuario"
    adminId: str | None = None

    @model_validator(mode="after")
    def _unique_products(self) -> "PurchaseOrderCreate":
        seen = [line.productId for line in self.items]
        if len(seen) != len(set(seen)):
            raise ValueError("each product may appear only once per order")
        return self


class OrderStats(BaseModel):
    totalOrders: int
    totalRevenue: int
    pendingOrders: int
    processingOrders: int
    shippedOrders: int
    deliveredOrders: int
    cancelledOrders: int
    averageOrderValue: float
    totalPointsEarned: int
    totalPointsUsed: int
