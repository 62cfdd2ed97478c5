from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from levelup_api.schemas.common import OrderStatus, WireModel, utcnow


PickupMethod = Literal["retiro", "envio"]


class RedemptionAddress(WireModel):
    calle: str = ""
    numero: str = ""
    departamento: str | None = None
    ciudad: str = ""
    region: str = ""


class RedemptionOrder(WireModel):
    id: str
    usuario_id: str = Field(..., alias="usuarioId")
    product_id: str = Field(..., alias="productId")
    product_name: str = Field("", alias="productName")
    product_image: str = Field("", alias="productImage")
    puntos_usados: int = Field(..., alias="puntosUsados", gt=0)
    cantidad: Literal[1] = 1
    direccion_envio: RedemptionAddress = Field(default_factory=RedemptionAddress, alias="direccionEnvio")
    metodo_retiro: PickupMethod = Field("retiro", alias="metodoRetiro")
    estado: OrderStatus = OrderStatus.PENDING
    numero_orden: str = Field(..., alias="numeroOrden")
    stock_descontado: bool = Field(True, alias="stockDescontado")
    fecha_creacion: datetime = Field(default_factory=utcnow, alias="fechaCreacion")
    fecha_actualizacion: datetime = Field(default_factory=utcnow, alias="fechaActualizacion")
    notas: str | None = None


class RedemptionOrderCreate(BaseModel):
    usuarioId: str
    productId: str
    metodoRetiro: PickupMethod = "retiro"
    direccionEnvio: RedemptionAddress = Field(default_factory=RedemptionAddress)
    notas: str | None = None


class ReceiptUser(BaseModel):
    nombre: str
    correo: str


class ReceiptProduct(BaseModel):
    nombre: str
    codigo: str
    puntosRequeridos: int


class RedemptionReceipt(BaseModel):
    id: str
    redemptionOrderId: str
    numeroRecibo: str
    fecha: datetime
    usuario: ReceiptUser
    producto: ReceiptProduct
    puntosUsados: int
    puntosRestantes: int
    direccionEnvio: str
    metodoRetiro: str
    estado: str
