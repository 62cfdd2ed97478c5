from pydantic import Field

from levelup_api.schemas.common import WireModel


class Product(WireModel):
    codigo: str
    nombre: str = ""
    categoria: str = ""
    precio: int = Field(0, ge=0)
    stock: int = Field(0, ge=0)
    puntos: int | None = Field(None, ge=0)
    canjeable: bool = False
    activo: bool = True
    imagen: str = ""
