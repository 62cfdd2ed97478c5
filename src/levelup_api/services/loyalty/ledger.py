"""Append-only points ledger; balances are folds over typed entries."""

from __future__ import annotations

from uuid import uuid4

from loguru import logger

from levelup_api.errors import EntityNotFoundError, InsufficientPointsError
from levelup_api.schemas.ledger import LedgerEntryType, OrderKind, PointsLedgerEntry, PointsSummary
from levelup_api.schemas.user import User
from levelup_api.services.loyalty.rules import promote_tier
from levelup_api.storage import Entity, PersistenceGateway, WriteBatch
from levelup_api.storage.collections import POINTS_LEDGER, USERS


_LIFETIME_TYPES = {LedgerEntryType.EARN, LedgerEntryType.ADJUSTMENT}


class PointsLedger:
    """In-memory view of the ledger for a single unit of work.

    New entries are appended with :meth:`record` and written back together
    with the order change that caused them.
    """

    def __init__(self, entries: list[PointsLedgerEntry]) -> None:
        self._entries = list(entries)
        self._appended: list[PointsLedgerEntry] = []

    @classmethod
    async def load(cls, gateway: PersistenceGateway) -> "PointsLedger":
        raw = await gateway.read(POINTS_LEDGER)
        return cls([PointsLedgerEntry.model_validate(item) for item in raw])

    @property
    def appended(self) -> list[PointsLedgerEntry]:
        return list(self._appended)

    def entries_for(self, user_id: str) -> list[PointsLedgerEntry]:
        return [entry for entry in self._entries if entry.user_id == user_id]

    def has_account(self, user_id: str) -> bool:
        return any(entry.user_id == user_id for entry in self._entries)

    def balance(self, user_id: str) -> int:
        return sum(entry.puntos for entry in self._entries if entry.user_id == user_id)

    def lifetime_points(self, user_id: str) -> int:
        return sum(
            entry.puntos
            for entry in self._entries
            if entry.user_id == user_id and entry.tipo in _LIFETIME_TYPES and entry.puntos > 0
        )

    def open_account(self, user: User) -> None:
        """Carry a pre-ledger ``puntos`` value over as an opening adjustment."""

        if self.has_account(user.id) or user.puntos <= 0:
            return
        self.record(
            user.id,
            LedgerEntryType.ADJUSTMENT,
            user.puntos,
            descripcion="Saldo inicial",
        )

    def record(
        self,
        user_id: str,
        entry_type: LedgerEntryType,
        puntos: int,
        *,
        order_id: str | None = None,
        order_kind: OrderKind | None = None,
        descripcion: str | None = None,
    ) -> PointsLedgerEntry:
        if puntos == 0:
            raise ValueError("Ledger entries require a non-zero amount")

        balance_before = self.balance(user_id)
        if balance_before + puntos < 0:
            raise InsufficientPointsError(available=balance_before, required=-puntos)

        entry = PointsLedgerEntry(
            id=uuid4().hex,
            user_id=user_id,
            tipo=entry_type,
            puntos=puntos,
            order_id=order_id,
            order_kind=order_kind,
            descripcion=descripcion,
        )
        self._entries.append(entry)
        self._appended.append(entry)
        logger.info(
            "Recorded points ledger entry",
            user_id=user_id,
            entry_type=entry_type.value,
            points=puntos,
            order_id=order_id,
        )
        return entry

    def snapshot(self, user: User) -> User:
        """Return ``user`` with ``puntos``/``nivel`` refreshed from the ledger."""

        if not self.has_account(user.id):
            return user
        return user.model_copy(
            update={
                "puntos": self.balance(user.id),
                "nivel": promote_tier(user.nivel, self.lifetime_points(user.id)),
            }
        )

    def to_wire(self) -> list[Entity]:
        return [entry.to_wire() for entry in self._entries]


async def load_users(gateway: PersistenceGateway) -> list[User]:
    return [User.model_validate(item) for item in await gateway.read(USERS)]


def find_user(users: list[User], user_id: str) -> User:
    for user in users:
        if user.id == user_id:
            return user
    raise EntityNotFoundError("User", user_id)


def replace_user(users: list[User], updated: User) -> list[User]:
    return [updated if user.id == updated.id else user for user in users]


class PointsAccountService:
    """Read a member's points position and apply manual adjustments."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    async def summary(self, user_id: str) -> PointsSummary:
        users = await load_users(self._gateway)
        user = find_user(users, user_id)
        ledger = await PointsLedger.load(self._gateway)
        ledger.open_account(user)
        current = ledger.snapshot(user)
        return PointsSummary(
            userId=user.id,
            puntos=current.puntos,
            puntosHistoricos=ledger.lifetime_points(user.id),
            nivel=current.nivel,
            movimientos=ledger.entries_for(user.id),
        )

    async def adjust(self, user_id: str, puntos: int, *, descripcion: str | None = None) -> PointsSummary:
        """Append an admin adjustment; the resulting balance may not go negative."""

        async with self._gateway.lock:
            users = await load_users(self._gateway)
            user = find_user(users, user_id)
            ledger = await PointsLedger.load(self._gateway)
            ledger.open_account(user)
            ledger.record(
                user.id,
                LedgerEntryType.ADJUSTMENT,
                puntos,
                descripcion=descripcion or "Ajuste manual",
            )
            updated = ledger.snapshot(user)
            batch = (
                WriteBatch(f"adjust points for user {user.id}")
                .put(POINTS_LEDGER, ledger.to_wire())
                .put(USERS, [item.to_wire() for item in replace_user(users, updated)])
            )
            await self._gateway.commit(batch)

        return await self.summary(user_id)
