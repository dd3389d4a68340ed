import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from tortoise import timezone
from tortoise.transactions import in_transaction

from coffeeshop.core.exceptions import (
    InsufficientInventory,
    InvalidCostPerUnit,
    InvalidName,
    InvalidQuantity,
    InvalidReorderLevel,
    NotFound,
)
from coffeeshop.models.inventory import Ingredient, InventoryTransaction, TransactionType, UnitType
from coffeeshop.services.recipes import Requirements, to_quantity

log = logging.getLogger("inventory_ledger")

ZERO = Decimal("0")
CENTS = Decimal("0.01")


@dataclass
class Shortage:
    ingredient_id: int
    name: str
    needed: Decimal
    available: Decimal


@dataclass
class AvailabilityResult:
    ok: bool
    shortages: List[Shortage] = field(default_factory=list)

    def raise_for_shortage(self):
        """Raises InsufficientInventory for the first short ingredient, if any."""
        if not self.ok:
            first = self.shortages[0]
            raise InsufficientInventory(first.name, first.needed, first.available)


async def lock_ingredients(ingredient_ids: Iterable[int], conn: Any) -> Dict[int, Ingredient]:
    """
    Reads ingredient rows with SELECT ... FOR UPDATE so that concurrent
    writers serialize on them until the surrounding transaction ends.
    Rows are locked in ascending id order.
    """
    ids = sorted(set(ingredient_ids))
    if not ids:
        return {}
    rows = await Ingredient.filter(id__in=ids).order_by("id").using_db(conn).select_for_update()
    return {row.id: row for row in rows}


async def get_ingredients(ingredient_ids: Iterable[int], conn: Any = None) -> Dict[int, Ingredient]:
    ids = sorted(set(ingredient_ids))
    if not ids:
        return {}
    rows = await Ingredient.filter(id__in=ids).using_db(conn)
    return {row.id: row for row in rows}


async def check_availability(
    requirements: Requirements,
    conn: Any,
    committed: Optional[Requirements] = None,
    lock: bool = True,
) -> AvailabilityResult:
    """
    Compares each required amount against current stock minus whatever the
    caller has already committed but not yet persisted. Does not write.
    Unknown ingredients count as zero stock.
    """
    committed = committed or {}
    wanted = {iid: amount for iid, amount in requirements.items() if amount > 0}
    if lock:
        stock = await lock_ingredients(wanted.keys(), conn)
    else:
        stock = await get_ingredients(wanted.keys(), conn)

    shortages = []
    for iid in sorted(wanted):
        needed = to_quantity(wanted[iid])
        ingredient = stock.get(iid)
        if ingredient is None:
            shortages.append(Shortage(iid, f"#{iid}", needed, ZERO))
            continue
        available = to_quantity(ingredient.quantity - committed.get(iid, ZERO))
        if available < needed:
            shortages.append(Shortage(iid, ingredient.name, needed, available))
    return AvailabilityResult(ok=not shortages, shortages=shortages)


async def apply(
    deltas: Dict[int, Decimal],
    kind: TransactionType,
    conn: Any,
    reference_id: Optional[int] = None,
    note: Optional[str] = None,
) -> List[InventoryTransaction]:
    """
    Adds each delta to its ingredient's stock and appends one ledger row per
    non-zero delta. Either every delta is applied or none is: decreases are
    validated against the zero floor before anything is written. Increases
    are never checked.
    """
    changes = {iid: to_quantity(d) for iid, d in deltas.items() if to_quantity(d) != ZERO}
    if not changes:
        return []

    locked = await lock_ingredients(changes.keys(), conn)
    for iid in sorted(changes):
        ingredient = locked.get(iid)
        if ingredient is None:
            raise NotFound(f"ingredient {iid} not found")
        delta = changes[iid]
        if delta < 0 and ingredient.quantity + delta < 0:
            raise InsufficientInventory(ingredient.name, -delta, to_quantity(ingredient.quantity))

    entries = []
    for iid in sorted(changes):
        ingredient = locked[iid]
        delta = changes[iid]
        ingredient.quantity = to_quantity(ingredient.quantity + delta)
        await ingredient.save(update_fields=["quantity", "updated_at"], using_db=conn)
        entry = await InventoryTransaction.create(
            ingredient_id=iid,
            delta=delta,
            transaction_type=kind,
            reference_id=reference_id,
            notes=note,
            using_db=conn,
        )
        entries.append(entry)
        if kind == TransactionType.ORDER_USAGE:
            check_for_low_stock(ingredient)
    return entries


def check_for_low_stock(ingredient: Ingredient) -> bool:
    """Logs an alert when stock is at or below the reorder level."""
    if ingredient.quantity <= ingredient.reorder_level:
        log.warning(
            f"ALERT: Low stock for ingredient {ingredient.name} (#{ingredient.id}): "
            f"{ingredient.quantity} {ingredient.unit.value} left, reorder level {ingredient.reorder_level}"
        )
        return True
    return False


async def usage_since(reference_id: int, conn: Any = None) -> Requirements:
    """
    Reconstructs what an order actually consumed from its order_usage ledger
    rows, independent of the live stock figures.
    """
    rows = await InventoryTransaction.filter(
        reference_id=reference_id,
        transaction_type=TransactionType.ORDER_USAGE,
    ).using_db(conn)
    used: Dict[int, Decimal] = defaultdict(Decimal)
    for row in rows:
        used[row.ingredient_id] -= row.delta
    return {iid: to_quantity(amount) for iid, amount in used.items() if amount != ZERO}


async def adjust_stock(ingredient_id: int, delta, note: Optional[str] = None) -> Ingredient:
    """Manual restock (positive delta) or write-off (negative delta)."""
    amount = to_quantity(delta)
    if amount == ZERO:
        raise InvalidQuantity("adjustment delta must be non-zero")

    async with in_transaction() as conn:
        await apply({ingredient_id: amount}, TransactionType.ADJUSTMENT, conn, note=note or "Manual adjustment")
        ingredient = await Ingredient.get(id=ingredient_id).using_db(conn)
    log.info(f"Stock of ingredient {ingredient_id} adjusted by {amount}, now {ingredient.quantity}")
    return ingredient


async def get_transactions(
    reference_id: Optional[int] = None,
    ingredient_id: Optional[int] = None,
    conn: Any = None,
) -> List[InventoryTransaction]:
    """Queries the audit log, oldest entry first."""
    query = InventoryTransaction.all().using_db(conn)
    if reference_id is not None:
        query = query.filter(reference_id=reference_id)
    if ingredient_id is not None:
        query = query.filter(ingredient_id=ingredient_id)
    return await query.order_by("id")


async def low_stock(conn: Any = None) -> List[Ingredient]:
    ingredients = await Ingredient.all().using_db(conn).order_by("id")
    return [i for i in ingredients if i.quantity <= i.reorder_level]


# ----------- Ingredient catalog -----------

def _validate_ingredient_fields(name=None, reorder_level=None, cost_per_unit=None):
    if name is not None and not name.strip():
        raise InvalidName("ingredient name must not be empty")
    if reorder_level is not None and to_quantity(reorder_level) < 0:
        raise InvalidReorderLevel()
    if cost_per_unit is not None and Decimal(str(cost_per_unit)) < 0:
        raise InvalidCostPerUnit()


def _to_cost(value) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value)).quantize(CENTS)


async def create_ingredient(
    name: str,
    unit: UnitType,
    quantity=ZERO,
    reorder_level=ZERO,
    cost_per_unit=None,
) -> Ingredient:
    """
    Registers an ingredient with empty stock and books the opening quantity
    as an adjustment, so every unit on hand is accounted for in the ledger.
    """
    _validate_ingredient_fields(name or "", reorder_level, cost_per_unit)
    unit = UnitType(unit)
    opening = to_quantity(quantity)
    if opening < 0:
        raise InvalidQuantity("opening stock must not be negative")

    async with in_transaction() as conn:
        ingredient = await Ingredient.create(
            name=name.strip(),
            unit=unit,
            quantity=ZERO,
            reorder_level=to_quantity(reorder_level),
            cost_per_unit=_to_cost(cost_per_unit),
            using_db=conn,
        )
        if opening:
            await apply({ingredient.id: opening}, TransactionType.ADJUSTMENT, conn, note="Opening stock")
            await ingredient.refresh_from_db(using_db=conn)
    log.info(f"Ingredient {ingredient.name} (#{ingredient.id}) created with {ingredient.quantity} {unit.value}")
    return ingredient


async def get_ingredient(ingredient_id: int) -> Ingredient:
    ingredient = await Ingredient.get_or_none(id=ingredient_id)
    if not ingredient:
        raise NotFound(f"ingredient {ingredient_id} not found")
    return ingredient


async def list_ingredients() -> List[Ingredient]:
    return await Ingredient.all().order_by("id")


async def update_ingredient(
    ingredient_id: int,
    name: Optional[str] = None,
    unit: Optional[UnitType] = None,
    reorder_level=None,
    cost_per_unit=None,
) -> Ingredient:
    """
    Changes the descriptive fields of an ingredient. The stock column is never
    written here: quantities only move through ledger entries.
    """
    _validate_ingredient_fields(name, reorder_level, cost_per_unit)
    values = {}
    if name is not None:
        values["name"] = name.strip()
    if unit is not None:
        values["unit"] = unit
    if reorder_level is not None:
        values["reorder_level"] = to_quantity(reorder_level)
    if cost_per_unit is not None:
        values["cost_per_unit"] = _to_cost(cost_per_unit)
    if not values:
        return await get_ingredient(ingredient_id)

    values["updated_at"] = timezone.now()
    updated = await Ingredient.filter(id=ingredient_id).update(**values)
    if not updated:
        raise NotFound(f"ingredient {ingredient_id} not found")
    return await Ingredient.get(id=ingredient_id)
