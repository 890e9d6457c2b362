"""
Quantity resolver.

Pure functions computing the channel-facing quantity of every mapped
product from raw warehouse quantities:

    simple  -> snapshot[warehouse_sku]
    bundle  -> min over components of floor(snapshot[sku] / quantity_per_unit)

No I/O, no module state: identical input gives identical output.
"""

from enum import Enum
from typing import Iterable, Mapping as MappingType, Optional, Union

from models.mapping import BundleProduct, SimpleProduct
from exceptions import InvalidMappingError

ProductRow = Union[SimpleProduct, BundleProduct]


class MissingSkuPolicy(str, Enum):
    """
    What a warehouse SKU absent from the snapshot means.

    ZERO: out of stock (quantity 0).
    SKIP: unknown; products depending on it are not resolved, so channel
          stock is left untouched on a transient fetch gap.
    """
    ZERO = "zero"
    SKIP = "skip"


def validate_products(products: Iterable[ProductRow]) -> None:
    """
    Reject bundles that cannot be resolved.

    Raises:
        InvalidMappingError: component with zero, negative or missing
            quantity_per_unit
    """
    problems = []
    for product in products:
        if not isinstance(product, BundleProduct):
            continue
        for component in product.bundle_components:
            divisor = component.quantity_per_unit
            if divisor is None or divisor <= 0:
                problems.append({
                    "channel_sku": product.channel_sku,
                    "warehouse_sku": component.warehouse_sku,
                    "quantity_per_unit": divisor,
                })

    if problems:
        raise InvalidMappingError(
            f"{len(problems)} bundle component(s) have an invalid quantity_per_unit",
            problems=problems
        )


def resolve_product(
    product: ProductRow,
    snapshot: MappingType[str, int],
    policy: MissingSkuPolicy = MissingSkuPolicy.ZERO
) -> Optional[int]:
    """
    Resolve one product.

    Returns:
        Target quantity (>= 0), or None when policy is SKIP and a
        required warehouse SKU is absent from the snapshot.
    """
    if isinstance(product, SimpleProduct):
        if product.warehouse_sku not in snapshot:
            return None if policy == MissingSkuPolicy.SKIP else 0
        return max(int(snapshot[product.warehouse_sku]), 0)

    if not product.bundle_components:
        return 0

    buildable = []
    for component in product.bundle_components:
        if component.warehouse_sku not in snapshot and policy == MissingSkuPolicy.SKIP:
            return None
        available = max(int(snapshot.get(component.warehouse_sku, 0)), 0)
        divisor = component.quantity_per_unit
        if divisor is None or divisor <= 0:
            raise InvalidMappingError(
                f"Bundle {product.channel_sku} component {component.warehouse_sku} "
                f"has invalid quantity_per_unit {divisor!r}",
                problems=[{
                    "channel_sku": product.channel_sku,
                    "warehouse_sku": component.warehouse_sku,
                    "quantity_per_unit": divisor,
                }]
            )
        buildable.append(available // divisor)

    return min(buildable)


def resolve(
    products: Iterable[ProductRow],
    snapshot: MappingType[str, int],
    policy: MissingSkuPolicy = MissingSkuPolicy.ZERO
) -> dict[str, int]:
    """
    Resolve target quantities for every product.

    Args:
        products: Mapping rows
        snapshot: Warehouse SKU -> available quantity
        policy: How absent warehouse SKUs are treated

    Returns:
        channel_sku -> quantity. Under SKIP, unresolved products are
        left out.

    Raises:
        InvalidMappingError: bundle with a zero or missing divisor
    """
    products = list(products)
    validate_products(products)

    resolved = {}
    for product in products:
        quantity = resolve_product(product, snapshot, policy)
        if quantity is not None:
            resolved[product.channel_sku] = quantity
    return resolved


def newly_resolvable(
    products: Iterable[ProductRow],
    covered_before: Iterable[str],
    covered_now: Iterable[str],
    first_batch: bool = False
) -> list[ProductRow]:
    """
    Products whose warehouse SKUs are all covered now but were not before.

    covered_before is the SKU prefix of batches 0..k-1, covered_now of
    batches 0..k. Products with no warehouse SKUs (empty bundles) are
    resolvable on the first batch only.
    """
    before = set(covered_before)
    now = set(covered_now)

    ready = []
    for product in products:
        skus = product.warehouse_skus
        if not skus:
            if first_batch:
                ready.append(product)
            continue
        if all(s in now for s in skus) and not all(s in before for s in skus):
            ready.append(product)
    return ready
