"""Static SMS credit price list (prices in GHS)."""

from typing import List, NamedTuple, Optional


class Bundle(NamedTuple):
    id: str
    name: str
    price: int
    units: int

    @property
    def price_minor(self) -> int:
        """Price in pesewas, the unit Paystack amounts are expressed in."""
        return int(round(self.price * 100))


BUNDLES: List[Bundle] = [
    Bundle("starter", "Starter", 40, 401),
    Bundle("basic", "Basic", 50, 601),
    Bundle("standard", "Standard", 100, 1052),
    Bundle("premium", "Premium", 150, 2054),
    Bundle("advanced", "Advanced", 250, 4108),
    Bundle("vip", "VIP", 1050, 20340),
]

_BY_ID = {bundle.id: bundle for bundle in BUNDLES}


def get_bundle(bundle_id: Optional[str]) -> Optional[Bundle]:
    if not bundle_id:
        return None
    return _BY_ID.get(bundle_id)


def recommend_bundle(units: int) -> Optional[dict]:
    """
    Smallest bundle that covers ``units``.

    When even the largest bundle is too small, recommend enough copies of it.
    Returns None when no units are needed.
    """
    if units <= 0:
        return None

    for bundle in BUNDLES:
        if bundle.units >= units:
            return {**bundle._asdict(), "quantity": 1, "total_price": bundle.price, "total_units": bundle.units}

    largest = BUNDLES[-1]
    quantity = -(-units // largest.units)
    return {
        **largest._asdict(),
        "quantity": quantity,
        "total_price": largest.price * quantity,
        "total_units": largest.units * quantity,
    }
