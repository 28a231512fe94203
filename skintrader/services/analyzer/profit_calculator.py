"""
Profit Calculator for flip opportunities.

Compares a purchase price against the expected resale proceeds after the
marketplace sales fee.
"""

import math
from dataclasses import dataclass
from typing import Optional

from skintrader.config.settings import Settings


@dataclass
class ProfitCalculationResult:
    """Breakdown of a flip's expected economics."""
    purchase_price: float
    expected_sale_price: float
    sales_fee: float
    net_proceeds: float
    required_proceeds: float
    is_profitable: bool

    @property
    def expected_profit(self) -> float:
        return self.net_proceeds - self.purchase_price


class ProfitCalculator:
    """Profitability and pricing rules shared by purchase and relist paths."""

    def __init__(
        self,
        fee_rate: float = 0.1,
        fee_floor: float = 10.0,
        min_profit_margin: float = 0.2,
        relist_discount: float = 0.0,
        min_list_price: float = 1.0,
        undercut_step: float = 1.0,
    ):
        """
        Initialize profit calculator.

        Args:
            fee_rate: Default sales fee as a fraction of the sale price
            fee_floor: Minimum absolute fee per sale
            min_profit_margin: Required margin over the purchase price
            relist_discount: Undercut applied to the mean when reselling
            min_list_price: Lowest price an item is ever listed at
            undercut_step: How far below the cheapest competitor a relist may go
        """
        self.fee_rate = fee_rate
        self.fee_floor = fee_floor
        self.min_profit_margin = min_profit_margin
        self.relist_discount = relist_discount
        self.min_list_price = min_list_price
        self.undercut_step = undercut_step

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProfitCalculator":
        return cls(
            fee_rate=settings.FEE_RATE,
            fee_floor=settings.FEE_FLOOR,
            min_profit_margin=settings.MIN_PROFIT_MARGIN,
            relist_discount=settings.RELIST_DISCOUNT,
            min_list_price=settings.MIN_LIST_PRICE,
            undercut_step=settings.UNDERCUT_STEP,
        )

    def expected_sale_price(self, mean_price: float) -> float:
        return (1.0 - self.relist_discount) * mean_price

    def sales_fee(self, sale_price: float, fee_rate: Optional[float] = None) -> float:
        """Fee charged on a sale; ``fee_rate`` overrides the default rate."""
        rate = self.fee_rate if fee_rate is None else fee_rate
        return max(rate * sale_price, self.fee_floor)

    def calculate(
        self, purchase_price: float, mean_price: float, fee_rate: Optional[float] = None
    ) -> ProfitCalculationResult:
        """
        Evaluate buying at ``purchase_price`` and reselling at the mean.

        The flip is profitable when ``price * (1 + margin) <= sale - fee``.

        Args:
            purchase_price: Asking price of the listing
            mean_price: Robust mean sale price of the item class
            fee_rate: Reduced fee for this item class, if one applies
        """
        sale_price = self.expected_sale_price(mean_price)
        fee = self.sales_fee(sale_price, fee_rate)
        net = sale_price - fee
        required = purchase_price * (1.0 + self.min_profit_margin)
        return ProfitCalculationResult(
            purchase_price=purchase_price,
            expected_sale_price=sale_price,
            sales_fee=fee,
            net_proceeds=net,
            required_proceeds=required,
            is_profitable=required <= net,
        )

    def max_purchase_price(self, mean_price: float, fee_rate: Optional[float] = None) -> float:
        """Highest price that still passes the profitability test."""
        sale_price = self.expected_sale_price(mean_price)
        return (sale_price - self.sales_fee(sale_price, fee_rate)) / (1.0 + self.min_profit_margin)

    def list_price(self, mean_price: float, lowest_competitor: Optional[float] = None) -> float:
        """
        Asking price for relisting an owned item, in whole native units.

        Never below the rounded-up expected sale price. When the cheapest
        competing listing is dearer than that, list one step under it.
        """
        price = max(float(math.ceil(self.expected_sale_price(mean_price))), self.min_list_price)
        if lowest_competitor is not None:
            price = max(price, lowest_competitor - self.undercut_step)
        return price
