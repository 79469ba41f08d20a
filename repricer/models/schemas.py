"""
Pydantic schemas for repricing configuration, listings and results.
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class RepricingRule(str, Enum):
    """How a strategy positions a listing against the lowest competitor."""
    MATCH_LOWEST = "MATCH_LOWEST"
    BEAT_LOWEST = "BEAT_LOWEST"
    STAY_ABOVE = "STAY_ABOVE"
    CUSTOM = "CUSTOM"


class AdjustmentMode(str, Enum):
    """Sub-mode for BEAT_LOWEST / STAY_ABOVE."""
    AMOUNT = "AMOUNT"
    PERCENTAGE = "PERCENTAGE"


class NoCompetitionAction(str, Enum):
    """Fallback when no competitor price can be resolved."""
    USE_MAX_PRICE = "USE_MAX_PRICE"
    KEEP_CURRENT = "KEEP_CURRENT"
    USE_MIN_PRICE = "USE_MIN_PRICE"


class ChangeDirection(str, Enum):
    INCREASED = "increased"
    DECREASED = "decreased"


class CompetitorSource(str, Enum):
    """Where a resolved competitor price came from."""
    MANUAL = "manual"
    API_SEARCH = "api_search"
    NONE = "none"


VALID_CONDITIONS = frozenset({
    "New",
    "New with tags",
    "New with box",
    "New without tags",
    "Used",
    "Used, Excellent",
    "Used, Very Good",
    "Used, Good",
    "Used, Acceptable",
    "For parts or not working",
    "Refurbished",
    "Open box",
    "Certified Refurbished",
})


# ==================== Shared ====================

class AppliedListing(BaseModel):
    """A listing a strategy or rule is attached to."""
    item_id: str = Field(..., min_length=1)
    sku: Optional[str] = None
    title: Optional[str] = None
    date_applied: datetime = Field(default_factory=utcnow)

    def matches(self, item_id: str, sku: Optional[str] = None) -> bool:
        """Same item, and same SKU when one is given."""
        if self.item_id != item_id:
            return False
        return not sku or self.sku == sku


class StrategyExecutionEntry(BaseModel):
    """One entry of a strategy's bounded execution history."""
    timestamp: datetime = Field(default_factory=utcnow)
    item_id: str
    old_price: Optional[Decimal] = None
    new_price: Optional[Decimal] = None
    competitor_price: Optional[Decimal] = None
    success: bool = True


# ==================== Pricing Strategy ====================

class StrategyFields(BaseModel):
    """Fields a user supplies when creating a pricing strategy."""
    strategy_name: str = Field(..., min_length=1, max_length=100)
    repricing_rule: RepricingRule
    description: Optional[str] = Field(default=None, max_length=500)
    beat_by: Optional[AdjustmentMode] = None
    stay_above_by: Optional[AdjustmentMode] = None
    value: Optional[Decimal] = Field(default=None, ge=0)
    no_competition_action: NoCompetitionAction = NoCompetitionAction.USE_MAX_PRICE
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)
    is_active: bool = True
    is_default: bool = False
    created_by: Optional[str] = None

    @field_validator("strategy_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Strategy name is required")
        return v

    @field_validator("beat_by", "stay_above_by", mode="before")
    @classmethod
    def blank_mode_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def check_rule_fields(self):
        if self.repricing_rule == RepricingRule.BEAT_LOWEST:
            if self.beat_by is None or self.value is None:
                raise ValueError("BEAT_LOWEST strategy requires beat_by and value fields")
        if self.repricing_rule == RepricingRule.STAY_ABOVE:
            if self.stay_above_by is None or self.value is None:
                raise ValueError("STAY_ABOVE strategy requires stay_above_by and value fields")
        if self.value is not None and self.value > 1 and self.adjustment_mode == AdjustmentMode.PERCENTAGE:
            raise ValueError(
                "Percentage values should be in decimal format (e.g., 0.10 for 10%)"
            )
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("Minimum price cannot be greater than maximum price")
        return self

    @property
    def adjustment_mode(self) -> Optional[AdjustmentMode]:
        """The sub-mode that applies to this strategy's rule."""
        if self.repricing_rule == RepricingRule.BEAT_LOWEST:
            return self.beat_by
        if self.repricing_rule == RepricingRule.STAY_ABOVE:
            return self.stay_above_by
        return None


class StrategyUpdate(BaseModel):
    """Partial update for a pricing strategy."""
    strategy_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    repricing_rule: Optional[RepricingRule] = None
    description: Optional[str] = Field(default=None, max_length=500)
    beat_by: Optional[AdjustmentMode] = None
    stay_above_by: Optional[AdjustmentMode] = None
    value: Optional[Decimal] = None
    no_competition_action: Optional[NoCompetitionAction] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None

    @field_validator("beat_by", "stay_above_by", mode="before")
    @classmethod
    def blank_mode_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class PricingStrategy(StrategyFields):
    """Stored pricing strategy."""
    id: str = Field(default_factory=new_id)
    applies_to: list[AppliedListing] = Field(default_factory=list)
    usage_count: int = 0
    last_used: Optional[datetime] = None
    execution_history: list[StrategyExecutionEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def name(self) -> str:
        return self.strategy_name


# ==================== Competitor Rule ====================

class RuleExecutionEntry(BaseModel):
    date: datetime = Field(default_factory=utcnow)
    item_id: str
    sku: Optional[str] = None
    competitors_found: int = 0
    competitors_excluded: int = 0
    final_competitors_used: int = 0


class RuleExecutionStats(BaseModel):
    total_competitors_found: int = 0
    competitors_excluded: int = 0
    last_execution: Optional[datetime] = None
    execution_history: list[RuleExecutionEntry] = Field(default_factory=list)


class RuleFields(BaseModel):
    """Fields a user supplies when creating a competitor rule."""
    rule_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    min_percent_of_current_price: Decimal = Field(default=Decimal("0"), ge=0, le=1000)
    max_percent_of_current_price: Decimal = Field(default=Decimal("1000"), ge=0, le=1000)
    exclude_countries: list[str] = Field(default_factory=list)
    exclude_conditions: list[str] = Field(default_factory=list)
    exclude_product_title_words: list[str] = Field(default_factory=list)
    exclude_sellers: list[str] = Field(default_factory=list)
    find_competitors_based_on_mpn: bool = False
    is_active: bool = True
    is_default: bool = False
    created_by: Optional[str] = None

    @field_validator("rule_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Rule name is required")
        return v

    @field_validator("exclude_conditions")
    @classmethod
    def known_conditions(cls, v: list[str]) -> list[str]:
        invalid = [c for c in v if c not in VALID_CONDITIONS]
        if invalid:
            raise ValueError(f"{invalid} contains invalid item conditions")
        return v

    @model_validator(mode="after")
    def check_window(self):
        if self.min_percent_of_current_price > self.max_percent_of_current_price:
            raise ValueError("Minimum percentage cannot be greater than maximum percentage")
        return self


class RuleUpdate(BaseModel):
    """Partial update for a competitor rule."""
    rule_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    min_percent_of_current_price: Optional[Decimal] = None
    max_percent_of_current_price: Optional[Decimal] = None
    exclude_countries: Optional[list[str]] = None
    exclude_conditions: Optional[list[str]] = None
    exclude_product_title_words: Optional[list[str]] = None
    exclude_sellers: Optional[list[str]] = None
    find_competitors_based_on_mpn: Optional[bool] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None


class CompetitorRule(RuleFields):
    """Stored competitor rule."""
    id: str = Field(default_factory=new_id)
    applies_to: list[AppliedListing] = Field(default_factory=list)
    usage_count: int = 0
    last_used: Optional[datetime] = None
    execution_stats: RuleExecutionStats = Field(default_factory=RuleExecutionStats)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def name(self) -> str:
        return self.rule_name


# ==================== Manual Competitors ====================

class Competitor(BaseModel):
    """A manually curated competing listing with its cached price."""
    competitor_item_id: str = Field(..., min_length=1)
    title: str = ""
    price: Decimal
    currency: str = "USD"
    condition: Optional[str] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    locale: str = "US"
    seller_id: Optional[str] = None
    added_at: datetime = Field(default_factory=utcnow)


class CompetitorCreate(BaseModel):
    """Request to add a competitor, by item id or by eBay URL."""
    competitor_item_id: Optional[str] = None
    product_url: Optional[str] = None
    title: str = ""
    price: Decimal = Field(..., gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    condition: Optional[str] = None
    image_url: Optional[str] = None
    locale: Optional[str] = None
    seller_id: Optional[str] = None

    @model_validator(mode="after")
    def needs_identity(self):
        if not self.competitor_item_id and not self.product_url:
            raise ValueError("competitor_item_id or product_url is required")
        return self


class ManualCompetitorList(BaseModel):
    """Competitors tracked for one listing of one user."""
    user_id: str
    item_id: str
    competitors: list[Competitor] = Field(default_factory=list)
    monitoring_enabled: bool = True
    monitoring_frequency: int = Field(default=20, ge=1)
    last_monitoring_check: Optional[datetime] = None
    last_lowest_price: Optional[Decimal] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ==================== Listing ====================

class Listing(BaseModel):
    """A seller's listing and its repricing binding."""
    item_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    strategy_id: Optional[str] = None
    competitor_rule_id: Optional[str] = None
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)
    mpn: Optional[str] = None
    upc: Optional[str] = None
    ean: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ApplyStrategyRequest(BaseModel):
    strategy_id: str
    sku: Optional[str] = None
    title: Optional[str] = None
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)


class ApplyRuleRequest(BaseModel):
    rule_id: str
    sku: Optional[str] = None
    title: Optional[str] = None


# ==================== Execution ====================

class ExecutionRecord(BaseModel):
    """Immutable record of a price change that was pushed to eBay."""
    item_id: str
    sku: Optional[str] = None
    old_price: Decimal
    new_price: Decimal
    currency: str = "USD"
    competitor_price: Optional[Decimal] = None
    change_amount: Decimal
    change_percentage: Decimal
    change_direction: ChangeDirection
    strategy_id: Optional[str] = None
    strategy_name: Optional[str] = None
    repricing_rule: Optional[RepricingRule] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    competitor_count: int = 0
    source: str = "strategy"
    push_method: Optional[str] = None
    success: bool = True
    timestamp: datetime = Field(default_factory=utcnow)


class ExecutionResult(BaseModel):
    """Outcome of one per-item repricing evaluation."""
    item_id: str
    success: bool
    price_changed: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    old_price: Optional[Decimal] = None
    new_price: Optional[Decimal] = None
    competitor_price: Optional[Decimal] = None
    competitor_source: Optional[CompetitorSource] = None
    change_amount: Optional[Decimal] = None
    strategy_name: Optional[str] = None
    push_method: Optional[str] = None
    recorded: bool = False


class BatchError(BaseModel):
    item_id: str
    error: str


class BatchResult(BaseModel):
    """Aggregate of an execute-all run."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    price_changes: int = 0
    errors: list[BatchError] = Field(default_factory=list)
    results: list[ExecutionResult] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    database: str
    mongodb: str
    ebay_api: str
