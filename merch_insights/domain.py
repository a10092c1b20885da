"""
Domain Models

Immutable value types shared by every stage of the insight engine:
- Sale-event rows and catalog entries (inputs)
- Product statistics, trends and stock recommendations (derived)
- Notifications and recommendations (outputs)
- Operator settings and the recomputation result

All models are frozen Pydantic models so they can be hashed, compared by
value and serialized to JSON without extra plumbing.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from merch_insights.errors import ValidationError


# =============================================================================
# ENUMERATIONS
# =============================================================================

class ReportPeriod(str, Enum):
    """Reporting window one uploaded report covers"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def from_days(cls, days: int) -> "ReportPeriod":
        """Map a day-count window onto its period slot"""
        if days <= 0:
            raise ValidationError(
                f"Day window must be positive, got {days}",
                details={"days": days},
            )
        if days == 1:
            return cls.DAILY
        if days <= 7:
            return cls.WEEKLY
        if days <= 30:
            return cls.MONTHLY
        return cls.YEARLY

    @property
    def days(self) -> int:
        """Nominal length of the period in days"""
        return PERIOD_DAYS[self]


PERIOD_DAYS: Dict[ReportPeriod, int] = {
    ReportPeriod.DAILY: 1,
    ReportPeriod.WEEKLY: 7,
    ReportPeriod.MONTHLY: 30,
    ReportPeriod.YEARLY: 365,
}


class Segment(str, Enum):
    """ABC revenue-contribution tier"""
    A = "A"
    B = "B"
    C = "C"


class Currency(str, Enum):
    TRY = "TRY"
    USD = "USD"
    EUR = "EUR"


class TrendStatus(str, Enum):
    RISING = "rising"
    COOLING = "cooling"
    STABLE = "stable"


class StockUrgency(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    OK = "ok"
    NO_DATA = "no-data"


class NotificationCategory(str, Enum):
    STOCK = "stock"
    SALES = "sales"
    CONVERSION = "conversion"
    TREND = "trend"
    DATA = "data"


class NotificationSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    INFO = "info"

    @property
    def rank(self) -> int:
        return {"critical": 2, "high": 1, "info": 0}[self.value]


class NotificationStatus(str, Enum):
    GENERATED = "generated"
    READ = "read"
    DISMISSED = "dismissed"


class RecommendationType(str, Enum):
    STOCK_REORDER = "stock-reorder"
    PRICE_ADJUST = "price-adjust"
    IMAGERY = "imagery"
    CAMPAIGN = "campaign"
    ARCHIVE = "archive"
    GIFT_BUNDLE = "gift-bundle"


class RecommendationUrgency(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"critical": 3, "high": 2, "medium": 1, "low": 0}[self.value]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# INPUTS
# =============================================================================

class SaleEventRow(_Frozen):
    """One observed day's metrics for one product"""
    product_code: str = Field(min_length=1)
    date: date
    quantity: int = Field(default=0, ge=0)
    revenue: float = Field(default=0.0, ge=0)
    impressions: int = Field(default=0, ge=0)
    add_to_cart: int = Field(default=0, ge=0)
    stock_snapshot: Optional[int] = None
    product_name: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    brand: Optional[str] = None
    favorites: int = Field(default=0, ge=0)


class ProductCatalogEntry(_Frozen):
    """Static product attributes keyed by product code"""
    code: str = Field(min_length=1)
    name: str
    category: Optional[str] = None
    image_url: Optional[str] = None
    unit_cost: Optional[float] = Field(default=None, ge=0)
    current_stock: Optional[int] = None


# =============================================================================
# DERIVED
# =============================================================================

class ProductStats(_Frozen):
    """Aggregation of all sale-event rows for one product within one period"""
    code: str
    name: str
    category: Optional[str] = None
    image_url: Optional[str] = None

    total_quantity: int = 0
    total_revenue: float = 0.0
    total_impressions: int = 0
    total_add_to_cart: int = 0

    conversion_rate: float = 0.0  # quantity / impressions
    avg_unit_price: float = 0.0  # revenue / quantity
    view_to_cart_rate: float = 0.0  # add_to_cart / impressions
    cart_to_sale_rate: float = 0.0  # quantity / add_to_cart

    current_stock: Optional[int] = None
    unit_cost: Optional[float] = None
    segment: Optional[Segment] = None


class ProductTrend(_Frozen):
    """Comparison of one product across two statistics snapshots"""
    product_code: str
    product_name: str
    status: TrendStatus
    change_pct: float
    current_revenue: float
    baseline_revenue: float
    yoy_change: Optional[float] = None  # None means not applicable, never zero
    dormant: bool = False
    estimated_impact: float = 0.0
    current_segment: Optional[Segment] = None
    previous_segment: Optional[Segment] = None


class StockRecommendation(_Frozen):
    """Suggested reorder quantity for one product"""
    product_code: str
    product_name: str
    period_days: int
    daily_velocity: float
    target_stock_days: int
    lead_time_days: int = 0
    current_stock: Optional[int] = None
    target_stock: float
    recommended_order: int
    urgency: StockUrgency
    days_until_empty: Optional[float] = None
    total_revenue: float = 0.0
    unit_cost: Optional[float] = None
    allocated_quantity: Optional[int] = None
    allocated_cost: Optional[float] = None


class ComputationGap(_Frozen):
    """A comparison that could not be made because its input is missing"""
    subject: str
    reason: str


class RuleFailure(_Frozen):
    """A rule that could not evaluate for one subject"""
    rule: str
    subject: str
    error: str


# =============================================================================
# NOTIFICATIONS & RECOMMENDATIONS
# =============================================================================

class NotificationKey(_Frozen):
    """Content-derived identity of a notification, stable across recomputes"""
    category: NotificationCategory
    subject: str
    rule: str

    def as_tuple(self) -> Tuple[str, str, str]:
        return (self.category.value, self.subject, self.rule)


class NotificationImpact(_Frozen):
    estimated_lost_revenue: Optional[float] = None
    potential_revenue: Optional[float] = None
    affected_revenue: Optional[float] = None

    @property
    def magnitude(self) -> float:
        """Largest lost or potential revenue figure"""
        values = [
            v for v in (self.estimated_lost_revenue, self.potential_revenue)
            if v is not None
        ]
        return max(values) if values else 0.0


class NavigationTarget(_Frozen):
    """Deep link into a filtered view of the presentation layer"""
    tab: str
    analysis_type: str
    filters: Dict[str, str] = Field(default_factory=dict)
    related_product_codes: List[str] = Field(default_factory=list)
    segment: Optional[Segment] = None


class Notification(_Frozen):
    key: NotificationKey
    severity: NotificationSeverity
    title: str
    description: str
    metric: Optional[str] = None
    impact: Optional[NotificationImpact] = None
    navigation: Optional[NavigationTarget] = None
    priority_score: float = 0.0
    status: NotificationStatus = NotificationStatus.GENERATED
    read_at: Optional[datetime] = None

    @property
    def category(self) -> NotificationCategory:
        return self.key.category


class Recommendation(_Frozen):
    type: RecommendationType
    urgency: RecommendationUrgency
    product_code: str
    product_name: str
    title: str
    description: str
    reason: str
    action_steps: List[str] = Field(default_factory=list)
    estimated_impact: float = 0.0
    impact_score: int = 0

    @property
    def key(self) -> Tuple[str, str]:
        return (self.type.value, self.product_code)


class RecommendationSummary(_Frozen):
    total_products: int
    critical_count: int
    high_count: int
    by_type: Dict[RecommendationType, int] = Field(default_factory=dict)
    top: List[Recommendation] = Field(default_factory=list)


# =============================================================================
# SETTINGS & STATE
# =============================================================================

class AppSettings(BaseModel):
    """
    Operator-tunable thresholds.

    Persisted under camelCase keys (``targetStockDays``, ``lowStockThreshold``,
    ``minImpressionsForOpportunity``, ``currency`` ...). Instances are frozen;
    changes go through ``SettingsManager.update`` which validates before
    persisting.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    target_stock_days: int = Field(default=30, gt=0)
    low_stock_threshold: int = Field(default=10, ge=0)
    min_impressions_for_opportunity: int = Field(default=100, ge=0)
    currency: Currency = Currency.TRY

    lead_time_days: int = Field(default=0, ge=0)
    critical_cover_days: float = Field(default=5.0, ge=0)
    rising_threshold_pct: float = Field(default=20.0, gt=0)
    cooling_threshold_pct: float = Field(default=-20.0, lt=0)
    conversion_floor: float = Field(default=0.005, ge=0, le=1)
    cart_abandon_min_add_to_cart: int = Field(default=10, ge=0)
    cart_to_sale_floor: float = Field(default=0.15, ge=0, le=1)
    view_to_cart_floor: float = Field(default=0.02, ge=0, le=1)
    low_visibility_impressions: int = Field(default=500, ge=0)
    material_trend_impact: float = Field(default=1000.0, ge=0)
    dormant_high_revenue: float = Field(default=1000.0, ge=0)
    priority_impact_reference: float = Field(default=50000.0, gt=0)
    overstock_cover_days: float = Field(default=60.0, gt=0)
    segment_a_share: float = Field(default=80.0, gt=0, lt=100)
    segment_b_share: float = Field(default=95.0, gt=0, le=100)
    required_periods: List[ReportPeriod] = Field(
        default_factory=lambda: [ReportPeriod.WEEKLY, ReportPeriod.MONTHLY]
    )

    @field_validator("required_periods")
    @classmethod
    def dedupe_periods(cls, v: List[ReportPeriod]) -> List[ReportPeriod]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def check_segment_shares(self) -> "AppSettings":
        if self.segment_a_share >= self.segment_b_share:
            raise ValueError("segmentAShare must be below segmentBShare")
        return self


class LoadedReport(_Frozen):
    period: ReportPeriod
    uploaded_at: datetime
    row_count: int


class AnalyticsState(_Frozen):
    """Canonical recomputation output consumed by the presentation layer"""
    products_by_period: Dict[ReportPeriod, Dict[str, ProductStats]] = Field(default_factory=dict)
    loaded_reports: List[LoadedReport] = Field(default_factory=list)
    last_updated_at: Optional[datetime] = None


class RecomputeResult(_Frozen):
    state: AnalyticsState
    trends: List[ProductTrend] = Field(default_factory=list)
    stock_recommendations: List[StockRecommendation] = Field(default_factory=list)
    notifications: List[Notification] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    summary: Optional[RecommendationSummary] = None
    gaps: List[ComputationGap] = Field(default_factory=list)
    failures: List[RuleFailure] = Field(default_factory=list)
