"""Product areas — read-only reference data for classification."""

from pydantic import BaseModel, Field

GENERAL_AREA = "General"
DEFAULT_AREA_COLOR = "#E8258E"


class ProductArea(BaseModel):
    id: str
    name: str
    color: str = DEFAULT_AREA_COLOR
    keyword_rules: list[str] = Field(default_factory=list)   # ordered, lowercase


# Built-in rules, used by the seed script and by classification when no
# rules are supplied. Matching is exact or substring in either direction.
DEFAULT_PRODUCT_AREAS: list[ProductArea] = [
    ProductArea(
        id="network", name="Network", color="#E20074",
        keyword_rules=[
            "network", "outage", "coverage", "signal", "5g", "lte", "4g", "down",
            "slow", "speed", "data", "connection", "connectivity", "bars",
            "reception", "tower", "dropped", "disconnected", "roaming",
        ],
    ),
    ProductArea(
        id="mobile-app", name="Mobile App", color="#00A19C",
        keyword_rules=[
            "app", "login", "crash", "tuesdays", "account", "mobile app",
            "t-mobile app", "application", "interface", "ui", "ux",
            "feature", "button", "screen", "loading", "error message",
        ],
    ),
    ProductArea(
        id="billing", name="Billing", color="#F5A623",
        keyword_rules=[
            "bill", "charge", "payment", "price", "plan", "overcharge",
            "billing", "invoice", "cost", "fee", "refund", "credit",
            "autopay", "statement", "balance", "owe", "paid", "money",
        ],
    ),
    ProductArea(
        id="home-internet", name="Home Internet", color="#7B61FF",
        keyword_rules=[
            "home internet", "gateway", "wifi", "router", "5g home",
            "home broadband", "modem", "wireless", "internet service",
            "home network", "tmhi", "t-mobile home", "home router",
        ],
    ),
]
