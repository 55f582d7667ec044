"""
backend/footbet/config_categories.py

Purpose:
    Prediction category and subscription plan registry. Each category is one
    published unit per calendar day; its ruleset decides which generation run
    produces it and its access tier decides who may read it.
"""

OFFICIAL_RULESET = "official"
SPECIAL_RULESET = "special"

# Access tiers, least to most privileged.
ACCESS_PUBLIC = "public"
ACCESS_MEMBER = "member"
ACCESS_VIP = "vip"

PREDICTION_CATEGORIES: dict[str, dict] = {
    "secure_trial": {
        "ruleset": OFFICIAL_RULESET,
        "label": "Secure Trial",
        "quota": 4,
        "max_records": None,
        "confidence_band": (90, 95),
        "access": ACCESS_MEMBER,
    },
    "exclusive_vip_1": {
        "ruleset": OFFICIAL_RULESET,
        "label": "Exclusive VIP - Coupon 1",
        "quota": 4,
        "max_records": None,
        "confidence_band": (85, 92),
        "access": ACCESS_VIP,
    },
    "exclusive_vip_2": {
        "ruleset": OFFICIAL_RULESET,
        "label": "Exclusive VIP - Coupon 2",
        "quota": 4,
        "max_records": None,
        "confidence_band": (85, 92),
        "access": ACCESS_VIP,
    },
    "exclusive_vip_3": {
        "ruleset": OFFICIAL_RULESET,
        "label": "Exclusive VIP - Coupon 3",
        "quota": 4,
        "max_records": None,
        "confidence_band": (85, 92),
        "access": ACCESS_VIP,
    },
    "individual_vip": {
        "ruleset": OFFICIAL_RULESET,
        "label": "Individual VIP",
        "quota": 15,
        "max_records": None,
        "confidence_band": (80, 87),
        "access": ACCESS_VIP,
    },
    "free_coupon": {
        "ruleset": OFFICIAL_RULESET,
        "label": "Free Coupon",
        "quota": 4,
        "max_records": None,
        "confidence_band": (75, 82),
        "access": ACCESS_PUBLIC,
    },
    "free_individual": {
        "ruleset": OFFICIAL_RULESET,
        "label": "Free Individual",
        "quota": 15,
        "max_records": None,
        "confidence_band": (70, 80),
        "access": ACCESS_PUBLIC,
    },
    "fbw_special": {
        "ruleset": SPECIAL_RULESET,
        "label": "FBW Special",
        "quota": None,
        "max_records": 10,
        "confidence_band": (85, 99),
        "access": ACCESS_VIP,
    },
}

# Hard schema bands per ruleset (the per-tier bands above are prompt guidance).
RULESET_CONFIDENCE_BANDS: dict[str, tuple[int, int]] = {
    OFFICIAL_RULESET: (70, 95),
    SPECIAL_RULESET: (85, 99),
}


def categories_for(ruleset: str) -> list[str]:
    return [cid for cid, entry in PREDICTION_CATEGORIES.items() if entry["ruleset"] == ruleset]


SUBSCRIPTION_PLANS: dict[str, dict] = {
    "monthly": {"label": "1 Month", "price_usd": 5, "duration_days": 30},
    "quarterly": {"label": "3 Months", "price_usd": 10, "duration_days": 90},
    "semi": {"label": "6 Months", "price_usd": 30, "duration_days": 180},
    "yearly": {"label": "1 Year", "price_usd": 50, "duration_days": 365},
    "lifetime": {"label": "Lifetime", "price_usd": 100, "duration_days": None},
}

PAYMENT_METHODS = ("MonCash", "NatCash", "Crypto")
