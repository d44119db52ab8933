"""
Canned analysis served when the LLM cannot answer in time or is not configured.

The report is deterministic: the market profile is picked by substring match on
the address and the rehab level by keyword match on the acquisition notes.
"""

from datetime import date

from pydantic import BaseModel

SUBJECT_SQFT = 1850
CLOSING_COSTS = 30_000
NOVATION_PERCENT = 75
AS_IS_RATIO = 0.87

REHAB_RATES = {"Light": 20, "Medium": 30, "Heavy": 40}

DEMO_NOTICE = "*This is a DEMO analysis. Connect a live LLM API key for a full market analysis.*"


class MarketProfile(BaseModel):
    name: str
    keywords: tuple[str, ...] = ()
    arv: int
    rent_per_sqft: float
    crime_rating: int
    safety_level: str
    school_ratings: tuple[int, int, int]
    college: str
    pending_percent: int
    buying_percent: int
    investment_rating: float
    job_growth: str
    population_trend: str
    infrastructure: str


DEFAULT_MARKET = MarketProfile(
    name="Austin, TX",
    arv=485_000,
    rent_per_sqft=1.30,
    crime_rating=7,
    safety_level="Medium-High",
    school_ratings=(9, 8, 9),
    college="University of Texas, 8 miles",
    pending_percent=28,
    buying_percent=73,
    investment_rating=8.5,
    job_growth="+3.2% over the last 5 years",
    population_trend="Growing 1.8% annually",
    infrastructure="New tech corridor development planned",
)

MARKET_PROFILES = (
    MarketProfile(
        name="San Francisco, CA",
        keywords=("san francisco", "california"),
        arv=1_250_000,
        rent_per_sqft=3.50,
        crime_rating=6,
        safety_level="Medium",
        school_ratings=(8, 7, 8),
        college="San Francisco State University, 5 miles",
        pending_percent=22,
        buying_percent=68,
        investment_rating=7.0,
        job_growth="+2.1% over the last 5 years",
        population_trend="Flat, under 0.5% annually",
        infrastructure="Transit and housing density upgrades underway",
    ),
    MarketProfile(
        name="Miami, FL",
        keywords=("miami", "florida"),
        arv=675_000,
        rent_per_sqft=2.20,
        crime_rating=6,
        safety_level="Medium",
        school_ratings=(7, 6, 7),
        college="Florida International University, 10 miles",
        pending_percent=31,
        buying_percent=70,
        investment_rating=7.5,
        job_growth="+2.9% over the last 5 years",
        population_trend="Growing 1.4% annually",
        infrastructure="Port and rail investments in progress",
    ),
    MarketProfile(
        name="New York, NY",
        keywords=("new york",),
        arv=895_000,
        rent_per_sqft=4.20,
        crime_rating=6,
        safety_level="Medium",
        school_ratings=(7, 7, 8),
        college="City University of New York, 3 miles",
        pending_percent=18,
        buying_percent=68,
        investment_rating=7.0,
        job_growth="+1.6% over the last 5 years",
        population_trend="Stable",
        infrastructure="Subway modernization program",
    ),
    MarketProfile(
        name="Dallas, TX",
        keywords=("dallas", "texas"),
        arv=425_000,
        rent_per_sqft=1.30,
        crime_rating=8,
        safety_level="High",
        school_ratings=(7, 7, 7),
        college="University of North Texas at Dallas, 9 miles",
        pending_percent=33,
        buying_percent=70,
        investment_rating=8.0,
        job_growth="+2.5% over the last 5 years",
        population_trend="Growing 1.2% annually",
        infrastructure="Highway improvements underway",
    ),
    MarketProfile(
        name="Denver, CO",
        keywords=("denver", "colorado"),
        arv=520_000,
        rent_per_sqft=1.38,
        crime_rating=8,
        safety_level="High",
        school_ratings=(8, 8, 7),
        college="University of Colorado Denver, 12 miles",
        pending_percent=32,
        buying_percent=72,
        investment_rating=8.0,
        job_growth="+2.8% over the last 5 years",
        population_trend="Growing 1.5% annually",
        infrastructure="Light rail expansion project",
    ),
)


def match_market(property_address: str) -> MarketProfile:
    address = (property_address or "").lower()
    for profile in MARKET_PROFILES:
        if any(keyword in address for keyword in profile.keywords):
            return profile
    return DEFAULT_MARKET


def rehab_level(acquisition_notes: str | None) -> str:
    notes = (acquisition_notes or "").lower()
    if "heavy" in notes:
        return "Heavy"
    if "medium" in notes:
        return "Medium"
    return "Light"


def _money(value: float) -> str:
    return f"${round(value):,}"


def build_fallback_analysis(
    property_address: str,
    acquisition_notes: str | None = None,
    *,
    today: date | None = None,
) -> str:
    market = match_market(property_address)
    level = rehab_level(acquisition_notes)
    rate = REHAB_RATES[level]
    repairs = rate * SUBJECT_SQFT

    as_is_value = round(market.arv * AS_IS_RATIO)
    post_repair_rent = round(SUBJECT_SQFT * market.rent_per_sqft)
    as_is_rent = round(post_repair_rent * 0.88)
    cash_flow = round(post_repair_rent * 0.2)
    list_price = round(as_is_value * 1.05)
    cash_mao = round(market.arv * market.buying_percent / 100) - CLOSING_COSTS - repairs
    novation_mao = round(market.arv * NOVATION_PERCENT / 100) - CLOSING_COSTS - repairs

    rating = market.investment_rating - (1.0 if level == "Heavy" else 0.0)
    elementary, middle, high = market.school_ratings
    report_date = (today or date.today()).strftime("%B %d, %Y")
    notes_line = f"**Acquisition Notes:** {acquisition_notes}\n" if acquisition_notes else ""

    sections = [
        f"# US Real Estate Analysis - {market.name}",
        f"**Property Address:** {property_address}\n{notes_line}**Analysis Date:** {report_date}",
        "---",
        "## Phase 1: Core Property & Market Value Analysis\n"
        f"- **Property Specs:** 3 bed, 2 bath, {SUBJECT_SQFT:,} sq ft, single family\n"
        f"- **ARV (After Repair Value):** {_money(market.arv)}\n"
        f"- **As-Is Value:** {_money(as_is_value)}",
        "## Phase 2: Local Economy\n"
        f"- **Job Growth:** {market.job_growth}\n"
        f"- **Population Trends:** {market.population_trend}\n"
        f"- **Infrastructure:** {market.infrastructure}",
        "## Phase 3: Rental Market\n"
        f"- **Estimated Monthly Rent (As-is):** {_money(as_is_rent)}\n"
        f"- **Estimated Monthly Rent (Post-repair):** {_money(post_repair_rent)}\n"
        f"- **Cash Flow:** +{_money(cash_flow)}/month (post-repair)",
        "## Phase 4: Market Trends & Buying Percentage\n"
        f"- **Pending Listings:** {market.pending_percent}%\n"
        f"- **Final Buying Percentage:** {market.buying_percent}%",
        "## Phase 5: Crime & Safety\n"
        f"- **Crime Rating:** {market.crime_rating}/10\n"
        f"- **Safety Level:** {market.safety_level}",
        "## Phase 6: School Ratings\n"
        f"- **Elementary:** {elementary}/10\n"
        f"- **Middle School:** {middle}/10\n"
        f"- **High School:** {high}/10\n"
        f"- **College Proximity:** {market.college}",
        "## Phase 7: Cash Buyer Activity\n"
        f"- **Cash Sales Range:** {_money(as_is_value * 0.9)} - {_money(as_is_value * 1.07)}",
        f"## Phase 8: Investment Rating\n**Rating: {rating:.1f}/10**",
        "## Phase 9: Acquisition Agent's Notes\n"
        f"{acquisition_notes or 'No specific notes provided - using light rehab assumption'}\n\n"
        f"**Rehab Level:** {level}\n"
        f"**Repair Estimate:** {_money(repairs)} (${rate}/sq ft)",
        "## Phase 10: As-Is MLS Sale Price\n"
        f"**Recommended List Price:** {_money(list_price)} (for 21-day acceptance)",
        "## Phase 11: Offer Calculations\n"
        f"**Cash MAO:** {_money(cash_mao)}\n"
        f"- Formula: ({market.buying_percent}% x {_money(market.arv)}) - {_money(CLOSING_COSTS)} - {_money(repairs)}\n"
        f"**Novation MAO:** {_money(novation_mao)}\n"
        f"- Formula: ({NOVATION_PERCENT}% x {_money(market.arv)}) - {_money(CLOSING_COSTS)} - {_money(repairs)}",
        "---",
        DEMO_NOTICE,
    ]
    return "\n\n".join(sections)
