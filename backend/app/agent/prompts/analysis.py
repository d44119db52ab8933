ANALYSIS_SYSTEM_PROMPT = """
You are a senior real estate underwriting analyst with two decades of experience across United States housing markets.
You write concise, structured, data-driven reports that help investors decide what to offer on a property.
Always follow the phases and the final output format given in the request, in order, using Markdown headings.
""".strip()


ANALYSIS_TYPE_GUIDANCE = {
    "standard": "",
    "detailed": (
        "Go deeper than usual on comparable sales and repair scope: list every comp you relied on "
        "and explain each adjustment."
    ),
    "investment": (
        "Emphasise investor returns: rental cash flow, cap rate, exit options and the cash buyer market."
    ),
}


ANALYSIS_USER_PROMPT = """
Analyze the property below for an acquisitions team. Use verified, recent data only and ignore any seller asking price.

Property Address: {property_address}

Phase 1: Property & Value
- Confirm beds, baths, square footage, lot size, year built and property type, cross-checking public listing sources.
- ARV (After Repair Value): average price per square foot of 3-5 comparable sales from the last 6 months
  (extend to 12 months only when needed) times the subject square footage. Comps must be within 500 sq ft,
  5 years of build date and 0.25 acres of the subject, same property type and similar exterior. Exclude outliers.
- As-Is Value from distressed or investor-grade sales in the last 12 months, never above ARV.

Phase 2: Local Economy - job growth over 5 years, population trend, unemployment, infrastructure projects.

Phase 3: Rental Market - monthly rent as-is and after repairs, rent demand score (1-10), rent-to-price ratio,
cash flow, short-term rental potential and regulations.

Phase 4: Buying Percentage - start from the share of pending listings
(<15%: 66%, 15-24%: 68%, 25-34%: 70%, 35-44%: 73%, 45%+: 75%), lower it 5-10% for poor schools,
raise it 3-5% for strong buyer demand, and cap it at 75%.

Phase 5: Crime & Safety - crime rating (1-10), safety level, prevalent crime types, comparison with city, county and state.

Phase 6: Schools - elementary, middle and high school ratings (1-10) and nearby colleges.

Phase 7: Cash Buyers - investor strategy mix (flip, buy and hold, institutional), neighborhood demand,
cash sale price range over the last 12 months and the 6-month trend.

Phase 8: Investment Rating - 1-10 with a short justification.

Phase 9: Acquisition Notes
- Notes: {acquisition_notes}
- Pick the rehab level from the notes: Light = $20/sq ft, Medium = $30/sq ft, Heavy = $40/sq ft, and give the dollar estimate.
{rehab_default}
Phase 10: As-Is MLS Price - the list price that gets an accepted full-price offer within 21 days.

Phase 11: Offers
- Cash MAO = buying % x ARV - $30,000 - repairs.
- Novation MAO from the as-is MLS price less $30,000 and a $5,000 cleaning fee; it must be higher than the cash MAO.

Final Output Format:
property specs, ARV with comps (address, condition, price per sq ft), as-is value with distressed comps,
rehab level and repair estimate, buying % explanation, rental summary, crime summary, school summary,
cash buyer summary, investment rating, MLS as-is price, and the final Cash MAO and Novation MAO.
{type_guidance}
""".strip()


def build_analysis_prompt(
    property_address: str,
    acquisition_notes: str | None = None,
    analysis_type: str = "standard",
) -> str:
    notes = (acquisition_notes or "").strip()
    return ANALYSIS_USER_PROMPT.format(
        property_address=property_address.strip(),
        acquisition_notes=notes or "No acquisition notes provided",
        rehab_default="" if notes else "- No notes were given: use the Light rehab level.\n",
        type_guidance=ANALYSIS_TYPE_GUIDANCE.get(analysis_type, ""),
    ).strip()
