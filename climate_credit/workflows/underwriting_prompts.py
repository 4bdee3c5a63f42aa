# climate_credit/workflows/underwriting_prompts.py

from typing import Optional

from climate_credit.schemas.assessment import Assessment, SupplementalContext

EXTRACTION_SYSTEM_PROMPT = (
    "You are a helpful assistant that extracts structured data from conversations. "
    "Always respond with valid JSON only."
)

EXTRACTION_PROMPT = """
You are an AI assistant extracting loan application data from a conversation between a loan officer and a client. Extract the following fields as JSON.

For each field, indicate your confidence level (high/medium/low):
- high: The information was explicitly stated
- medium: The information was implied or you're reasonably certain
- low: You're guessing or the information wasn't mentioned

Return ONLY valid JSON in this exact format:
{
  "data": {
    "client_name": string | null,
    "client_age": number | null,
    "project_type": "agriculture" | "livestock" | "retail" | "manufacturing" | "services" | "housing" | "fishing" | "transport" | null,
    "crop_type": string | null,
    "loan_amount": number | null,
    "loan_purpose": string | null,
    "loan_term": number | null,
    "loan_type": "working-capital" | "equipment-purchase" | "land-acquisition" | "crop-inputs" | "livestock-purchase" | "construction" | null,
    "existing_loans": number | null,
    "repayment_history": number | null,
    "monthly_income": number | null,
    "collateral_type": "land-title" | "savings-deposit" | "equipment" | "livestock" | "group-guarantee" | "none" | null,
    "business_experience": number | null,
    "land_ownership": "owned" | "leased-long" | "leased-short" | "sharecropping" | null,
    "irrigation_access": "full" | "partial" | "rain-fed" | null,
    "insurance_status": "crop-and-health" | "crop-only" | "health-only" | "none" | null
  },
  "confidence": {
    "<same keys as data>": "high" | "medium" | "low"
  },
  "summary": "Brief summary of what was discussed"
}

If information is unclear or not mentioned, set the value to null and confidence to "low".
Currency amounts should be converted to numbers (e.g., "5000 dollars" -> 5000).
Loan term is in months. Business experience is in years.
Percentage values for repayment history should be 0-100 (e.g., "always paid on time" -> 95).

CONVERSATION TRANSCRIPT:
"""

LOAN_ANALYSIS_SYSTEM_PROMPT = """
You are an expert Climate-Smart Credit Analyst for a Microfinance Institution. Your goal is to convert climate risk data into a clear "Go/No-Go" decision for field officers.

# CORE OBJECTIVE
Analyze the loan application by cross-referencing the loan purpose and crop with the local climate hazards (flood, drought, heat stress).

# ANALYSIS LOGIC: "The Weather-Business Fit"
- Crop Sensitivity: Is the specific crop vulnerable to the hazards at this location?
- Seasonality: Does the loan term overlap a high-risk season?
- Mitigation: Can insurance, tranche disbursement or infrastructure lower the risk?

# OUTPUT FORMAT (Strictly Concise & Actionable)
### 1. DECISION
[One of: APPROVE, APPROVE WITH CONDITIONS, MODIFY, DEFER]

### 2. WEATHER & RISK CONTEXT
* Forecast Impact: [One sentence linking weather to business]
* Key Concern: [Specific risk]

### 3. REQUIRED CONDITIONS (Mitigation)
* [Condition 1]
* [Condition 2]
* [Condition 3]

### 4. ADJUSTED RISK OUTLOOK
* Baseline Default Prob: [X]%
* Adjusted Default Prob: [Y]% (If conditions are met)

# TONE
- Be direct: say "Flood risk is high", not "The data suggests".
- Explain how the weather hurts this specific business.
- If a loan is risky, find a way to make it work (e.g. a smaller amount) rather than just rejecting it.
- Use simple English a rural loan officer understands immediately.
"""


def build_extraction_prompt(transcript: str) -> str:
    return EXTRACTION_PROMPT + transcript.strip()


def _or(value, placeholder: str = "Not provided") -> str:
    return placeholder if value is None or value == "" else str(value)


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


def build_analysis_prompt(
    assessment: Assessment,
    context: Optional[SupplementalContext] = None,
) -> str:
    """Render one assessment (plus officer-supplied context) as the analysis request."""
    context = context or SupplementalContext()
    loan = assessment.loan_details
    client = assessment.client_info
    risk = assessment.results.climate_risk
    probability = assessment.results.default_probability
    snapshot = assessment.climate_data

    hazard_lines = "\n".join(
        f"- {factor.label}: {factor.value:.0%} probability (weight {factor.weight:.2f})"
        for factor in risk.factors
    )
    if risk.active_seasons:
        seasonal = f"In high-risk season ({', '.join(risk.active_seasons)}), multiplier {risk.seasonal_multiplier:.2f}"
    else:
        seasonal = "Standard seasonal conditions"
    products = ", ".join(p.name for p in assessment.recommendation.products) or "None"

    sections = [
        "# Loan Application Analysis Request",
        "",
        "## Applicant Profile",
        f"- **Name**: {_or(context.client_name)}",
        f"- **Age**: {_or(client.age)}",
        f"- **Monthly Income**: {_or(context.monthly_income)}",
        f"- **Business Experience**: {_or(context.business_experience)} years",
        f"- **Location**: {assessment.location.name}, {_or(assessment.location.country, 'Unknown country')}",
        "",
        "## Loan Request",
        f"- **Amount**: {loan.amount:,.2f}",
        f"- **Term**: {_or(context.loan_term, 'Not specified')} months",
        f"- **Purpose**: {loan.purpose}",
        f"- **Loan Type**: {_or(context.loan_type, 'Not specified')}",
        f"- **Crop Type**: {_or(loan.crop_type, 'N/A')}",
        "",
        "## Borrower History",
        f"- **Existing Loans**: {client.existing_loans}",
        f"- **Repayment History**: {_or(client.repayment_history)}%",
        f"- **Collateral Type**: {_or(context.collateral_type, 'None')}",
        f"- **Land Ownership**: {_or(context.land_ownership, 'Not specified')}",
        f"- **Irrigation Access**: {_or(context.irrigation_access, 'Not specified')}",
        f"- **Insurance Status**: {_or(context.insurance_status, 'None')}",
        "",
        f"## Climate Risk: {risk.score} / 100 ({snapshot.source.value} climate data)",
        hazard_lines,
        f"- Seasonal Impact: {seasonal}",
        f"- Weather: {snapshot.weather.description}",
        "",
        "## Default Probability Estimates",
        f"- **Baseline** (no climate adjustment): {_pct(probability.baseline)}",
        f"- **Unadjusted** (with full risk): {_pct(probability.unadjusted)}",
        f"- **Adjusted** (with recommended modifications): {_pct(probability.adjusted)}",
        "",
        "## Engine Recommendation",
        f"- **Suggested Action**: {assessment.recommendation.type.value}",
        f"- **Recommended Products**: {products}",
    ]
    if context.notes:
        sections += ["", "## Officer Notes", context.notes.strip()]
    sections += [
        "",
        "---",
        "",
        "Please provide a clear recommendation for this loan application, considering the climate "
        "factors above. Focus on practical modifications that help the borrower succeed while "
        "managing our risk. Assume this will be reviewed by a loan officer with 5-10 years of experience.",
    ]
    return "\n".join(sections)
