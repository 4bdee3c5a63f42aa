"""
System diagnostic: policy, climate pipeline and AI provider wiring.

Runs a reference assessment (rice farmer near Sylhet, Bangladesh) fully
offline unless --live is given. --ping also sends one short analysis
request through the configured providers.
"""

import argparse
import sys
from datetime import datetime, timezone

from climate_credit.core.config import settings
from climate_credit.core.errors import ClimateCreditError
from climate_credit.core.logging_config import configure_logging
from climate_credit.core.policy import load_risk_policy
from climate_credit.schemas.ai import GatewayFailure
from climate_credit.schemas.assessment import ClientInput, LoanInput, LocationInput, Officer
from climate_credit.services.ai_gateway import AIGateway
from climate_credit.services.circuit_breaker import CircuitState
from climate_credit.services.climate_fetcher import ClimateFetcher
from climate_credit.services.orchestrator import AssessmentOrchestrator
from climate_credit.services.repository import InMemoryAssessmentRepository

REFERENCE_OFFICER = Officer(mfi_id="diagnostics", officer_id="diag-1", name="Diagnostics")


def run_diagnostics(live: bool = False, ping: bool = False) -> bool:
    print("🔎 STARTING SYSTEM DIAGNOSTIC...\n")
    config = settings.model_copy(update={"CLIMATE_LIVE_ENABLED": live})
    report = {}

    # 1. POLICY
    try:
        policy = load_risk_policy(config.RISK_POLICY_PATH)
        print(f"✅ [1/4] Risk policy {policy.version} loaded ({len(policy.loan_purposes)} loan purposes)")
        report["Policy"] = "PASS"
    except ClimateCreditError as e:
        print(f"❌ [1/4] Risk policy invalid: {e.message}")
        report["Policy"] = "FAIL"
        return _print_report(report)

    # 2. PROVIDERS
    gateway = AIGateway(config=config)
    status = gateway.status()
    if status["configured"]:
        chain = " -> ".join(f"{p['name']} ({p['model']})" for p in status["providers"])
        print(f"✅ [2/4] AI providers configured: {chain}")
        report["Providers"] = "PASS"
    else:
        print("⚠️ [2/4] No AI provider configured (extraction and analysis disabled)")
        report["Providers"] = "NOT CONFIGURED"

    states = {name: c["state"] for name, c in status["circuits"].items()}
    if all(s == CircuitState.CLOSED.value for s in states.values()):
        print(f"✅      Circuit breakers closed: {states or 'none'}")
    else:
        print(f"❌      Circuit breakers in unexpected state: {states}")
        report["Providers"] = "FAIL"

    # 3. REFERENCE ASSESSMENT
    source = "live" if live else "offline"
    print(f"\n🌦️ [3/4] Reference assessment ({source} climate data)...")
    orchestrator = AssessmentOrchestrator(
        policy=policy,
        fetcher=ClimateFetcher(policy, config),
        repository=InMemoryAssessmentRepository(),
        gateway=gateway,
    )
    try:
        assessment = orchestrator.create_assessment(
            LocationInput(latitude=24.89, longitude=91.87, location_name="Sylhet, Bangladesh"),
            LoanInput(amount=1500, purpose="agriculture", crop_type="rice"),
            ClientInput(age=34, existing_loans=0, repayment_history=95),
            REFERENCE_OFFICER,
        )
        risk = assessment.results.climate_risk
        probability = assessment.results.default_probability
        print(f"✅ Score {risk.score}/100 -> {assessment.recommendation.label}")
        print(f"   - Climate source: {assessment.climate_data.source.value}")
        print(f"   - Seasonal multiplier: {risk.seasonal_multiplier} {risk.active_seasons or ''}")
        print(f"   - Default probability: {probability.unadjusted:.1%} -> {probability.adjusted:.1%}")
        print(f"   - Products: {', '.join(p.name for p in assessment.recommendation.products)}")
        report["Assessment"] = "PASS"
    except ClimateCreditError as e:
        print(f"❌ Assessment failed: {e.kind.value}: {e.message}")
        report["Assessment"] = "FAIL"
        return _print_report(report)

    # 4. PROVIDER ROUND TRIP (optional)
    if ping and gateway.is_configured:
        print("\n🧠 [4/4] Requesting a narrative analysis...")
        started = datetime.now(timezone.utc)
        result = orchestrator.analyze(assessment.id, None, REFERENCE_OFFICER)
        duration = (datetime.now(timezone.utc) - started).total_seconds()
        if isinstance(result, GatewayFailure):
            print(f"❌ Analysis failed ({result.reason.value}): {result.message}")
            for attempt in result.attempts:
                print(f"   - {attempt.provider}: {attempt.reason.value}")
            report["Analysis"] = "FAIL"
        else:
            print(f"✅ {result.provider} answered in {duration:.2f}s ({len(result.text)} chars)")
            report["Analysis"] = "PASS"
    else:
        print("\n⏭️ [4/4] Provider round trip skipped (use --ping with a configured provider)")

    return _print_report(report)


def _print_report(report: dict) -> bool:
    print("\n" + "=" * 30)
    print("DIAGNOSTIC REPORT")
    print("=" * 30)
    all_pass = True
    for k, v in report.items():
        print(f"{k:<15}: {v}")
        if "FAIL" in v:
            all_pass = False

    if all_pass:
        print("\n🚀 ALL SYSTEMS OPERATIONAL.")
    else:
        print("\n⚠️ SYSTEM ISSUES DETECTED.")
    return all_pass


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="ClimateCredit system diagnostic")
    parser.add_argument("--live", action="store_true", help="query the live climate source")
    parser.add_argument("--ping", action="store_true", help="send one analysis request to the AI providers")
    args = parser.parse_args(argv)

    configure_logging("WARNING")
    return 0 if run_diagnostics(live=args.live, ping=args.ping) else 1


if __name__ == "__main__":
    sys.exit(main())
