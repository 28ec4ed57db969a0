"""
Scenario Compute Test Module

Tests for tcc_engine/services/scenario_compute.py.

Test Coverage:
- Modeled CF from the market curve with haircut, or the override
- Threshold methods: derived, annual (with provider fallback), wRVU percentile
- Current TCC from file versus composed from components
- Modeled TCC with PSQ on each basis, modeled base pay and modeled wRVUs
- Percentiles per 1.0 cFTE and alignment gaps
- Governance flags and risk assessment

Worked example used throughout: the market-median provider (300,000 base,
5,000 wRVUs, $45 CF, 1.0 FTE) against the Internal Medicine market. The
default inputs model CF at interp(40th) * 0.95 = 43 * 0.95 = $40.85.
"""

import pytest

from tcc_engine.models.enums import CFSource, PSQBasis, ThresholdMethod
from tcc_engine.models.schemas import ScenarioInputs
from tcc_engine.services.scenario_compute import (
    compute_annual_threshold,
    compute_modeled_cf,
    compute_scenario,
)


OVERRIDE_INPUTS = dict(cfSource=CFSource.OVERRIDE)


# =============================================================================
# Modeled CF and Thresholds
# =============================================================================

class TestModeledCF:
    """Tests for the modeled conversion factor."""

    def test_interpolated_with_haircut(self, im_market):
        assert compute_modeled_cf(im_market, ScenarioInputs()) == pytest.approx(40.85)

    def test_override(self, im_market):
        inputs = ScenarioInputs(cfSource=CFSource.OVERRIDE, overrideCF=61.5)
        assert compute_modeled_cf(im_market, inputs) == 61.5

    def test_override_source_without_value_uses_curve(self, im_market):
        inputs = ScenarioInputs(cfSource=CFSource.OVERRIDE, proposedCFPercentile=50, cfAdjustmentFactor=1.0)
        assert compute_modeled_cf(im_market, inputs) == pytest.approx(45.0)


class TestAnnualThreshold:
    """Tests for the three threshold methods."""

    def test_derived(self, im_market, median_provider):
        threshold = compute_annual_threshold(
            median_provider, im_market, ScenarioInputs(), 300000, 1.0, 50.0
        )
        assert threshold == pytest.approx(6000)

    def test_annual_value(self, im_market, median_provider):
        inputs = ScenarioInputs(thresholdMethod=ThresholdMethod.ANNUAL, annualThreshold=4000)
        assert compute_annual_threshold(median_provider, im_market, inputs, 300000, 1.0, 50.0) == 4000

    def test_annual_falls_back_to_provider_threshold(self, im_market, make_provider):
        provider = make_provider(currentThreshold=4500)
        inputs = ScenarioInputs(thresholdMethod=ThresholdMethod.ANNUAL)
        assert compute_annual_threshold(provider, im_market, inputs, 300000, 1.0, 50.0) == 4500

    def test_wrvu_percentile_scaled_by_cfte(self, im_market, median_provider):
        inputs = ScenarioInputs(thresholdMethod=ThresholdMethod.WRVU_PERCENTILE, wrvuPercentile=75)
        assert compute_annual_threshold(median_provider, im_market, inputs, 150000, 0.5, 50.0) == pytest.approx(3000)


# =============================================================================
# compute_scenario
# =============================================================================

class TestComputeScenario:
    """End-to-end scenario results."""

    def test_market_median_provider(self, im_market, median_provider, settings):
        result = compute_scenario(median_provider, im_market, ScenarioInputs(), settings=settings)

        assert result.modeledCF == pytest.approx(40.85)
        assert result.annualThreshold == pytest.approx(300000 / 40.85)
        assert result.wRVUsAboveThreshold == 0.0
        assert result.annualIncentive == 0.0
        assert result.currentIncentive == 0.0
        assert result.currentTCC == pytest.approx(300000)
        assert result.modeledTCC == pytest.approx(300000)
        assert result.changeInTCC == pytest.approx(0.0)

        assert result.wrvuPercentile == pytest.approx(50.0)
        assert result.tccPercentile == pytest.approx(50.0)
        assert result.modeledTCCPercentile == pytest.approx(50.0)
        assert result.cfPercentileCurrent == pytest.approx(50.0)
        assert result.cfPercentileModeled == pytest.approx(29.25)
        assert result.alignmentGapBaseline == pytest.approx(0.0)
        assert result.alignmentGapModeled == pytest.approx(0.0)

        assert result.governanceFlags.modeledInPolicyBand is True
        assert result.governanceFlags.fmvCheckSuggested is False
        assert result.governanceFlags.underpayRisk is False
        assert result.risk.highRisk == []
        assert result.warnings == []

    def test_override_cf_pays_incentive(self, im_market, make_provider, settings):
        """$60 CF: threshold 5,000; 1,000 wRVUs above pay $60,000."""
        provider = make_provider(workRVUs=6000)
        inputs = ScenarioInputs(cfSource=CFSource.OVERRIDE, overrideCF=60)
        result = compute_scenario(provider, im_market, inputs, settings=settings)

        assert result.annualThreshold == pytest.approx(5000)
        assert result.annualIncentive == pytest.approx(60000)
        assert result.currentTCC == pytest.approx(300000)
        assert result.modeledTCC == pytest.approx(360000)
        assert result.changeInTCC == pytest.approx(60000)
        assert result.wrvuPercentile == pytest.approx(75.0)
        assert result.modeledTCCPercentile == pytest.approx(75.0)
        assert result.alignmentGapBaseline == pytest.approx(-25.0)
        assert result.alignmentGapModeled == pytest.approx(0.0)
        assert result.cfPercentileModeled == 100.0

    def test_incentive_never_negative(self, im_market, make_provider, settings):
        provider = make_provider(workRVUs=2000)
        inputs = ScenarioInputs(cfSource=CFSource.OVERRIDE, overrideCF=50)
        result = compute_scenario(provider, im_market, inputs, settings=settings)
        assert result.wRVUsAboveThreshold == 0.0
        assert result.annualIncentive == 0.0

    def test_current_tcc_from_file(self, im_market, make_provider, settings):
        provider = make_provider(currentTCC=350000)
        result = compute_scenario(provider, im_market, ScenarioInputs(), settings=settings)
        assert result.currentTCC == 350000
        assert result.tccPercentile == pytest.approx(50 + 50000 / 60000 * 25)

    def test_modeled_wrvus_override(self, im_market, median_provider, settings):
        inputs = ScenarioInputs(cfSource=CFSource.OVERRIDE, overrideCF=50, modeledWRVUs=7000)
        result = compute_scenario(median_provider, im_market, inputs, settings=settings)
        assert result.annualIncentive == pytest.approx(50000)
        assert result.modeledTCC == pytest.approx(350000)
        assert result.imputedTCCPerWRVURatioModeled == pytest.approx(50.0)
        assert result.imputedTCCPerWRVURatioCurrent == pytest.approx(60.0)

    def test_modeled_base_pay(self, im_market, median_provider, settings):
        inputs = ScenarioInputs(modeledBasePay=400000)
        result = compute_scenario(median_provider, im_market, inputs, settings=settings)
        assert result.modeledTCC == pytest.approx(400000)
        assert result.currentTCC == pytest.approx(300000)

    def test_annual_threshold_method(self, im_market, median_provider, settings):
        inputs = ScenarioInputs(
            cfSource=CFSource.OVERRIDE,
            overrideCF=50,
            thresholdMethod=ThresholdMethod.ANNUAL,
            annualThreshold=4000,
        )
        result = compute_scenario(median_provider, im_market, inputs, settings=settings)
        assert result.wRVUsAboveThreshold == pytest.approx(1000)
        assert result.annualIncentive == pytest.approx(50000)


class TestScenarioPsq:
    """PSQ in current and modeled TCC."""

    def test_percent_of_base(self, im_market, median_provider, settings):
        inputs = ScenarioInputs(psqPercent=5, currentPsqPercent=5)
        result = compute_scenario(median_provider, im_market, inputs, settings=settings)
        assert result.psqDollars == pytest.approx(15000)
        assert result.currentPsqDollars == pytest.approx(15000)
        assert result.modeledTCC == pytest.approx(315000)
        assert result.currentTCC == pytest.approx(315000)

    def test_total_pay_basis_is_resolved(self, im_market, median_provider, settings):
        """10% of total pay on 300,000 other pay: 300,000 * 0.1 / 0.9."""
        inputs = ScenarioInputs(psqPercent=10, psqBasis=PSQBasis.TOTAL_PAY)
        result = compute_scenario(median_provider, im_market, inputs, settings=settings)
        assert result.psqDollars == pytest.approx(300000 * 0.1 / 0.9)

    def test_total_guaranteed_uses_full_base(self, im_market, make_provider, settings):
        """Clinical base is 240,000 at 0.8 cFTE, the guaranteed basis is 300,000."""
        provider = make_provider(clinicalFTE=0.8)
        base_inputs = ScenarioInputs(psqPercent=10)
        guaranteed_inputs = ScenarioInputs(psqPercent=10, psqBasis=PSQBasis.TOTAL_GUARANTEED)
        assert compute_scenario(provider, im_market, base_inputs, settings=settings).psqDollars == pytest.approx(24000)
        assert compute_scenario(provider, im_market, guaranteed_inputs, settings=settings).psqDollars == pytest.approx(30000)

    def test_fixed_dollars(self, im_market, median_provider, settings):
        inputs = ScenarioInputs(psqBasis=PSQBasis.FIXED, psqFixedDollars=7500)
        result = compute_scenario(median_provider, im_market, inputs, settings=settings)
        assert result.psqDollars == 7500
        assert result.modeledTCC == pytest.approx(307500)


class TestGovernanceAndRisk:
    """Governance flags, risk items and warnings."""

    def test_low_fte_is_high_risk(self, im_market, make_provider, settings):
        provider = make_provider(clinicalFTE=0.5, totalFTE=0.5)
        result = compute_scenario(provider, im_market, ScenarioInputs(), settings=settings)
        assert "Clinical FTE (0.5) < 0.7" in result.risk.highRisk
        assert "Total FTE (0.5) < 0.7" in result.risk.highRisk

    def test_low_wrvu_volume_warning(self, im_market, make_provider, settings):
        provider = make_provider(workRVUs=800)
        result = compute_scenario(provider, im_market, ScenarioInputs(), settings=settings)
        assert "Total wRVUs (800) low; ratios may be unstable" in result.warnings
        assert "wRVU percentile is off-scale (below 25 or above 90)" in result.warnings
        assert result.wrvuPercentile == 0.0
        assert result.wrvuPercentileBelowRange is True

    def test_underpay_risk_when_cf_below_25th(self, im_market, make_provider, settings):
        provider = make_provider(currentCF=35)
        result = compute_scenario(provider, im_market, ScenarioInputs(), settings=settings)
        assert result.governanceFlags.underpayRisk is True
        assert result.governanceFlags.cfBelow25 is True
        assert result.cfPercentileCurrentBelowRange is True

    def test_missing_current_cf_is_not_underpay(self, im_market, make_provider, settings):
        provider = make_provider(currentCF=None)
        result = compute_scenario(provider, im_market, ScenarioInputs(), settings=settings)
        assert result.currentCF == 0.0
        assert result.cfPercentileCurrent == 0.0
        assert result.governanceFlags.underpayRisk is False

    def test_fmv_check_above_90th(self, im_market, make_provider, settings):
        """$100 CF on 7,000 wRVUs models 700,000, far above the 90th."""
        provider = make_provider(workRVUs=7000)
        inputs = ScenarioInputs(cfSource=CFSource.OVERRIDE, overrideCF=100)
        result = compute_scenario(provider, im_market, inputs, settings=settings)
        assert result.modeledTCC == pytest.approx(700000)
        assert result.modeledTCCPercentile == 100.0
        assert result.governanceFlags.fmvCheckSuggested is True
        assert result.governanceFlags.modeledInPolicyBand is False

    def test_inputs_are_immutable(self):
        inputs = ScenarioInputs()
        with pytest.raises(Exception):
            inputs.psqPercent = 5
