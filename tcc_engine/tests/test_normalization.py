"""
Compensation Normalization Test Module

Tests for tcc_engine/services/normalization.py.

Test Coverage:
- safe_div fallbacks
- Base salary, clinical base, clinical FTE and total wRVU readers with
  their documented fallbacks
- PSQ dollars per basis, including the circular total-pay resolution
- Derived-threshold work RVU incentive
- Per 1.0 cFTE normalization
- Additional (layered) TCC and per-FTE file amounts
- Baseline TCC component breakdown
"""

import math

import pytest

from tcc_engine.models.enums import PSQBasis, QualityPaymentsSource
from tcc_engine.models.schemas import (
    AdditionalTCCConfig,
    BaselineTCCConfig,
    PSQConfig,
    ProviderRow,
    TCCComponentOptions,
)
from tcc_engine.services.normalization import (
    get_additional_tcc,
    get_base_salary,
    get_baseline_tcc,
    get_baseline_tcc_breakdown,
    get_clinical_base,
    get_clinical_fte,
    get_incentive_derived,
    get_psq_dollars,
    get_quality_dollars,
    get_total_wrvus,
    normalize_to_1p0_cfte,
    resolve_from_file_amount,
    resolve_psq_on_total_pay,
    safe_div,
)


# =============================================================================
# Arithmetic Guards
# =============================================================================

class TestSafeDiv:
    """Tests for guarded division."""

    def test_regular_division(self):
        assert safe_div(10, 4, 0.0) == 2.5

    @pytest.mark.parametrize("denominator", [0, None, math.nan])
    def test_fallback_on_bad_denominator(self, denominator):
        assert safe_div(1.0, denominator, 7.0) == 7.0

    def test_fallback_on_nan_numerator(self):
        assert safe_div(math.nan, 2.0, 3.0) == 3.0


# =============================================================================
# Provider Field Readers
# =============================================================================

class TestFieldReaders:
    """Tests for reading pay and productivity off a provider row."""

    def test_base_pay_components_replace_base_salary(self, make_provider):
        provider = make_provider(basePayComponents=[
            {"id": "clinical", "label": "Clinical", "amount": 200000},
            {"id": "admin", "label": "Admin", "amount": "50,000"},
        ])
        assert get_base_salary(provider) == 250000

    def test_components_without_amounts_fall_back_to_base_salary(self, make_provider):
        provider = make_provider(basePayComponents=[{"id": "clinical", "amount": None}])
        assert get_base_salary(provider) == 300000

    def test_clinical_base_prorated_by_fte(self, make_provider):
        provider = make_provider(clinicalFTE=0.8, totalFTE=1.0)
        assert get_clinical_base(provider) == pytest.approx(240000)

    def test_explicit_clinical_salary_wins(self, make_provider):
        provider = make_provider(clinicalFTE=0.8, clinicalFTESalary=123456)
        assert get_clinical_base(provider) == 123456

    def test_zero_total_fte_treats_base_as_clinical(self, make_provider):
        provider = make_provider(totalFTE=0, clinicalFTE=0.6)
        assert get_clinical_base(provider) == 300000

    def test_clinical_fte_falls_back_to_total_fte(self, make_provider):
        assert get_clinical_fte(make_provider(clinicalFTE=None, totalFTE=0.9)) == 0.9
        assert get_clinical_fte(make_provider(clinicalFTE=None, totalFTE=None)) == 0.0

    def test_total_wrvus_sums_parts_when_total_missing(self, make_provider):
        provider = make_provider(workRVUs=4000, pchWRVUs=500, outsideWRVUs=250)
        assert get_total_wrvus(provider) == 4750

    def test_total_wrvus_prefers_total(self, make_provider):
        provider = make_provider(workRVUs=4000, totalWRVUs=6000)
        assert get_total_wrvus(provider) == 6000

    def test_spreadsheet_cells_are_coerced(self, make_provider):
        """Currency strings parse; blank and junk cells become None."""
        provider = make_provider(baseSalary="$310,000", currentCF="", workRVUs="n/a")
        assert provider.baseSalary == 310000
        assert provider.currentCF is None
        assert provider.workRVUs is None

    @pytest.mark.parametrize("cell", ["NaN", "inf", "-Infinity", float("nan"), float("inf")])
    def test_non_finite_cells_become_none(self, make_provider, cell):
        provider = make_provider(currentCF=cell, baseSalary=cell)
        assert provider.currentCF is None
        assert provider.baseSalary is None

    def test_non_finite_cell_via_from_record(self):
        provider = ProviderRow.from_record({"providerId": "P-9", "currentCF": "NaN", "workRVUs": 5000})
        assert provider.currentCF is None
        assert provider.workRVUs == 5000

    def test_provider_id_defaults_to_name(self, make_provider):
        provider = make_provider(providerId=None, providerName="Dr. Who")
        assert provider.providerId == "Dr. Who"

    def test_loa_text_flag(self, make_provider):
        assert make_provider(loa="Yes").loa is True
        assert make_provider(loa="no").loa is False


# =============================================================================
# PSQ
# =============================================================================

class TestPsqDollars:
    """Tests for PSQ dollars per basis."""

    def test_excluded_is_zero(self):
        assert get_psq_dollars(300000, PSQConfig(include=False, psqPercent=10)) == 0.0

    def test_percent_of_base(self):
        assert get_psq_dollars(300000, PSQConfig(include=True, psqPercent=10)) == pytest.approx(30000)

    def test_total_guaranteed_basis(self):
        config = PSQConfig(include=True, psqPercent=10, psqBasis=PSQBasis.TOTAL_GUARANTEED)
        assert get_psq_dollars(240000, config, total_guaranteed=400000) == pytest.approx(40000)

    def test_total_pay_is_never_computed_here(self):
        config = PSQConfig(include=True, psqPercent=10, psqBasis=PSQBasis.TOTAL_PAY)
        assert get_psq_dollars(300000, config) == 0.0

    def test_fixed_dollars(self):
        config = PSQConfig(include=True, psqBasis=PSQBasis.FIXED, psqFixedDollars=5000)
        assert get_psq_dollars(300000, config) == 5000

    def test_fixed_basis_without_dollars_is_zero(self):
        config = PSQConfig(include=True, psqPercent=10, psqBasis=PSQBasis.FIXED)
        assert get_psq_dollars(300000, config) == 0.0

    def test_total_pay_resolution(self):
        """psq = other * p / (1 - p): 90,000 at 10% gives 10,000."""
        assert resolve_psq_on_total_pay(90000, 10) == pytest.approx(10000)
        assert resolve_psq_on_total_pay(90000, 100) == 0.0


# =============================================================================
# Incentive and Normalization
# =============================================================================

class TestIncentive:
    """Tests for the derived-threshold work RVU incentive."""

    def test_incentive_above_threshold(self):
        """Threshold 300,000 / 50 = 6,000; 1,000 wRVUs above pay $50,000."""
        assert get_incentive_derived(300000, 7000, 50) == pytest.approx(50000)

    def test_below_threshold_is_zero(self):
        assert get_incentive_derived(300000, 5000, 50) == 0.0

    def test_non_positive_cf_is_zero(self):
        assert get_incentive_derived(300000, 7000, 0) == 0.0
        assert get_incentive_derived(300000, 7000, -5) == 0.0


class TestNormalizeTo1p0:
    """Tests for per 1.0 cFTE normalization."""

    def test_scales_by_clinical_fte(self):
        result = normalize_to_1p0_cfte(240000, 4000, 0.8)
        assert result.tcc_1p0 == pytest.approx(300000)
        assert result.wRVU_1p0 == pytest.approx(5000)
        assert result.cFTE == 0.8

    def test_zero_cfte_normalizes_to_zero(self):
        result = normalize_to_1p0_cfte(240000, 4000, 0)
        assert (result.tcc_1p0, result.wRVU_1p0, result.cFTE) == (0.0, 0.0, 0.0)


# =============================================================================
# Layered Components
# =============================================================================

class TestAdditionalComponents:
    """Tests for additional TCC and file amounts stored per 1.0 FTE."""

    def test_additional_tcc_layers(self):
        config = AdditionalTCCConfig(percentOfBase=10, dollarPer1p0FTE=1000, flatDollar=500)
        assert get_additional_tcc(config, 200000, 0.8) == pytest.approx(21300)

    def test_no_additional_config(self):
        assert get_additional_tcc(None, 200000, 1.0) == 0.0
        assert get_additional_tcc(AdditionalTCCConfig(), 200000, 1.0) == 0.0

    def test_file_amount_scaled_when_normalized_for_fte(self):
        options = {"quality": TCCComponentOptions(normalizeForFTE=True)}
        assert resolve_from_file_amount(1000, "quality", 0.5, options) == 500
        assert resolve_from_file_amount(1000, "quality", 0.5, {}) == 1000

    def test_quality_override_percent_of_base(self, make_provider):
        config = BaselineTCCConfig(
            includeQualityPayments=True,
            qualityPaymentsSource=QualityPaymentsSource.OVERRIDE_PCT_OF_BASE,
            qualityPaymentsOverridePct=5,
        )
        assert get_quality_dollars(make_provider(qualityPayments=99999), config) == pytest.approx(15000)


# =============================================================================
# Baseline TCC
# =============================================================================

class TestBaselineTCC:
    """Tests for the baseline TCC build-up."""

    def test_full_breakdown(self, make_provider):
        provider = make_provider(workRVUs=7000, qualityPayments=10000, otherIncentives=5000)
        config = BaselineTCCConfig(
            psqConfig=PSQConfig(include=True, psqPercent=5),
            includeQualityPayments=True,
            includeWorkRVUIncentive=True,
            includeOtherIncentives=True,
            currentCF=50,
            additionalTCC=AdditionalTCCConfig(flatDollar=1000),
        )
        breakdown = get_baseline_tcc_breakdown(provider, config)
        assert breakdown.clinicalBase == pytest.approx(300000)
        assert breakdown.psq == pytest.approx(15000)
        assert breakdown.quality == pytest.approx(10000)
        assert breakdown.workRVUIncentive == pytest.approx(50000)
        assert breakdown.otherIncentives == pytest.approx(5000)
        assert breakdown.additionalTCC == pytest.approx(1000)
        assert breakdown.total == pytest.approx(381000)

    def test_optional_components_off_by_default(self, make_provider):
        provider = make_provider(workRVUs=7000, qualityPayments=10000, otherIncentives=5000)
        assert get_baseline_tcc(provider, BaselineTCCConfig(currentCF=50)) == pytest.approx(300000)
