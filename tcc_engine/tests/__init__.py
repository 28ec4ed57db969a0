'''
TCC Engine Test Suite

Test Modules:
-------------
- test_interpolation.py: percentile inference and interpolation, off-scale flags
- test_normalization.py: field readers, PSQ, incentive and baseline TCC
- test_scenario_compute.py: thresholds, modeled CF, TCC, governance flags, risk
- test_outliers.py: IQR and MAD modified z-score flags
- test_batch.py: specialty matching, overrides, chunking and cancellation
- test_optimizer.py: exclusions, CF grid, governance status, explanations, sweeps
- test_productivity_target.py: group targets, percent-to-target and bands
- test_persistence.py: in-memory repository and saved scenario reload
- test_comparison_export.py: optimizer scenario comparison and report export
- test_api.py: FastAPI routes

Running Tests:
--------------
    pytest tcc_engine/tests
    pytest tcc_engine/tests -m "not slow"
'''
