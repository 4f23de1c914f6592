"""Trend detection -- windowed aggregation, scoring, ledger and warnings.

- aggregator: three grouping passes over a recent window
- scorer: virality, growth rate and risk classification
- ledger: trend/warning persistence with expiry and a ranked index
- cycle: the periodic aggregation run and its scheduler
"""
