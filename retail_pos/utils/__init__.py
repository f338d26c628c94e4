"""
Utility modules: promotion engine, discounts, reconciliation, authorization and reports
"""
