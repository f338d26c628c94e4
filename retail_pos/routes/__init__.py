"""
Flask blueprints exposing the POS JSON API
"""
