"""Rebate matching and calculation package."""
