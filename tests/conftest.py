"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

os.environ.setdefault("STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE__WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("BILLING__BASIC_PLAN_PRICE_ID", "price_basic")
