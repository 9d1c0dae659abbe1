"""Billing domain: gateway value types and error taxonomy."""
