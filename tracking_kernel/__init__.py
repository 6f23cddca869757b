"""
Tracking Kernel

Fiscal period and tracking reconciliation core:
- Contract-specific fiscal calendars (months and quarters)
- Gap and overlap tolerant activity coverage
- Historical period grouping for reporting
- Persistence of customers, services, resources and trackings
"""

__version__ = "0.1.0"
