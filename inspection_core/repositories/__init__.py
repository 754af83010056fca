"""
Repositories encapsulating tenant-scoped data access for inspections,
items, state history and voice annotations.
"""
