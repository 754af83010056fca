"""
Domain services: parsing, queueing, workflow rules and orchestration.
"""
