"""
CapEx Tracker
Blueprint registry.
"""
