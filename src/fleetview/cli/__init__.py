"""
Operational CLI for FleetView.
"""
