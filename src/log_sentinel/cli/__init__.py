"""
Operational command line tools.
"""
