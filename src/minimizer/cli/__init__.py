"""
Command line interface for the minimizer.
"""
