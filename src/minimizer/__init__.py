"""
Minimizer - minify and precompress the HTML of a published git tree.
"""

__version__ = "0.1.0"
