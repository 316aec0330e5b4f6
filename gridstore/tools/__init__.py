"""
Command-line tools for gridstore.
"""
