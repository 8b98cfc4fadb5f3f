"""
APM tools package.
"""
