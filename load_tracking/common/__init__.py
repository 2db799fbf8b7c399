"""
Common utilities: logging, constants, errors.
"""
