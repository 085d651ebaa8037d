"""
Configuration module.

Frozen parameter defaults, YAML instrument overrides and validation.
"""
