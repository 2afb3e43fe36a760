"""
Core package: errors, helpers, the definition compiler, machines and transitions.
"""
