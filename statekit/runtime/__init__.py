"""
Runtime adapters: targets for host objects and the Stateful mixin.
"""
