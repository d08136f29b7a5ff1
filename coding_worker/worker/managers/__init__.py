"""Local session bookkeeping for the coding worker.

Managers own the on-disk layout of an ephemeral session workspace and raise
domain exceptions, never HTTP exceptions -- that translation is the router's
responsibility.
"""
