"""Payments engine operations.

Every function here takes the ``AsyncSession`` as its first argument and
commits its own work through ``unit_of_work.atomic``.
"""
