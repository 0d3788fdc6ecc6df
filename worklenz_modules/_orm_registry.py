"""
Module ORM Registry (``worklenz_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` holds all table definitions before tables are created.
``worklenz_kernel.db.engine.create_tables`` calls this lazily.

Architecture position
---------------------
**Modules layer** -- utility.  MUST NOT be imported at module level by
``worklenz_kernel``.
"""


def import_all_orm_models() -> None:
    """Import every ``worklenz_modules.*.orm`` module (idempotent)."""
    import worklenz_modules.project.orm  # noqa: F401
    import worklenz_modules.ratecard.orm  # noqa: F401
