"""
Warehouse Import - staging/merge bulk loader for relational warehouses.

Loads delimited files, manifests of files and intra-database table copies
into MySQL, Redshift and Snowflake tables through a staging table, with
primary-key deduplication, full-replace or incremental merge and per-phase
timing telemetry.
"""

__version__ = "0.1.0"
