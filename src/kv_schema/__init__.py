"""
kv_schema - Tables and Secondary Indexes over Ordered Key-Value Stores

A schema and indexing runtime that gives primary keys, composite keys,
secondary indexes and foreign-key references on top of any backend that
offers get, put, delete and ordered prefix scan.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
