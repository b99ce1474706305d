"""
Product catalog: the product data service interface, an in-memory store and
the bulk importer.
"""
