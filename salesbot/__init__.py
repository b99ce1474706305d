"""
SalesBot - LLM sales assistant that answers shop customers by calling
product lookup, product search and sale notification tools.
"""

__version__ = "0.1.0"
