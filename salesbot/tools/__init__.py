"""
Tool Layer.

Typed tool definitions the model can call (product lookup, product search,
sale email), the registry that validates and dispatches them, and the schema
AST their parameters are described with.
"""
