"""
Catalog exceptions, raised when stored rows cannot be priced.
"""


class CatalogError(ValueError):
    """A service or package row has a shape the pricing engine cannot use."""
    pass
