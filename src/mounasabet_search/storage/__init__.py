from .analytics_db import SearchAnalyticsDB
from .catalog_db import CatalogDB

__all__ = ["CatalogDB", "SearchAnalyticsDB"]
