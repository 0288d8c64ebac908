"""HTTP surface -- FastAPI app serving history, coin list and health."""

from analyzer.web.app import STATUS_BY_KIND, create_app

__all__ = ["STATUS_BY_KIND", "create_app"]
