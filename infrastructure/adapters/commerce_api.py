# infrastructure/adapters/commerce_api.py
from datetime import datetime
from typing import Dict, Any, Optional, List

import httpx

from domain.exceptions import ExternalCallFailure
from shared.logging import logger

ORDERS_SINCE_QUERY = """
query OrdersSince($query: String!) {
  orders(first: 100, query: $query) {
    edges { node { totalPriceSet { shopMoney { amount } } } }
  }
}
"""

PRODUCTS_QUERY = """
query Products($first: Int!) {
  products(first: $first) {
    edges { node { id title handle status totalInventory } }
  }
}
"""

UPDATE_SEO_MUTATION = """
mutation UpdateSeo($input: ProductInput!) {
  productUpdate(input: $input) {
    product { id seo { title description } }
    userErrors { field message }
  }
}
"""

class CommerceClient:
    """Thin GraphQL client for the commerce admin API"""

    def __init__(self, store: Optional[str], access_token: Optional[str],
                 api_version: str = "2024-10",
                 http_client: Optional[httpx.AsyncClient] = None):
        self.store = store
        self.access_token = access_token
        self.api_version = api_version
        self.http_client = http_client or httpx.AsyncClient(timeout=30.0)

    @property
    def endpoint(self) -> str:
        return f"https://{self.store}/admin/api/{self.api_version}/graphql.json"

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not (self.store and self.access_token):
            raise ExternalCallFailure("commerce", "commerce API is not configured")

        try:
            response = await self.http_client.post(
                self.endpoint,
                json={"query": query, "variables": variables or {}},
                headers={"X-Shopify-Access-Token": self.access_token}
            )
        except httpx.HTTPError as e:
            raise ExternalCallFailure("commerce", str(e)) from e

        if response.status_code != 200:
            raise ExternalCallFailure("commerce", f"HTTP {response.status_code}")

        body = response.json()
        if body.get("errors"):
            raise ExternalCallFailure("commerce", f"GraphQL errors: {body['errors']}")
        return body.get("data") or {}

    async def get_sales_kpis(self, since: Optional[str] = None) -> Dict[str, Any]:
        """Revenue, order count and average basket for orders since a date (default today)"""
        since = since or datetime.utcnow().date().isoformat()
        data = await self.graphql(ORDERS_SINCE_QUERY, {"query": f"created_at:>='{since}T00:00:00Z'"})
        edges = (data.get("orders") or {}).get("edges") or []

        revenue = 0.0
        for edge in edges:
            money = ((edge.get("node") or {}).get("totalPriceSet") or {}).get("shopMoney") or {}
            revenue += float(money.get("amount") or 0)

        order_count = len(edges)
        return {
            "since": since,
            "revenue": round(revenue, 2),
            "orders": order_count,
            "average_basket": round(revenue / order_count, 2) if order_count else 0.0,
            "updated_at": datetime.utcnow().isoformat()
        }

    async def list_products(self, limit: int = 10) -> List[Dict[str, Any]]:
        data = await self.graphql(PRODUCTS_QUERY, {"first": limit})
        edges = (data.get("products") or {}).get("edges") or []
        return [edge["node"] for edge in edges if edge.get("node")]

    async def update_product_seo(self, product_id: str, title: str, description: str) -> Dict[str, Any]:
        """Write SEO fields on a product; only reachable through a privileged tool"""
        data = await self.graphql(UPDATE_SEO_MUTATION, {
            "input": {"id": product_id, "seo": {"title": title, "description": description}}
        })
        payload = data.get("productUpdate") or {}
        if payload.get("userErrors"):
            raise ExternalCallFailure("commerce", f"Update rejected: {payload['userErrors']}")

        logger.info("Product SEO updated", product_id=product_id)
        return payload.get("product") or {}

    async def close(self):
        await self.http_client.aclose()
