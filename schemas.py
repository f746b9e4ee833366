from enum import Enum
from typing import Optional, List, Dict, Any
from uuid import uuid4

from pydantic import BaseModel, Field


class ResourceKind(str, Enum):
    PRODUCTS = "products"
    ORDERS = "orders"

    @property
    def collection(self) -> str:
        """Mirrored collection name ("product" / "order")."""
        return self.value[:-1]


class Installation(BaseModel):
    """
    Droplet installations
    Collection name: "installation"
    """
    id: str = Field(default_factory=lambda: str(uuid4()), description="Local id, owner key of mirrored rows")
    fluid_id: str = Field(..., description="Remote droplet installation id, e.g. dri_abc123")
    active: bool = Field(True, description="False once the droplet is uninstalled")
    fluid_shop: Optional[str] = Field(None, description="Company shop, e.g. acme or acme.fluid.app")
    company_name: Optional[str] = None
    company_api_key: Optional[str] = Field(None, description="Elevated company-scoped token")
    authentication_token: Optional[str] = Field(None, description="Primary droplet installation token")
    webhook_verification_token: Optional[str] = None


class Endpoint(BaseModel):
    """A candidate API base URL plus query parameters sent with every request to it."""
    base_url: str
    params: Dict[str, str] = Field(default_factory=dict)

    def url_for(self, resource: str) -> str:
        return f"{self.base_url.rstrip('/')}/{resource}"


class Credentials(BaseModel):
    token: str
    token_kind: str
    endpoints: List[Endpoint]


class PageResult(BaseModel):
    records: List[Any] = Field(default_factory=list, description="Remote records as returned, unvalidated")
    page: int = 1
    per_page: int
    total_pages: Optional[int] = Field(None, description="None when the response carried no pagination metadata")
    total_count: Optional[int] = None

    @property
    def has_more(self) -> bool:
        return self.total_pages is not None and self.page < self.total_pages


class MirroredProduct(BaseModel):
    """
    Products mirrored from the remote catalog
    Collection name: "product"
    """
    installation_id: str
    remote_id: str
    title: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    status: Optional[str] = None
    price: Optional[str] = None
    in_stock: bool = True
    public: bool = True
    data: Dict[str, Any] = Field(default_factory=dict, description="Full remote payload")


class MirroredOrder(BaseModel):
    """
    Orders mirrored from the remote platform
    Collection name: "order"
    """
    installation_id: str
    remote_id: str
    order_number: Optional[str] = None
    amount: Optional[str] = None
    status: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    items_count: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict, description="Full remote payload")


class SyncRunResult(BaseModel):
    synced: int = 0
    errors: int = 0
