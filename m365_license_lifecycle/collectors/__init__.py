from .base import BaseCollector, CollectorResult
from .users import UserCollector, UserEnumerationError, normalize_user
from .skus import SkuCollector
from .catalog import CatalogCollector
from .signins import SignInAggregationError, SignInAggregator, SignInCollector, build_chunks
from .roles import AdminRoleCollector
from .organization import OrganizationCollector

# Run order: the mandatory user enumeration first, enrichment after
ALL_COLLECTORS = [
    UserCollector,
    OrganizationCollector,
    SkuCollector,
    CatalogCollector,
    SignInCollector,
    AdminRoleCollector,
]

__all__ = [
    "BaseCollector",
    "CollectorResult",
    "UserCollector",
    "UserEnumerationError",
    "normalize_user",
    "SkuCollector",
    "CatalogCollector",
    "SignInAggregationError",
    "SignInAggregator",
    "SignInCollector",
    "build_chunks",
    "AdminRoleCollector",
    "OrganizationCollector",
    "ALL_COLLECTORS",
]
